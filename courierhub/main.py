import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courierhub.config import settings
from courierhub.database import engine, Base
from courierhub import models  # registers tables on Base.metadata
from courierhub.api import couriers, storefront, discrepancies, alerts, finance

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Courier Hub",
    description="Courier order sync, settlement, return reconciliation and shipment alerts",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(couriers.router)
app.include_router(storefront.router)
app.include_router(discrepancies.router)
app.include_router(alerts.router)
app.include_router(finance.router)

@app.get("/health")
def health_check():
    return {"status": "healthy"}

@app.get("/")
def root():
    return {
        "message": "Courier Hub API",
        "docs": "/docs",
        "health": "/health"
    }
