import os

from courierhub.config import settings
from courierhub.main import app

def main():
    """Run the courier hub API with uvicorn (`python main.py`)."""
    import uvicorn
    port = int(os.getenv("PORT", "8080"))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level=settings.LOG_LEVEL.lower())

if __name__ == "__main__":
    main()
