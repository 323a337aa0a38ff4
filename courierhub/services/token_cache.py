"""
Storefront access-token cache.

Tokens from the client-credentials exchange are cached per
(brand, store domain, client id) and treated as expired EXPIRY_SKEW_SECONDS
before the upstream's own expiry. The clock is injected so expiry can be
tested without sleeping.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

DEFAULT_EXPIRES_IN = 86399
EXPIRY_SKEW_SECONDS = 300

TokenKey = Tuple[str, str, str]


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: float


class TokenCache:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[TokenKey, CachedToken] = {}

    @staticmethod
    def key(brand_id: str, store_domain: str, client_id: str) -> TokenKey:
        return (brand_id, store_domain.lower(), client_id)

    def get(self, key: TokenKey) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.token

    def put(self, key: TokenKey, token: str, expires_in: Optional[int] = None) -> None:
        lifetime = (expires_in or DEFAULT_EXPIRES_IN) - EXPIRY_SKEW_SECONDS
        with self._lock:
            self._entries[key] = CachedToken(token=token, expires_at=self._clock() + max(lifetime, 0))

    def invalidate(self, key: TokenKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# Process-wide cache used by the storefront adapter
token_cache = TokenCache()
