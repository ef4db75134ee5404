"""Download the user pool's JWKS and keep a cached KeyStore built from it.

The provider builds each new store completely before replacing its single
store reference, so a verification that already holds the old store keeps
using it and never sees a half-built mapping.
"""
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests
import structlog

from .config import KeyDecodePolicy, cognito_issuer
from .keys import KeyStore

logger = structlog.get_logger(__name__)


def jwks_url(region: str, user_pool_id: str) -> str:
    return f"{cognito_issuer(region, user_pool_id)}/.well-known/jwks.json"


def fetch_jwks(url: str, timeout: float = 10.0) -> Dict[str, Any]:
    """GET the key-set document. Raises requests exceptions on failure."""
    logger.info("Downloading JWKS", url=url)
    resp = requests.get(url, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


class JWKSProvider:
    def __init__(
        self,
        url: str,
        cache_ttl: int = 3600,
        timeout: float = 10.0,
        policy: KeyDecodePolicy = KeyDecodePolicy.SKIP,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self._cache_ttl = cache_ttl
        self._timeout = timeout
        self._policy = policy
        self._clock = clock
        self._store: Optional[KeyStore] = None
        self._last_update = 0.0
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings_obj) -> "JWKSProvider":
        return cls(
            jwks_url(settings_obj.region, settings_obj.user_pool_id),
            cache_ttl=settings_obj.jwks_cache_ttl,
            timeout=settings_obj.jwks_timeout,
            policy=KeyDecodePolicy(settings_obj.key_decode_policy),
        )

    def _is_fresh(self) -> bool:
        return self._store is not None and (self._clock() - self._last_update) < self._cache_ttl

    def refresh(self) -> KeyStore:
        """Fetch the document now and swap in a new store."""
        with self._lock:
            return self._refresh_locked()

    def _refresh_locked(self) -> KeyStore:
        store = KeyStore.from_jwks(fetch_jwks(self.url, self._timeout), self._policy)
        self._store = store
        self._last_update = self._clock()
        logger.info("JWKS key store refreshed", kids=list(store.kids), skipped=len(store.errors))
        return store

    def key_store(self) -> KeyStore:
        """Return the cached store, refreshing it once the TTL has passed."""
        store = self._store
        if store is not None and self._is_fresh():
            return store
        with self._lock:
            if self._is_fresh():
                return self._store
            return self._refresh_locked()

    __call__ = key_store
