"""
Service layer - cache, refresh and rate-limit logic in front of the upstream.

Provides:
- RequestQueue: single FIFO channel to the upstream, throttled by the ledger
- FreshnessPolicy: per-game TTL check
- Synchronizer: fetch, normalize, store and cascade refreshes
- GameCatalog: the operations exposed to callers

Only the error types are re-exported here; import the components from their
modules so this package stays importable from the datastore layer.
"""

from bggcache.services.errors import (
    RequestDeferredError,
    RequestTimeoutError,
    ResponseParseError,
    ServiceError,
    StoreError,
    UpstreamError,
    describe_error,
)

__all__ = [
    "RequestDeferredError",
    "RequestTimeoutError",
    "ResponseParseError",
    "ServiceError",
    "StoreError",
    "UpstreamError",
    "describe_error",
]
