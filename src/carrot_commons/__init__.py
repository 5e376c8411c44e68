"""Client utilities for fetching, storing and pinning content-addressed data."""

from .clients.base import HttpClient, RequestBuilder
from .clients.rate_limiter import TokenBucketRateLimiter
from .config import Clients, Settings, build_clients, get_config
from .data import (
    fetch_json,
    fetch_json_with_retry,
    store_cid,
    store_cid_with_retry,
    store_json,
    store_json_with_retry,
)
from .ipfs import (
    fetch_json_ipfs,
    fetch_json_ipfs_with_retry,
    pin_cid,
    pin_cid_with_retry,
    repin,
    repin_with_retry,
)
from .utils.retry import ExponentialBackoff, retry

__all__ = [
    "Clients",
    "ExponentialBackoff",
    "HttpClient",
    "RequestBuilder",
    "Settings",
    "TokenBucketRateLimiter",
    "build_clients",
    "fetch_json",
    "fetch_json_ipfs",
    "fetch_json_ipfs_with_retry",
    "fetch_json_with_retry",
    "get_config",
    "pin_cid",
    "pin_cid_with_retry",
    "repin",
    "repin_with_retry",
    "retry",
    "store_cid",
    "store_cid_with_retry",
    "store_json",
    "store_json_with_retry",
]
