"""Exception hierarchy for carrot-commons.

Every error raised by the library inherits from CarrotCommonsError. Errors
raised by the high-level operations are tagged twice: once by operation
(FetchJsonError, StoreCidError, ...) and once by failure class
(RequestConstructionError, RequestError, DeserializationError, ...), so
callers can catch either way::

    try:
        await store_cid(cid, uploader)
    except CidMismatchError as exc:
        logger.error("uploader returned %s for %s", exc.got, exc.expected)
    except StoreCidError:
        raise

The underlying cause (an httpx or pydantic error, usually) is kept on
``.cause`` and chained as ``__cause__``.
"""

from __future__ import annotations

from pathlib import Path


class CarrotCommonsError(Exception):
    """Base exception for all carrot-commons errors."""


# ── HTTP client ──────────────────────────────────────────────────


class HttpClientError(CarrotCommonsError):
    """Raised while building an HttpClient or preparing a request."""


class HttpClientInitializationError(HttpClientError):
    """The underlying transport could not be created."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"could not initialize base http client: {cause!r}")
        self.cause = cause


class MalformedUrlError(HttpClientError):
    """The configured base URL is not a valid absolute URL."""

    def __init__(self, base_url: str, cause: BaseException | None = None) -> None:
        super().__init__(f"malformed base url {base_url}: {cause!r}")
        self.base_url = base_url
        self.cause = cause


class PathJoinError(HttpClientError):
    """A request path could not be joined onto the base URL."""

    def __init__(self, base_url: str, path: str, cause: BaseException) -> None:
        super().__init__(f"error joining base url {base_url} with path {path}: {cause!r}")
        self.base_url = base_url
        self.path = path
        self.cause = cause


# ── Operations ───────────────────────────────────────────────────


class OperationError(CarrotCommonsError):
    """Base for errors raised by fetch, store and pin operations.

    Subclasses set ``request_name`` to describe the request that failed.
    """

    request_name = "request"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RequestConstructionError(OperationError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(
            f"error while constructing {self.request_name} request: {cause!r}", cause
        )


class RequestError(OperationError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(
            f"error while performing {self.request_name} request: {cause!r}", cause
        )


class DeserializationError(OperationError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(
            f"error while deserializing {self.request_name} response: {cause!r}", cause
        )


class CidMismatchError(OperationError):
    """The upstream echoed back a CID other than the one we asked for."""

    def __init__(self, got: str, expected: str) -> None:
        super().__init__(f"cid mismatch: got {got}, expected {expected}")
        self.got = got
        self.expected = expected


class InconsistentPinnedCidsAmountError(OperationError):
    def __init__(self, amount: int) -> None:
        super().__init__(f"expected 1 pinned cid, got {amount}")
        self.amount = amount


# Fetch

class FetchJsonError(OperationError):
    request_name = "json fetch"


class FetchJsonRequestConstructionError(FetchJsonError, RequestConstructionError):
    pass


class FetchJsonRequestError(FetchJsonError, RequestError):
    pass


class FetchJsonDeserializationError(FetchJsonError, DeserializationError):
    pass


# Store CID

class StoreCidError(OperationError):
    request_name = "cid store"


class StoreCidRequestConstructionError(StoreCidError, RequestConstructionError):
    pass


class StoreCidRequestError(StoreCidError, RequestError):
    pass


class StoreCidDeserializationError(StoreCidError, DeserializationError):
    pass


class StoreCidMismatchError(StoreCidError, CidMismatchError):
    pass


# Store JSON

class StoreJsonError(OperationError):
    request_name = "json store"


class StoreJsonRequestConstructionError(StoreJsonError, RequestConstructionError):
    pass


class StoreJsonRequestError(StoreJsonError, RequestError):
    pass


class StoreJsonDeserializationError(StoreJsonError, DeserializationError):
    pass


class StoreJsonCidMismatchError(StoreJsonError, CidMismatchError):
    pass


# Pin

class PinError(OperationError):
    request_name = "pin"


class PinRequestConstructionError(PinError, RequestConstructionError):
    pass


class PinRequestError(PinError, RequestError):
    pass


class PinDeserializationError(PinError, DeserializationError):
    pass


class PinInconsistentAmountError(PinError, InconsistentPinnedCidsAmountError):
    pass


class PinCidMismatchError(PinError, CidMismatchError):
    pass


# Re-pin on a third-party pinning service

class RepinError(OperationError):
    request_name = "car"


class RepinExportRequestConstructionError(RepinError, RequestConstructionError):
    request_name = "car export"


class RepinExportRequestError(RepinError, RequestError):
    request_name = "car export"


class RepinUploadRequestConstructionError(RepinError, RequestConstructionError):
    request_name = "car upload"


class RepinUploadRequestError(RepinError, RequestError):
    request_name = "car upload"


class RepinUploadDeserializationError(RepinError, DeserializationError):
    request_name = "car upload"


class RepinCidMismatchError(RepinError, CidMismatchError):
    pass


# ── Configuration ────────────────────────────────────────────────


class ConfigError(CarrotCommonsError):
    """Raised by the per-user configuration loader."""


class ConfigProjectDirError(ConfigError):
    def __init__(self, app_name: str, cause: BaseException | None = None) -> None:
        super().__init__(f"could not get base project dir for {app_name!r}")
        self.app_name = app_name
        self.cause = cause


class ConfigFileOpenError(ConfigError):
    def __init__(self, path: Path, cause: BaseException) -> None:
        super().__init__(f"could not open config file {path}: {cause!r}")
        self.path = path
        self.cause = cause


class ConfigDeserializationError(ConfigError):
    def __init__(self, path: Path, cause: BaseException) -> None:
        super().__init__(f"could not deserialize config file {path}: {cause!r}")
        self.path = path
        self.cause = cause
