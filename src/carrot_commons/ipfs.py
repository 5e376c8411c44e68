"""Content-addressed gateway operations: cat, pin and re-pin elsewhere."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from .clients.base import HttpClient
from .data import gateway_cat_path
from .exceptions import (
    FetchJsonDeserializationError,
    FetchJsonRequestConstructionError,
    FetchJsonRequestError,
    HttpClientError,
    PinCidMismatchError,
    PinDeserializationError,
    PinInconsistentAmountError,
    PinRequestConstructionError,
    PinRequestError,
    RepinCidMismatchError,
    RepinExportRequestConstructionError,
    RepinExportRequestError,
    RepinUploadDeserializationError,
    RepinUploadRequestConstructionError,
    RepinUploadRequestError,
)
from .models import CarUploadResponse, PinResponse
from .utils.retry import ExponentialBackoff, retry

logger = logging.getLogger(__name__)

CAR_CONTENT_TYPE = "application/vnd.ipld.car"


# ── Cat ──────────────────────────────────────────────────────────

async def fetch_json_ipfs(cid: str, gateway_client: HttpClient, shape: Any = Any) -> Any:
    """Fetch a JSON document straight from the gateway, without a mirror."""
    try:
        request = await gateway_client.request("POST", gateway_cat_path(cid))
    except HttpClientError as exc:
        raise FetchJsonRequestConstructionError(exc) from exc

    try:
        response = await request.send(stream=True)
    except httpx.RequestError as exc:
        raise FetchJsonRequestError(exc) from exc

    try:
        return TypeAdapter(shape).validate_json(await request.read(response))
    except (httpx.RequestError, ValidationError) as exc:
        raise FetchJsonDeserializationError(exc) from exc


async def fetch_json_ipfs_with_retry(
    cid: str,
    gateway_client: HttpClient,
    backoff: ExponentialBackoff,
    shape: Any = Any,
) -> Any:
    async def fetch() -> Any:
        return await fetch_json_ipfs(cid, gateway_client, shape)

    return await retry(
        backoff,
        fetch,
        is_transient=lambda exc: isinstance(
            exc, (FetchJsonRequestConstructionError, FetchJsonRequestError)
        ),
        name=f"fetch_json_ipfs({cid})",
    )


# ── Pin ──────────────────────────────────────────────────────────

async def pin_cid(cid: str, gateway_client: HttpClient) -> None:
    """Pin ``cid`` on the gateway node.

    The node must report exactly one pin, equal to ``cid``. Pinning an
    already pinned CID succeeds the same way.
    """
    try:
        request = await gateway_client.request("POST", f"/api/v0/pin/add?arg={cid}")
    except HttpClientError as exc:
        raise PinRequestConstructionError(exc) from exc

    try:
        response = await request.send(stream=True)
    except httpx.RequestError as exc:
        raise PinRequestError(exc) from exc

    try:
        pins = PinResponse.model_validate_json(await request.read(response)).pins
    except (httpx.RequestError, ValidationError) as exc:
        raise PinDeserializationError(exc) from exc

    if len(pins) != 1:
        raise PinInconsistentAmountError(len(pins))

    if pins[0] != cid:
        raise PinCidMismatchError(pins[0], cid)

    logger.info("Pinned %s on %s", cid, gateway_client.base_url)


def is_transient_pin_error(exc: Exception) -> bool:
    # deserialization is retried here, unlike fetch and store
    return isinstance(
        exc, (PinRequestConstructionError, PinRequestError, PinDeserializationError)
    )


async def pin_cid_with_retry(
    cid: str,
    gateway_client: HttpClient,
    backoff: ExponentialBackoff,
) -> None:
    async def pin() -> None:
        await pin_cid(cid, gateway_client)

    await retry(backoff, pin, is_transient=is_transient_pin_error, name=f"pin_cid({cid})")


# ── Re-pin on a third-party pinning service ──────────────────────

async def repin(cid: str, gateway_client: HttpClient, third_party_client: HttpClient) -> None:
    """Export the content archive of ``cid`` and upload it to a pinning service.

    The archive is streamed from the gateway into the upload request without
    being buffered. The export response is closed on every exit path.
    """
    try:
        export_request = await gateway_client.request(
            "POST", f"/api/v0/dag/export?arg={cid}&progress=false"
        )
    except HttpClientError as exc:
        raise RepinExportRequestConstructionError(exc) from exc

    try:
        car_response = await export_request.send(stream=True)
    except httpx.RequestError as exc:
        raise RepinExportRequestError(exc) from exc

    try:
        try:
            upload_request = await third_party_client.request("POST", "/car")
        except HttpClientError as exc:
            raise RepinUploadRequestConstructionError(exc) from exc

        upload_request.header("Content-Type", CAR_CONTENT_TYPE)
        upload_request.content(car_response.aiter_bytes())

        try:
            upload_response = await upload_request.send(stream=True)
        except httpx.RequestError as exc:
            raise RepinUploadRequestError(exc) from exc
    finally:
        await car_response.aclose()

    try:
        uploaded = CarUploadResponse.model_validate_json(
            await upload_request.read(upload_response)
        )
    except (httpx.RequestError, ValidationError) as exc:
        raise RepinUploadDeserializationError(exc) from exc

    if uploaded.cid != cid:
        raise RepinCidMismatchError(uploaded.cid, cid)

    logger.info("Re-pinned %s on %s", cid, third_party_client.base_url)


def is_transient_repin_error(exc: Exception) -> bool:
    return isinstance(
        exc,
        (
            RepinExportRequestConstructionError,
            RepinExportRequestError,
            RepinUploadRequestConstructionError,
            RepinUploadRequestError,
            RepinUploadDeserializationError,
        ),
    )


async def repin_with_retry(
    cid: str,
    gateway_client: HttpClient,
    third_party_client: HttpClient,
    backoff: ExponentialBackoff,
) -> None:
    async def operation() -> None:
        await repin(cid, gateway_client, third_party_client)

    await retry(backoff, operation, is_transient=is_transient_repin_error, name=f"repin({cid})")
