"""Fetch JSON documents by CID and store them through the data uploader.

Fetching tries the HTTP mirror (a CDN rooted at a bucket) first and falls
back to the content-addressed gateway when the mirror cannot be reached.
Storing asks the uploader to pin a CID, or a JSON payload, and checks that
the uploader echoes back the CID we expect.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from .clients.base import HttpClient, RequestBuilder
from .exceptions import (
    FetchJsonDeserializationError,
    FetchJsonRequestConstructionError,
    FetchJsonRequestError,
    HttpClientError,
    StoreCidDeserializationError,
    StoreCidMismatchError,
    StoreCidRequestConstructionError,
    StoreCidRequestError,
    StoreJsonCidMismatchError,
    StoreJsonDeserializationError,
    StoreJsonRequestConstructionError,
    StoreJsonRequestError,
)
from .models import CidPayload
from .utils.retry import ExponentialBackoff, retry

logger = logging.getLogger(__name__)


def gateway_cat_path(cid: str) -> str:
    return f"/api/v0/cat?arg={cid}"


# ── Fetch ────────────────────────────────────────────────────────

async def fetch_json(
    cid: str,
    mirror_client: HttpClient,
    gateway_client: HttpClient,
    shape: Any = Any,
) -> Any:
    """Fetch the JSON document stored under ``cid``, decoded as ``shape``.

    The mirror is asked first with a GET on the lowercased CID. Only a
    failure of the send step there (connect, timeout, I/O before the
    response headers arrive) falls back to a POST on the gateway's ``cat``
    endpoint. A mirror body that breaks off or does not decode is final and
    raises FetchJsonDeserializationError.
    """
    cid = cid.lower()
    adapter = TypeAdapter(shape)

    try:
        mirror_request = await mirror_client.request("GET", cid)
    except HttpClientError as exc:
        raise FetchJsonRequestConstructionError(exc) from exc

    try:
        response = await mirror_request.send(stream=True)
    except httpx.RequestError as exc:
        logger.info(
            "Mirror fetch of %s failed (%s), falling back to gateway",
            cid,
            type(exc).__name__,
        )
    else:
        return await _decode_fetched(mirror_request, response, adapter)

    try:
        gateway_request = await gateway_client.request("POST", gateway_cat_path(cid))
    except HttpClientError as exc:
        raise FetchJsonRequestConstructionError(exc) from exc

    try:
        response = await gateway_request.send(stream=True)
    except httpx.RequestError as exc:
        raise FetchJsonRequestError(exc) from exc

    return await _decode_fetched(gateway_request, response, adapter)


async def _decode_fetched(
    request: RequestBuilder, response: httpx.Response, adapter: TypeAdapter
) -> Any:
    # a body that breaks off mid-read is undecodable, not a failed send
    try:
        return adapter.validate_json(await request.read(response))
    except (httpx.RequestError, ValidationError) as exc:
        raise FetchJsonDeserializationError(exc) from exc


def is_transient_fetch_error(exc: Exception) -> bool:
    return isinstance(exc, (FetchJsonRequestConstructionError, FetchJsonRequestError))


async def fetch_json_with_retry(
    cid: str,
    mirror_client: HttpClient,
    gateway_client: HttpClient,
    backoff: ExponentialBackoff,
    shape: Any = Any,
) -> Any:
    async def fetch() -> Any:
        return await fetch_json(cid, mirror_client, gateway_client, shape)

    return await retry(
        backoff, fetch, is_transient=is_transient_fetch_error, name=f"fetch_json({cid})"
    )


# ── Store ────────────────────────────────────────────────────────

async def store_cid(cid: str, uploader_client: HttpClient) -> None:
    """Ask the uploader to pin ``cid`` and check the CID it echoes back.

    The comparison is byte-exact: no case normalization on either side.
    """
    try:
        request = await uploader_client.request("POST", "/data/ipfs")
    except HttpClientError as exc:
        raise StoreCidRequestConstructionError(exc) from exc

    try:
        response = await request.json(CidPayload(cid=cid).model_dump()).send(stream=True)
    except httpx.RequestError as exc:
        raise StoreCidRequestError(exc) from exc

    try:
        stored = CidPayload.model_validate_json(await request.read(response))
    except (httpx.RequestError, ValidationError) as exc:
        raise StoreCidDeserializationError(exc) from exc

    if stored.cid != cid:
        raise StoreCidMismatchError(stored.cid, cid)

    logger.info("Uploader stored %s", cid)


def is_transient_store_cid_error(exc: Exception) -> bool:
    return isinstance(exc, (StoreCidRequestConstructionError, StoreCidRequestError))


async def store_cid_with_retry(
    cid: str,
    uploader_client: HttpClient,
    backoff: ExponentialBackoff,
) -> None:
    async def store() -> None:
        await store_cid(cid, uploader_client)

    await retry(
        backoff, store, is_transient=is_transient_store_cid_error, name=f"store_cid({cid})"
    )


def _serialize_payload(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True)
    return payload


async def store_json(payload: Any, expected_cid: str, uploader_client: HttpClient) -> None:
    """Submit ``payload`` to the uploader and check the resulting CID.

    The payload is sent as the raw JSON body. Pydantic models are dumped in
    JSON mode by alias first.
    """
    try:
        request = await uploader_client.request("POST", "/data/json/ipfs")
    except HttpClientError as exc:
        raise StoreJsonRequestConstructionError(exc) from exc

    try:
        response = await request.json(_serialize_payload(payload)).send(stream=True)
    except httpx.RequestError as exc:
        raise StoreJsonRequestError(exc) from exc

    try:
        stored = CidPayload.model_validate_json(await request.read(response))
    except (httpx.RequestError, ValidationError) as exc:
        raise StoreJsonDeserializationError(exc) from exc

    if stored.cid != expected_cid:
        raise StoreJsonCidMismatchError(stored.cid, expected_cid)

    logger.info("Uploader stored json payload as %s", expected_cid)


def is_transient_store_json_error(exc: Exception) -> bool:
    return isinstance(exc, (StoreJsonRequestConstructionError, StoreJsonRequestError))


async def store_json_with_retry(
    payload: Any,
    expected_cid: str,
    uploader_client: HttpClient,
    backoff: ExponentialBackoff,
) -> None:
    async def store() -> None:
        await store_json(payload, expected_cid, uploader_client)

    await retry(
        backoff,
        store,
        is_transient=is_transient_store_json_error,
        name=f"store_json({expected_cid})",
    )
