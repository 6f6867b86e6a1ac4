from __future__ import annotations

import json
from typing import Any

import httpx
from pydantic import BaseModel
from pydantic_core import PydanticSerializationError

from request_toolkit.core.errors import RemoteRequestError
from request_toolkit.core.logging import get_logger

log = get_logger("remote")


def _encode(value: Any) -> bytes:
    # NaN and Infinity have no JSON spelling and are refused.
    try:
        if isinstance(value, BaseModel):
            return value.model_dump_json().encode("utf-8")
        return json.dumps(value, ensure_ascii=False, allow_nan=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError, PydanticSerializationError) as exc:
        raise RemoteRequestError(f"unable to encode payload as JSON: {exc}") from exc


async def push_json(
    uri: str,
    value: Any,
    *,
    client: httpx.AsyncClient | None = None,
) -> tuple[httpx.Response, int]:
    """POST ``value`` as JSON to ``uri`` and return the response with its status code.

    No retries and no timeout beyond what ``client`` enforces. When no client
    is given a short-lived one is opened for the call.
    """
    body = _encode(value)
    headers = {"Content-Type": "application/json"}
    try:
        if client is None:
            async with httpx.AsyncClient() as own_client:
                response = await own_client.post(uri, content=body, headers=headers)
        else:
            response = await client.post(uri, content=body, headers=headers)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        log.warning("remote.push_failed", extra={"uri": uri, "error": str(exc)})
        raise RemoteRequestError(f"unable to post JSON to {uri}: {exc}") from exc
    log.info("remote.push", extra={"uri": uri, "status": response.status_code, "bytes": len(body)})
    return response, response.status_code
