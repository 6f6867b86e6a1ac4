from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Mapping, TypeVar

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, AliasPath, BaseModel, RootModel, ValidationError, model_serializer

from request_toolkit.core.config import ToolkitConfig
from request_toolkit.core.errors import (
    JSONDecodeFailure,
    JSONEmptyBody,
    JSONEncodeError,
    JSONSyntaxError,
    JSONTargetError,
    JSONTooLarge,
    JSONTrailingData,
    JSONTypeMismatch,
    JSONUnknownField,
)
from request_toolkit.core.logging import get_logger, pop_log_context, push_log_context

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_WHITESPACE = " \t\n\r"
_DECODER = json.JSONDecoder()

log = get_logger("json")


class JSONPayload(BaseModel):
    """Conventional response envelope; ``data`` is left out when empty."""

    error: bool = False
    message: str = ""
    data: Any | None = None

    @model_serializer(mode="wrap")
    def _omit_empty_data(self, handler):
        payload = handler(self)
        if payload.get("data") is None:
            payload.pop("data", None)
        return payload


async def _read_limited_body(request: Request, limit: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        raise JSONTooLarge(limit)
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise JSONTooLarge(limit)
    return bytes(body)


def decode_single_value(body: bytes) -> tuple[Any, int]:
    """Decode exactly one JSON value from ``body``.

    Returns the value and the character offset where it starts.
    """
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise JSONSyntaxError(exc.start) from exc

    start = len(text) - len(text.lstrip(JSON_WHITESPACE))
    if start == len(text):
        raise JSONEmptyBody()

    try:
        value, end = _DECODER.raw_decode(text, start)
    except json.JSONDecodeError as exc:
        if exc.pos >= len(text) or exc.msg.startswith("Unterminated string"):
            raise JSONSyntaxError() from exc
        raise JSONSyntaxError(exc.pos) from exc

    if text[end:].strip(JSON_WHITESPACE):
        raise JSONTrailingData()
    return value, start


@lru_cache(maxsize=128)
def _accepted_keys(target: type[BaseModel]) -> frozenset[str]:
    """Top-level keys ``target`` accepts on input, the same set ``extra="forbid"`` checks."""
    by_name = target.model_config.get("populate_by_name") or target.model_config.get("validate_by_name")
    keys: set[str] = set()
    for name, field in target.model_fields.items():
        alias = field.validation_alias if field.validation_alias is not None else field.alias
        if alias is None or by_name:
            keys.add(name)
        choices = alias.choices if isinstance(alias, AliasChoices) else [alias]
        for choice in choices:
            if isinstance(choice, AliasPath):
                choice = choice.path[0]
            if isinstance(choice, str):
                keys.add(choice)
    return frozenset(keys)


def _reject_unknown(value: Any, target: type[BaseModel]) -> None:
    # Root models have no named keys; nested models keep their own ``extra`` policy.
    if not isinstance(value, dict) or issubclass(target, RootModel):
        return
    accepted = _accepted_keys(target)
    for key in value:
        if key not in accepted:
            raise JSONUnknownField(key)


def _field_path(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc)


def classify_validation_error(exc: ValidationError, offset: int) -> JSONDecodeFailure:
    errors = exc.errors()
    for error in errors:
        if error["type"] == "extra_forbidden":
            return JSONUnknownField(_field_path(error["loc"]))
    field = _field_path(errors[0]["loc"]) if errors else ""
    if field:
        return JSONTypeMismatch(field=field)
    return JSONTypeMismatch(offset=offset)


async def read_json(request: Request, target: type[ModelT], config: ToolkitConfig) -> ModelT:
    """Decode the request body into an instance of ``target``.

    The body is capped at ``config.max_json_bytes`` and must hold exactly one
    JSON value. Unless ``config.allow_unknown_json_fields`` is set, keys the
    model does not declare are rejected. Every failure is raised as a
    ``JSONDecodeFailure`` subclass whose message is safe to show to clients.
    """
    if not (isinstance(target, type) and issubclass(target, BaseModel)):
        raise JSONTargetError(f"target must be a pydantic model class, got {target!r}")

    limit = config.effective_json_limit()
    token = push_log_context(operation="read_json", endpoint=request.scope.get("path"), target=target.__name__)
    try:
        body = await _read_limited_body(request, limit)
        value, offset = decode_single_value(body)
        if not config.allow_unknown_json_fields:
            _reject_unknown(value, target)
        try:
            return target.model_validate(value)
        except ValidationError as exc:
            raise classify_validation_error(exc, offset) from exc
    except JSONDecodeFailure as exc:
        log.info("json.decode_failed", extra={"reason": type(exc).__name__, "detail": str(exc)})
        raise
    finally:
        pop_log_context(token)


def write_json(status_code: int, value: Any, *, headers: Mapping[str, str] | None = None) -> JSONResponse:
    """Render ``value`` as a JSON response.

    Models, including ones nested in containers, are encoded the way FastAPI
    encodes route return values. Caller headers are applied first;
    Content-Type is always ``application/json`` afterwards, replacing any
    caller value.
    """
    try:
        content = jsonable_encoder(value)
        response = JSONResponse(content=content, status_code=status_code, headers=dict(headers or {}))
    except (TypeError, ValueError) as exc:
        raise JSONEncodeError(f"unable to encode response as JSON: {exc}") from exc
    response.headers["content-type"] = "application/json"
    return response


def error_json(error: BaseException | str, *, status_code: int = 400) -> JSONResponse:
    return write_json(status_code, JSONPayload(error=True, message=str(error)))
