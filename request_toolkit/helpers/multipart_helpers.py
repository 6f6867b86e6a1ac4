from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from fastapi import Request
from starlette.datastructures import FormData, UploadFile
from starlette.formparsers import MultiPartException
from starlette.types import Message, Receive

from request_toolkit.core.config import ToolkitConfig
from request_toolkit.core.errors import (
    FilesystemError,
    FileTypeNotAllowed,
    InvalidMultipartBody,
    NoFilesUploaded,
    UploadTooLarge,
)
from request_toolkit.core.logging import get_logger, pop_log_context, push_log_context
from request_toolkit.helpers.file_helpers import ensure_directory
from request_toolkit.helpers.sniff_helpers import SNIFF_LEN, detect_content_type
from request_toolkit.helpers.text_helpers import random_string

RANDOM_NAME_LENGTH = 25
COPY_CHUNK_SIZE = 1024 * 1024

log = get_logger("upload")


@dataclass(frozen=True)
class UploadedFile:
    new_file_name: str
    original_file_name: str
    file_size: int


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class _BodyLimitExceeded(MultiPartException):
    """Raised from the receive channel so the form parser closes its spooled parts."""


def _limited_receive(receive: Receive, limit: int) -> Receive:
    received = 0

    async def receive_with_limit() -> Message:
        nonlocal received
        message = await receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > limit:
                raise _BodyLimitExceeded(f"body exceeded {limit} bytes")
        return message

    return receive_with_limit


def iter_file_parts(form: FormData) -> list[tuple[str, UploadFile]]:
    """File parts grouped by field, fields in first-seen order.

    Parts submitted without a file name are plain values and are skipped.
    """
    parts: list[tuple[str, UploadFile]] = []
    for key in form.keys():
        for value in form.getlist(key):
            if isinstance(value, UploadFile) and value.filename:
                parts.append((key, value))
    return parts


def destination_name(original: str, rename: bool) -> str:
    if not rename:
        return original
    _, extension = os.path.splitext(original)
    return f"{random_string(RANDOM_NAME_LENGTH)}{extension}"


async def _store_part(
    part: UploadFile,
    upload_dir: Path,
    config: ToolkitConfig,
    rename: bool,
    uploaded: list[UploadedFile],
) -> UploadedFile:
    original = part.filename or ""
    head = await part.read(SNIFF_LEN)
    content_type = detect_content_type(head)
    if not config.allows_content_type(content_type):
        log.warning(
            "upload.rejected",
            extra={"file_name": original, "content_type": content_type, "allowed": config.allowed_content_types},
        )
        raise FileTypeNotAllowed(content_type, uploaded)
    await part.seek(0)

    new_name = destination_name(original, rename)
    target = upload_dir / new_name
    size = 0
    try:
        with open(target, "wb") as dest:
            while True:
                chunk = await part.read(COPY_CHUNK_SIZE)
                if not chunk:
                    break
                dest.write(chunk)
                size += len(chunk)
    except OSError as exc:
        log.error("upload.write_failed", extra={"path": str(target), "error": str(exc)})
        raise FilesystemError(f"unable to write {target}: {exc}", uploaded) from exc

    log.info(
        "upload.accepted",
        extra={"file_name": original, "stored_as": new_name, "content_type": content_type, "bytes": size},
    )
    return UploadedFile(new_file_name=new_name, original_file_name=original, file_size=size)


async def upload_files(
    request: Request,
    upload_dir: str | Path,
    config: ToolkitConfig,
    *,
    rename: bool = True,
) -> list[UploadedFile]:
    """Store every file part of a multipart request under ``upload_dir``.

    Each part is sniffed from its first 512 bytes and checked against
    ``config.allowed_content_types`` before it is written. The first failure
    aborts the call; files stored before it stay on disk and are listed on
    the exception's ``uploaded`` attribute.
    """
    directory = ensure_directory(upload_dir)
    limit = config.effective_upload_limit()

    declared = _declared_length(request)
    if declared is not None and declared > limit:
        log.warning("upload.too_large", extra={"declared_bytes": declared, "limit": limit})
        raise UploadTooLarge(limit)

    # Without "app" in scope Starlette re-raises parser errors instead of answering 400 itself.
    scope = {key: value for key, value in request.scope.items() if key != "app"}
    limited = Request(scope, receive=_limited_receive(request.receive, limit))
    uploaded: list[UploadedFile] = []
    token = push_log_context(operation="upload", endpoint=request.scope.get("path"))
    try:
        async with limited.form() as form:
            for _field, part in iter_file_parts(form):
                uploaded.append(await _store_part(part, directory, config, rename, uploaded))
    except _BodyLimitExceeded as exc:
        log.warning("upload.too_large", extra={"limit": limit})
        raise UploadTooLarge(limit) from exc
    except MultiPartException as exc:
        raise InvalidMultipartBody(f"invalid multipart body: {exc.message}") from exc
    finally:
        pop_log_context(token)
    return uploaded


async def upload_one_file(
    request: Request,
    upload_dir: str | Path,
    config: ToolkitConfig,
    *,
    rename: bool = True,
) -> UploadedFile:
    files = await upload_files(request, upload_dir, config, rename=rename)
    if not files:
        raise NoFilesUploaded()
    return files[0]
