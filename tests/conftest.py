from __future__ import annotations

import struct
import zlib
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from starlette.requests import Request as StarletteRequest

from request_toolkit.core.config import ToolkitConfig
from request_toolkit.core.errors import ToolkitError, UploadError
from request_toolkit.helpers.file_helpers import download_static_file
from request_toolkit.helpers.json_helpers import JSONPayload, error_json, write_json
from request_toolkit.helpers.multipart_helpers import upload_files


def generate_png_bytes(width: int = 4, height: int = 4) -> bytes:
    def chunk(kind: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(kind + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", crc)

    rows = b"".join(b"\x00" + b"\xff\x00\x00" * width for _ in range(height))
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IDAT", zlib.compress(rows)) + chunk(b"IEND", b"")


def make_request(
    body: bytes = b"",
    headers: dict[str, str] | None = None,
    *,
    chunk_size: int | None = None,
    method: str = "POST",
) -> StarletteRequest:
    """Build a bare ASGI request whose body is delivered in ``chunk_size`` pieces."""
    size = chunk_size or max(len(body), 1)
    pieces = [body[i : i + size] for i in range(0, len(body), size)] or [b""]
    messages = [
        {"type": "http.request", "body": piece, "more_body": index < len(pieces) - 1}
        for index, piece in enumerate(pieces)
    ]

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    scope = {
        "type": "http",
        "method": method,
        "path": "/",
        "query_string": b"",
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()],
    }
    return StarletteRequest(scope, receive)


def multipart_request(files: list[tuple[str, tuple[str, bytes, str]]], *, declare_length: bool = True, chunk_size: int | None = None) -> StarletteRequest:
    encoded = httpx.Request("POST", "http://testserver/upload", files=files)
    body = encoded.read()
    headers = {"content-type": encoded.headers["content-type"]}
    if declare_length:
        headers["content-length"] = str(len(body))
    return make_request(body, headers, chunk_size=chunk_size)


@pytest.fixture
def png_bytes() -> bytes:
    return generate_png_bytes()


@pytest.fixture
def toolkit_config() -> ToolkitConfig:
    return ToolkitConfig()


@pytest.fixture
def static_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "static"
    directory.mkdir()
    (directory / "pic.png").write_bytes(generate_png_bytes(16, 16))
    return directory


@pytest.fixture
def app(tmp_path: Path, toolkit_config: ToolkitConfig, static_dir: Path) -> FastAPI:
    app = FastAPI()
    upload_dir = tmp_path / "uploads"

    @app.post("/upload")
    async def upload(request: Request, rename: bool = True):
        try:
            files = await upload_files(request, upload_dir, toolkit_config, rename=rename)
        except UploadError as exc:
            payload = JSONPayload(
                error=True,
                message=str(exc),
                data={"uploaded": [f.new_file_name for f in exc.uploaded]},
            )
            return write_json(400, payload)
        except ToolkitError as exc:
            return error_json(exc)
        data = [
            {"new_file_name": f.new_file_name, "original_file_name": f.original_file_name, "file_size": f.file_size}
            for f in files
        ]
        return write_json(200, JSONPayload(message="uploaded", data=data))

    @app.get("/download/{name}")
    async def download(name: str):
        return download_static_file(static_dir, name, "puppy.png")

    app.state.upload_dir = upload_dir
    return app


@pytest.fixture
def client(app: FastAPI):
    with TestClient(app) as test_client:
        yield test_client
