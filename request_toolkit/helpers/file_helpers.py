from __future__ import annotations

from pathlib import Path

from fastapi.responses import FileResponse
from starlette.exceptions import HTTPException

from request_toolkit.core.errors import FilesystemError
from request_toolkit.core.logging import get_logger

DIRECTORY_MODE = 0o755

log = get_logger("files")


def ensure_directory(path: str | Path) -> Path:
    """Create ``path`` and any missing parents. Existing directories are left alone."""
    directory = Path(path)
    if directory.is_dir():
        return directory
    try:
        directory.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
    except OSError as exc:
        log.warning("directory.create_failed", extra={"path": str(directory), "error": str(exc)})
        raise FilesystemError(f"unable to create directory {directory}: {exc}") from exc
    log.debug("directory.created", extra={"path": str(directory)})
    return directory


def download_static_file(base_dir: str | Path, file_name: str, display_name: str) -> FileResponse:
    """Serve ``base_dir/file_name`` as an attachment named ``display_name``.

    ``FileResponse`` fills in Content-Length, Last-Modified and ETag, and
    answers Range requests.
    """
    file_path = Path(base_dir) / file_name
    if not file_path.is_file():
        raise HTTPException(status_code=404, detail="404 page not found")
    headers = {"Content-Disposition": f'attachment; filename="{display_name}"'}
    return FileResponse(file_path, headers=headers)
