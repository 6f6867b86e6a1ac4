from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from request_toolkit.helpers.multipart_helpers import UploadedFile


class ToolkitError(Exception):
    """Base class for every error raised by the toolkit."""


class UploadError(ToolkitError):
    """Upload failure; ``uploaded`` lists the files already written by the call."""

    def __init__(self, message: str, uploaded: Sequence["UploadedFile"] = ()) -> None:
        super().__init__(message)
        self.uploaded: list["UploadedFile"] = list(uploaded)


class UploadTooLarge(UploadError):
    def __init__(self, limit: int) -> None:
        super().__init__("the uploaded file is too big")
        self.limit = limit


class InvalidMultipartBody(UploadError):
    pass


class FileTypeNotAllowed(UploadError):
    def __init__(self, content_type: str, uploaded: Sequence["UploadedFile"] = ()) -> None:
        super().__init__("file type not allowed", uploaded)
        self.content_type = content_type


class NoFilesUploaded(UploadError):
    def __init__(self) -> None:
        super().__init__("no files were uploaded")


class FilesystemError(UploadError):
    """Directory or file creation/write failure. Always chained to the OSError."""


class JSONDecodeFailure(ToolkitError):
    pass


class JSONSyntaxError(JSONDecodeFailure):
    def __init__(self, offset: int | None = None) -> None:
        if offset is None:
            message = "request body contains badly-formed JSON"
        else:
            message = f"request body contains badly-formed JSON (at character {offset})"
        super().__init__(message)
        self.offset = offset


class JSONTypeMismatch(JSONDecodeFailure):
    def __init__(self, field: str | None = None, offset: int | None = None) -> None:
        if field:
            message = f'request body contains an invalid value for the "{field}" field'
        else:
            message = f"request body contains an invalid value (at character {offset})"
        super().__init__(message)
        self.field = field
        self.offset = offset


class JSONUnknownField(JSONDecodeFailure):
    def __init__(self, field: str) -> None:
        super().__init__(f'request body contains unknown field "{field}"')
        self.field = field


class JSONEmptyBody(JSONDecodeFailure):
    def __init__(self) -> None:
        super().__init__("request body must not be empty")


class JSONTooLarge(JSONDecodeFailure):
    def __init__(self, limit: int) -> None:
        super().__init__(f"request body must not be larger than {limit} bytes")
        self.limit = limit


class JSONTrailingData(JSONDecodeFailure):
    def __init__(self) -> None:
        super().__init__("body must only contain a single JSON object")


class JSONTargetError(JSONDecodeFailure):
    def __init__(self, detail: str) -> None:
        super().__init__(f"error unmarshalling JSON: {detail}")


class JSONEncodeError(ToolkitError):
    pass


class RemoteRequestError(ToolkitError):
    pass


class SlugifyError(ToolkitError):
    pass


class EmptyStringError(SlugifyError):
    def __init__(self) -> None:
        super().__init__("empty string")


class EmptyAfterNormalizationError(SlugifyError):
    def __init__(self) -> None:
        super().__init__("after removing characters, the string is empty")
