from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

log = logging.getLogger("request-toolkit.config")

DEFAULT_MAX_UPLOAD_BYTES = 1024 * 1024 * 1024
DEFAULT_MAX_JSON_BYTES = 1024 * 1024
CONFIG_ENV_VAR = "REQUEST_TOOLKIT_CONFIG"


class ToolkitConfig(BaseModel):
    """Limits and policies shared by the upload and JSON helpers.

    The instance is owned by the caller and read on every call. Mutating it
    while another request is using it is not supported; build one per
    request when limits differ.
    """

    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    allowed_content_types: list[str] = Field(default_factory=list)
    max_json_bytes: int = DEFAULT_MAX_JSON_BYTES
    allow_unknown_json_fields: bool = False

    @field_validator("max_upload_bytes", mode="before")
    @classmethod
    def _default_upload_limit(cls, value: Any) -> Any:
        if value is None or (isinstance(value, int) and value <= 0):
            return DEFAULT_MAX_UPLOAD_BYTES
        return value

    @field_validator("max_json_bytes", mode="before")
    @classmethod
    def _default_json_limit(cls, value: Any) -> Any:
        if value is None or (isinstance(value, int) and value <= 0):
            return DEFAULT_MAX_JSON_BYTES
        return value

    def effective_upload_limit(self) -> int:
        # Assignment after construction bypasses the validators.
        return self.max_upload_bytes if self.max_upload_bytes > 0 else DEFAULT_MAX_UPLOAD_BYTES

    def effective_json_limit(self) -> int:
        return self.max_json_bytes if self.max_json_bytes > 0 else DEFAULT_MAX_JSON_BYTES

    def allows_content_type(self, content_type: str) -> bool:
        """An empty allow-list accepts everything; otherwise match case-insensitively."""
        if not self.allowed_content_types:
            return True
        wanted = content_type.casefold()
        return any(entry.casefold() == wanted for entry in self.allowed_content_types)

    @classmethod
    def _resolve_path(cls, path: Path | str | None) -> Path | None:
        if path is not None:
            return Path(path).expanduser()
        raw = os.getenv(CONFIG_ENV_VAR, "")
        if raw.strip():
            return Path(raw.strip()).expanduser()
        return None

    @classmethod
    def load(cls, path: Path | str | None = None) -> "ToolkitConfig":
        """
        Load the toolkit config from a JSON file.

        Never raises for config problems: a missing, unreadable, corrupt or
        invalid file is logged and the defaults are returned.
        """
        config_path = cls._resolve_path(path)
        if config_path is None:
            return cls()

        if not config_path.exists():
            log.info("Config file %s not found; using defaults.", config_path)
            return cls()

        if not config_path.is_file():
            log.warning("Config path %s is not a file; using defaults.", config_path)
            return cls()

        try:
            raw_text = config_path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            log.warning("Failed to read config file %s: %s", config_path, exc)
            return cls()

        try:
            data: dict[str, Any] = json.loads(raw_text or "{}")
        except json.JSONDecodeError as exc:
            log.warning("Corrupt config JSON in %s (%s); using defaults.", config_path, exc)
            return cls()

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            log.warning("Invalid config schema in %s (%s); using defaults.", config_path, exc)
            return cls()
