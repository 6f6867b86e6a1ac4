from __future__ import annotations

import re
import secrets

from request_toolkit.core.errors import EmptyAfterNormalizationError, EmptyStringError

RANDOM_STRING_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_+"
SLUG_SEPARATOR_PATTERN = re.compile(r"[^a-z0-9]+")


def random_string(length: int) -> str:
    """Return ``length`` characters drawn uniformly from ``RANDOM_STRING_ALPHABET``.

    Each character consumes one draw from the OS CSPRNG; output is not
    reproducible.
    """
    if length < 0:
        raise ValueError("length must not be negative")
    return "".join(secrets.choice(RANDOM_STRING_ALPHABET) for _ in range(length))


def slugify(value: str) -> str:
    """Lowercase ``value`` and collapse every run of non ``[a-z0-9]`` characters into ``-``.

    Only ASCII letters and digits survive, so text in other scripts is
    erased entirely.
    """
    if not value:
        raise EmptyStringError()
    slug = SLUG_SEPARATOR_PATTERN.sub("-", value.lower()).strip("-")
    if not slug:
        raise EmptyAfterNormalizationError()
    return slug
