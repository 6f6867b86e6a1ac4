"""Content-type sniffing following the WHATWG MIME Sniffing algorithm.

The signature table and its order match Go's ``net/http.DetectContentType``
so that allow-lists written for Go services keep working unchanged.
"""
from __future__ import annotations

from typing import Callable

SNIFF_LEN = 512
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_WHITESPACE = b"\t\n\x0c\r "

Matcher = Callable[[bytes, int], str]


def _html(tag: bytes) -> Matcher:
    def match(data: bytes, first_non_ws: int) -> str:
        data = data[first_non_ws:]
        if len(data) < len(tag) + 1:
            return ""
        for i, expected in enumerate(tag):
            actual = data[i]
            if ord("A") <= expected <= ord("Z"):
                actual &= 0xDF
            if actual != expected:
                return ""
        # Next byte must be a tag-terminating byte.
        if data[len(tag)] not in b" >":
            return ""
        return "text/html; charset=utf-8"

    return match


def _masked(mask: bytes, pattern: bytes, content_type: str, skip_ws: bool = False) -> Matcher:
    def match(data: bytes, first_non_ws: int) -> str:
        if skip_ws:
            data = data[first_non_ws:]
        if len(data) < len(pattern):
            return ""
        for i, expected in enumerate(pattern):
            if data[i] & mask[i] != expected:
                return ""
        return content_type

    return match


def _exact(signature: bytes, content_type: str) -> Matcher:
    def match(data: bytes, first_non_ws: int) -> str:
        return content_type if data.startswith(signature) else ""

    return match


def _mp4(data: bytes, first_non_ws: int) -> str:
    if len(data) < 12:
        return ""
    box_size = int.from_bytes(data[:4], "big")
    if len(data) < box_size or box_size % 4 != 0:
        return ""
    if data[4:8] != b"ftyp":
        return ""
    for start in range(8, box_size, 4):
        if start == 12:
            # Bytes 12-15 hold the minor version.
            continue
        if data[start : start + 3] == b"mp4":
            return "video/mp4"
    return ""


def _text(data: bytes, first_non_ws: int) -> str:
    for byte in data[first_non_ws:]:
        if byte <= 0x08 or byte == 0x0B or 0x0E <= byte <= 0x1A or 0x1C <= byte <= 0x1F:
            return ""
    return "text/plain; charset=utf-8"


_HTML_TAGS = (
    b"<!DOCTYPE HTML",
    b"<HTML",
    b"<HEAD",
    b"<SCRIPT",
    b"<IFRAME",
    b"<H1",
    b"<DIV",
    b"<FONT",
    b"<TABLE",
    b"<A",
    b"<STYLE",
    b"<TITLE",
    b"<B",
    b"<BODY",
    b"<BR",
    b"<P",
    b"<!--",
)

_RIFF_MASK = b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff"

SNIFF_TABLE: tuple[Matcher, ...] = (
    *(_html(tag) for tag in _HTML_TAGS),
    _masked(b"\xff\xff\xff\xff\xff", b"<?xml", "text/xml; charset=utf-8", skip_ws=True),
    _exact(b"%PDF-", "application/pdf"),
    _exact(b"%!PS-Adobe-", "application/postscript"),
    # byte order marks
    _masked(b"\xff\xff\x00\x00", b"\xfe\xff\x00\x00", "text/plain; charset=utf-16be"),
    _masked(b"\xff\xff\x00\x00", b"\xff\xfe\x00\x00", "text/plain; charset=utf-16le"),
    _masked(b"\xff\xff\xff\x00", b"\xef\xbb\xbf\x00", "text/plain; charset=utf-8"),
    # images
    _exact(b"\x00\x00\x01\x00", "image/x-icon"),
    _exact(b"\x00\x00\x02\x00", "image/x-icon"),
    _exact(b"BM", "image/bmp"),
    _exact(b"GIF87a", "image/gif"),
    _exact(b"GIF89a", "image/gif"),
    _masked(_RIFF_MASK + b"\xff\xff", b"RIFF\x00\x00\x00\x00WEBPVP", "image/webp"),
    _exact(b"\x89PNG\x0d\x0a\x1a\x0a", "image/png"),
    _exact(b"\xff\xd8\xff", "image/jpeg"),
    # audio and video
    _masked(_RIFF_MASK, b"FORM\x00\x00\x00\x00AIFF", "audio/aiff"),
    _masked(b"\xff\xff\xff", b"ID3", "audio/mpeg"),
    _masked(b"\xff\xff\xff\xff\xff", b"OggS\x00", "application/ogg"),
    _masked(b"\xff" * 8, b"MThd\x00\x00\x00\x06", "audio/midi"),
    _masked(_RIFF_MASK, b"RIFF\x00\x00\x00\x00AVI ", "video/avi"),
    _masked(_RIFF_MASK, b"RIFF\x00\x00\x00\x00WAVE", "audio/wave"),
    _mp4,
    _exact(b"\x1a\x45\xdf\xa3", "video/webm"),
    # fonts
    _masked(b"\x00" * 34 + b"\xff\xff", b"\x00" * 34 + b"LP", "application/vnd.ms-fontobject"),
    _exact(b"\x00\x01\x00\x00", "font/ttf"),
    _exact(b"OTTO", "font/otf"),
    _exact(b"ttcf", "font/collection"),
    _exact(b"wOFF", "font/woff"),
    _exact(b"wOF2", "font/woff2"),
    # archives
    _exact(b"\x1f\x8b\x08", "application/x-gzip"),
    _exact(b"PK\x03\x04", "application/zip"),
    _exact(b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    _exact(b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    _exact(b"\x00\x61\x73\x6d", "application/wasm"),
    _text,
)


def detect_content_type(data: bytes) -> str:
    """Return the sniffed MIME type of ``data``.

    At most the first 512 bytes are considered. Always returns a valid type,
    falling back to ``application/octet-stream``.
    """
    data = bytes(data[:SNIFF_LEN])
    first_non_ws = 0
    while first_non_ws < len(data) and data[first_non_ws] in _WHITESPACE:
        first_non_ws += 1
    for matcher in SNIFF_TABLE:
        content_type = matcher(data, first_non_ws)
        if content_type:
            return content_type
    return DEFAULT_CONTENT_TYPE
