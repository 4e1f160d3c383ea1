from __future__ import annotations

import re
import unicodedata
from urllib.parse import urlsplit

from .errors import InvalidHostError

DEFAULT_REMOTE_FILENAME = "upload.bin"
HOST_ALLOWED_REGEX = re.compile(r"[a-z0-9.\-]")


def normalize_simple(value: str) -> str:
    return value.strip()


def sanitize_remote_filename(name: str) -> str:
    trimmed = name.strip()
    if not trimmed:
        return DEFAULT_REMOTE_FILENAME
    cleaned = trimmed.replace("/", "_").replace("\\", "_").replace(":", "_")
    cleaned = cleaned.lstrip(".")
    if not cleaned:
        return DEFAULT_REMOTE_FILENAME
    return cleaned


def normalize_host(raw: str) -> str:
    value = raw.strip()

    if "://" in value:
        hostname = urlsplit(value).hostname
        if hostname:
            value = hostname
        else:
            value = value.split("://", 1)[1]

    value = value.split("/", 1)[0]
    value = value.rstrip(".")

    value = "".join(
        ch for ch in value if unicodedata.category(ch) != "Cf" and not ch.isspace()
    )
    lowered = value.lower()

    bad = [ch for ch in lowered if not HOST_ALLOWED_REGEX.fullmatch(ch)]
    if bad:
        codes = ", ".join(f"U+{ord(ch):04X}" for ch in bad)
        raise InvalidHostError(f"Invalid characters in host: {codes}")
    if not lowered:
        raise InvalidHostError("Host is empty.")
    return lowered
