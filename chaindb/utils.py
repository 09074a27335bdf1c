"""Utility functions for logging, environment variables, and record keys."""
from __future__ import annotations

import base64
import binascii
import os
import time

SYSTEM_VERSION = "1.0.0"

try:
    from colorama import Fore, Style, init as colorama_init
except Exception:
    Fore = None
    Style = None
    colorama_init = None


def _format_fields(message: str, fields: dict) -> str:
    if not fields:
        return message
    pairs = " ".join(f"{key}={value}" for key, value in fields.items())
    return f"{message} {pairs}"


def log_info(message: str, **fields):
    if colorama_init:
        colorama_init()
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] {_format_fields(message, fields)}")


def log_warn(message: str, **fields):
    if colorama_init:
        colorama_init()
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    text = _format_fields(message, fields)
    if Fore and Style:
        print(f"{Fore.RED}[{timestamp}] {text}{Style.RESET_ALL}")
    else:
        print(f"[{timestamp}] {text}")


def log_notice(message: str, **fields):
    """Yellow notification log for moderate importance warnings."""
    if colorama_init:
        colorama_init()
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    text = _format_fields(message, fields)
    if Fore and Style:
        print(f"{Fore.YELLOW}[{timestamp}] {text}{Style.RESET_ALL}")
    else:
        print(f"[{timestamp}] {text}")


def log_success(message: str, **fields):
    if colorama_init:
        colorama_init()
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    text = _format_fields(message, fields)
    if Fore and Style:
        print(f"{Fore.GREEN}[{timestamp}] {text}{Style.RESET_ALL}")
    else:
        print(f"[{timestamp}] {text}")


def colorize_url(url: str) -> str:
    if Fore and Style:
        return f"{Fore.CYAN}{url}{Style.RESET_ALL}"
    return url


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if raw.isdigit():
        return int(raw)
    return default


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw)
    except Exception:
        return default


def derive_key(name: str) -> str:
    """Return the document identifier for a file name.

    The identifier is the standard (padded) base64 encoding of the UTF-8
    name. It encodes the name, not the file contents, so a rename is a
    delete followed by a create.
    """
    return base64.b64encode(name.encode("utf-8")).decode("ascii")


def decode_key(key: str) -> str:
    """Inverse of :func:`derive_key`. Raises ``ValueError`` on a malformed key."""
    try:
        return base64.b64decode(key.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise ValueError(f"invalid record key: {key!r}") from exc
