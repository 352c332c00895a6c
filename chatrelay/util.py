from __future__ import annotations

import os
from typing import Any

from .constants import WIRE_ENCODING


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def decode_chunk(data: bytes) -> str:
    # Chunks are not aligned to characters, so a multi-byte sequence may be
    # split across reads. Replace rather than fail.
    return bytes(data).decode(WIRE_ENCODING, "replace")


def encode_text(text: str) -> bytes:
    return text.encode(WIRE_ENCODING)


def fmt_peer(addr: Any) -> str:
    if isinstance(addr, tuple) and len(addr) >= 2:
        host, port = addr[0], addr[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    if addr:
        return str(addr)
    return "-"
