"""Hex text <-> bytes conversion used by the authentication frame."""
from __future__ import annotations

import re
from typing import Union

from vecsum.exceptions import HexDecodeError

_HEX_RE = re.compile(r"[0-9a-fA-F]*")
_HEX_BYTES_RE = re.compile(rb"[0-9a-fA-F]*")


def bytes_to_hex(data: bytes) -> str:
    """Encode each byte as two uppercase hex digits."""
    return bytes(data).hex().upper()


def is_valid_hex(text: Union[str, bytes]) -> bool:
    """True when every character is a hex digit. The empty string is valid."""
    pattern = _HEX_BYTES_RE if isinstance(text, (bytes, bytearray)) else _HEX_RE
    return pattern.fullmatch(text) is not None


def hex_to_bytes(text: str, expected_len: int) -> bytes:
    """
    Decode hex text into exactly expected_len bytes (case-insensitive).

    Raises:
        HexDecodeError: wrong length or a non-hex character
    """
    if len(text) != expected_len * 2:
        raise HexDecodeError(
            f"Hex length {len(text)} does not match {expected_len} bytes",
            details={"length": len(text), "expected_bytes": expected_len},
        )
    # bytes.fromhex tolerates whitespace, so validate first
    if not is_valid_hex(text):
        raise HexDecodeError("Non-hex character in input", details={"length": len(text)})
    return bytes.fromhex(text)
