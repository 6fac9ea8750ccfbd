"""Base64 and hex helpers used by the token and attestation display paths.

Two independent properties select the base64 flavour: the alphabet (standard
or URL-safe) and whether ``=`` padding is emitted. Compact tokens always use
URL-safe without padding, PEM bodies use padded standard base64, and plain
digest display uses unpadded standard base64.
"""
from __future__ import annotations

import base64
import binascii
import re
import textwrap
from typing import Union

from fido2.utils import websafe_decode, websafe_encode

__all__ = [
    "b64decode",
    "b64encode",
    "colon_hex",
    "encode_base64url",
    "from_pem",
    "to_pem",
]

_STANDARD_ALPHABET = re.compile(r"[A-Za-z0-9+/]*={0,2}")
_URLSAFE_ALPHABET = re.compile(r"[A-Za-z0-9_-]*={0,2}")

_PEM_BLOCK = re.compile(
    r"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\s*(?P<body>.*?)\s*-----END (?P=label)-----",
    re.DOTALL,
)

BytesLike = Union[bytes, bytearray, memoryview]


def b64encode(data: BytesLike, *, urlsafe: bool = False, padding: bool = True) -> str:
    """Encode *data* using the selected alphabet and padding."""

    if urlsafe and not padding:
        return websafe_encode(bytes(data))
    encoder = base64.urlsafe_b64encode if urlsafe else base64.b64encode
    encoded = encoder(bytes(data)).decode("ascii")
    return encoded if padding else encoded.rstrip("=")


def b64decode(
    text: Union[str, bytes], *, urlsafe: bool = False, padding: bool = True
) -> bytes:
    """Inverse of :func:`b64encode` for the same alphabet and padding."""

    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("ascii")
        except UnicodeDecodeError as exc:
            raise ValueError("Base64 input must be ASCII") from exc

    alphabet = _URLSAFE_ALPHABET if urlsafe else _STANDARD_ALPHABET
    if not alphabet.fullmatch(text):
        raise ValueError("Invalid characters in base64 input")

    stripped = text.rstrip("=")
    if padding:
        if len(text) % 4:
            raise ValueError("Padded base64 input must be a multiple of 4 characters")
    elif stripped != text:
        raise ValueError("Unpadded base64 input must not contain padding")
    if len(stripped) % 4 == 1:
        raise ValueError("Invalid base64 input length")

    if urlsafe and not padding:
        return websafe_decode(stripped)
    try:
        return base64.b64decode(
            stripped + "=" * (-len(stripped) % 4),
            altchars=b"-_" if urlsafe else None,
            validate=True,
        )
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 input: {exc}") from exc


def encode_base64url(data: BytesLike) -> str:
    """Encode bytes as unpadded base64url."""
    return b64encode(data, urlsafe=True, padding=False)


def colon_hex(data: bytes) -> str:
    return ":".join(f"{byte:02x}" for byte in data)


def to_pem(der: BytesLike, label: str) -> str:
    """Wrap DER bytes in a PEM block using padded standard base64."""

    body = "\n".join(textwrap.wrap(b64encode(der), 64))
    return f"-----BEGIN {label}-----\n{body}\n-----END {label}-----\n"


def from_pem(text: str, label: str) -> bytes:
    for match in _PEM_BLOCK.finditer(text):
        if match.group("label") == label:
            body = "".join(match.group("body").split())
            return b64decode(body)
    raise ValueError(f"No PEM block labelled {label!r}")
