"""Android key attestation decoding and compact token signing."""
from __future__ import annotations

from importlib import import_module
from typing import Any

from .algorithms import Algorithm, DigestSize, SelectedAlgorithm
from .der import MalformedEncoding
from .jwt import create_token, decode_token, verify_token
from .signature import (
    HardwareUnavailable,
    NoSuchKey,
    ProviderError,
    Signer,
    SignerError,
    der_to_raw_ecdsa,
)
from .utils import b64decode, b64encode

__version__ = "0.1.0"

__all__ = [
    "Algorithm",
    "DigestSize",
    "HardwareUnavailable",
    "MalformedEncoding",
    "NoSuchKey",
    "ProviderError",
    "SelectedAlgorithm",
    "Signer",
    "SignerError",
    "app",
    "b64decode",
    "b64encode",
    "create_token",
    "decode_token",
    "der_to_raw_ecdsa",
    "main",
    "verify_token",
]


def __getattr__(name: str) -> Any:
    """Import the Flask application lazily so library users do not need it."""

    if name in ("app", "main"):
        module = import_module(".app", __name__)
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
