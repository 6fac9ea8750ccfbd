"""Compact JWS tokens over a ``{"data": ...}`` payload.

The signature covers the exact ASCII bytes ``header.payload``, so the JSON of
both segments is serialized deterministically: fixed key order, no
whitespace.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Tuple

from .algorithms import SelectedAlgorithm
from .signature import (
    Signer,
    der_to_raw_ecdsa,
    raw_to_der_ecdsa,
    verify_with_public_key,
)
from .utils import b64decode, encode_base64url

logger = logging.getLogger(__name__)

TOKEN_TYPE = "JWT"
PAYLOAD_FIELD = "data"


def _compact_json(value: Dict[str, Any]) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def encode_header(alg: str) -> str:
    return encode_base64url(_compact_json({"alg": alg, "typ": TOKEN_TYPE}))


def encode_payload(text: str) -> str:
    return encode_base64url(_compact_json({PAYLOAD_FIELD: text}))


def to_jws_signature(selected: SelectedAlgorithm, signature: bytes) -> bytes:
    """Convert a provider signature to its JWS form.

    ECDSA signatures are converted from DER to fixed width ``r || s``. RSA
    signatures are already the size of the modulus and pass through.
    """

    width = selected.raw_signature_width
    if width is None:
        return bytes(signature)
    return der_to_raw_ecdsa(signature, width)


def create_token(alg: str, text: str, signer: Signer, key_handle: str) -> str:
    """Sign *text* with the key under *key_handle* and return a compact JWS.

    :param alg: JWS algorithm identifier, e.g. ``ES256`` or ``PS384``.
    :raises SignerError: propagated unchanged from *signer*.
    """

    selected = SelectedAlgorithm.from_jwt_name(alg)
    header = encode_header(alg)
    payload = encode_payload(text)
    signature = signer.sign(
        selected.signature_name, key_handle, f"{header}.{payload}".encode("ascii")
    )
    token = f"{header}.{payload}.{encode_base64url(to_jws_signature(selected, signature))}"
    logger.debug("Created JWT: https://jwt.io/#debugger-io?token=%s", token)
    return token


def decode_token(token: str) -> Tuple[Dict[str, Any], Dict[str, Any], bytes]:
    """Split a compact token into its header, payload and raw signature."""

    segments = token.split(".")
    if len(segments) != 3:
        raise ValueError("A compact token has exactly three segments")
    header_segment, payload_segment, signature_segment = segments
    try:
        header = json.loads(b64decode(header_segment, urlsafe=True, padding=False))
        payload = json.loads(b64decode(payload_segment, urlsafe=True, padding=False))
    except UnicodeDecodeError as exc:
        raise ValueError(f"Token segment is not UTF-8 JSON: {exc}") from exc
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise ValueError("Token header and payload must be JSON objects")
    signature = b64decode(signature_segment, urlsafe=True, padding=False)
    return header, payload, signature


def verify_token(token: str, public_key: Any) -> bool:
    """Check the signature of a compact token against *public_key*."""

    header, _, signature = decode_token(token)
    alg = header.get("alg")
    if not isinstance(alg, str):
        raise ValueError("Token header is missing the algorithm")
    selected = SelectedAlgorithm.from_jwt_name(alg)
    if selected.is_elliptic_curve:
        if len(signature) != 2 * selected.raw_signature_width:
            return False
        signature = raw_to_der_ecdsa(signature)
    signing_input = token.rsplit(".", 1)[0].encode("ascii")
    return verify_with_public_key(
        selected.signature_name, public_key, signature, signing_input
    )
