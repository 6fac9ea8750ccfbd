"""Signer contract and conversion between DER and raw ECDSA signatures.

JWS (RFC 7518 section 3.4) carries ECDSA signatures as the fixed width
concatenation ``r || s`` while signing providers return the DER encoding::

    ECDSA-Sig-Value ::= SEQUENCE { r INTEGER, s INTEGER }
"""
from __future__ import annotations

import abc
from typing import Any

from cryptography.exceptions import InvalidSignature as _InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from .algorithms import Algorithm, SelectedAlgorithm
from .der import (
    TAG_INTEGER,
    Element,
    MalformedEncoding,
    expect_universal,
    parse_single,
    read_sequence,
)

__all__ = [
    "HardwareUnavailable",
    "NoSuchKey",
    "ProviderError",
    "Signer",
    "SignerError",
    "der_to_raw_ecdsa",
    "raw_to_der_ecdsa",
    "sign_with_private_key",
    "verify_with_public_key",
]


class SignerError(Exception):
    """Base exception for signing provider failures."""


class NoSuchKey(SignerError):
    """No key is stored under the requested handle."""

    def __init__(self, key_handle: str):
        super().__init__(f'No key stored under alias "{key_handle}"')
        self.key_handle = key_handle


class HardwareUnavailable(SignerError):
    """The requested secure hardware cannot service the request."""


class ProviderError(SignerError):
    """The provider rejected the request or failed while serving it."""


class Signer(abc.ABC):
    """Signing capability keyed by an opaque handle."""

    @abc.abstractmethod
    def sign(self, algorithm: str, key_handle: str, data: bytes) -> bytes:
        """Sign *data* with the key stored under *key_handle*.

        :param algorithm: Standard signature name, e.g. ``SHA256withECDSA``.
        :return: The provider's signature, DER encoded for ECDSA.
        """

    @abc.abstractmethod
    def verify(
        self, algorithm: str, public_key: Any, signature: bytes, data: bytes
    ) -> bool:
        """Check *signature* over *data* with *public_key*."""


def _integer_magnitude(element: Element, name: str) -> bytes:
    value = expect_universal(element, TAG_INTEGER, f"ECDSA {name}")
    if not value:
        raise MalformedEncoding(f"INTEGER {name} is empty")
    # Sign byte added when the high bit of the magnitude is set.
    if len(value) > 1 and value[0] == 0x00:
        value = value[1:]
    return value


def _fit(value: bytes, width: int) -> bytes:
    if len(value) > width:
        return value[-width:]
    return value.rjust(width, b"\x00")


def der_to_raw_ecdsa(der: bytes, width: int) -> bytes:
    """Convert a DER ECDSA signature to ``r || s``, each *width* bytes long."""

    if width <= 0:
        raise ValueError("Coordinate width must be positive")
    members = read_sequence(parse_single(bytes(der)), "ECDSA signature")
    if len(members) != 2:
        raise MalformedEncoding(
            f"ECDSA signature must hold 2 INTEGERs, found {len(members)}"
        )
    r = _integer_magnitude(members[0], "r")
    s = _integer_magnitude(members[1], "s")
    return _fit(r, width) + _fit(s, width)


def raw_to_der_ecdsa(raw: bytes) -> bytes:
    """Inverse of :func:`der_to_raw_ecdsa`, producing a minimal DER encoding."""

    if not raw or len(raw) % 2:
        raise ValueError("Raw ECDSA signature must have an even, non-zero length")
    width = len(raw) // 2
    r = int.from_bytes(raw[:width], "big")
    s = int.from_bytes(raw[width:], "big")
    return encode_dss_signature(r, s)


def _rsa_padding(selected: SelectedAlgorithm) -> padding.AsymmetricPadding:
    if selected.algorithm is Algorithm.RSAPSS:
        return padding.PSS(
            mgf=padding.MGF1(selected.hash_algorithm),
            salt_length=selected.hash_algorithm.digest_size,
        )
    return padding.PKCS1v15()


def sign_with_private_key(algorithm: str, private_key: Any, data: bytes) -> bytes:
    """Sign with a ``cryptography`` private key, ECDSA output is DER."""

    selected = SelectedAlgorithm.from_signature_name(algorithm)
    if selected.is_elliptic_curve:
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ProviderError(f"{algorithm} requires an EC private key")
        return private_key.sign(bytes(data), ec.ECDSA(selected.hash_algorithm))
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise ProviderError(f"{algorithm} requires an RSA private key")
    return private_key.sign(
        bytes(data), _rsa_padding(selected), selected.hash_algorithm
    )


def verify_with_public_key(
    algorithm: str, public_key: Any, signature: bytes, data: bytes
) -> bool:
    """Verify a provider signature (DER for ECDSA) with a public key."""

    selected = SelectedAlgorithm.from_signature_name(algorithm)
    try:
        if selected.is_elliptic_curve:
            if not isinstance(public_key, ec.EllipticCurvePublicKey):
                raise ValueError(f"{algorithm} requires an EC public key")
            public_key.verify(
                bytes(signature), bytes(data), ec.ECDSA(selected.hash_algorithm)
            )
        else:
            if not isinstance(public_key, rsa.RSAPublicKey):
                raise ValueError(f"{algorithm} requires an RSA public key")
            public_key.verify(
                bytes(signature),
                bytes(data),
                _rsa_padding(selected),
                selected.hash_algorithm,
            )
    except _InvalidSignature:
        return False
    return True
