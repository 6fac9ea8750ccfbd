"""Signature algorithm selection shared by the keystore and token assembler."""
from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field
from enum import Enum, IntEnum, unique
from typing import Optional, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

ATTESTATION_CHALLENGE_LENGTH = 32

RSA_PUBLIC_EXPONENT = 65537

_SIGNATURE_NAME = re.compile(r"SHA(?P<digest>\d+)with(?P<algorithm>.+)")
_JWT_NAME = re.compile(r"(?P<prefix>[A-Z]{2})(?P<digest>\d+)")


@unique
class Algorithm(Enum):
    """Signature families, with their JWS (RFC 7518) name prefix."""

    ECDSA = ("ECDSA", "ES")
    RSA = ("RSA", "RS")
    RSAPSS = ("RSA/PSS", "PS")

    def __init__(self, display_name: str, jwt_family_prefix: str):
        self.display_name = display_name
        self.jwt_family_prefix = jwt_family_prefix

    @classmethod
    def from_name(cls, name: str) -> "Algorithm":
        for algorithm in cls:
            if name in (algorithm.name, algorithm.display_name):
                return algorithm
        raise ValueError(f"Unsupported algorithm: {name}")


@unique
class DigestSize(IntEnum):
    SHA256 = 256
    SHA384 = 384
    SHA512 = 512


_CURVES = {
    DigestSize.SHA256: ec.SECP256R1,
    DigestSize.SHA384: ec.SECP384R1,
    DigestSize.SHA512: ec.SECP521R1,
}

_RSA_KEY_SIZES = {
    DigestSize.SHA256: 2048,
    DigestSize.SHA384: 3072,
    DigestSize.SHA512: 4096,
}

_HASHES = {
    DigestSize.SHA256: hashes.SHA256,
    DigestSize.SHA384: hashes.SHA384,
    DigestSize.SHA512: hashes.SHA512,
}


def parse_signature_name(name: str) -> Tuple[Algorithm, DigestSize]:
    """Split a standard signature name such as ``SHA256withECDSA``."""

    match = _SIGNATURE_NAME.fullmatch(name)
    if not match:
        raise ValueError(f"Unsupported signature algorithm name: {name}")
    return (
        Algorithm.from_name(match.group("algorithm")),
        DigestSize(int(match.group("digest"))),
    )


@dataclass(frozen=True)
class SelectedAlgorithm:
    """An algorithm and digest size pair, plus the challenge for its key."""

    algorithm: Algorithm
    digest_size: DigestSize
    # Normally issued by a server for each key request, random for the demo.
    attestation_challenge: bytes = field(
        default_factory=lambda: secrets.token_bytes(ATTESTATION_CHALLENGE_LENGTH),
        compare=False,
        repr=False,
    )

    @classmethod
    def from_signature_name(cls, name: str) -> "SelectedAlgorithm":
        algorithm, digest_size = parse_signature_name(name)
        return cls(algorithm, digest_size)

    @classmethod
    def from_jwt_name(cls, name: str) -> "SelectedAlgorithm":
        match = _JWT_NAME.fullmatch(name)
        if match:
            for algorithm in Algorithm:
                if algorithm.jwt_family_prefix == match.group("prefix"):
                    try:
                        digest_size = DigestSize(int(match.group("digest")))
                    except ValueError:
                        break
                    return cls(algorithm, digest_size)
        raise ValueError(f"Unsupported JWS algorithm: {name}")

    @property
    def signature_name(self) -> str:
        """E.g. ``SHA256withECDSA``."""
        return f"SHA{self.digest_size.value}with{self.algorithm.display_name}"

    @property
    def jwt_name(self) -> str:
        """E.g. ``ES256``."""
        return f"{self.algorithm.jwt_family_prefix}{self.digest_size.value}"

    @property
    def is_elliptic_curve(self) -> bool:
        return self.algorithm is Algorithm.ECDSA

    @property
    def curve(self) -> Optional[ec.EllipticCurve]:
        if not self.is_elliptic_curve:
            return None
        return _CURVES[self.digest_size]()

    @property
    def rsa_key_size(self) -> Optional[int]:
        if self.is_elliptic_curve:
            return None
        return _RSA_KEY_SIZES[self.digest_size]

    @property
    def key_size(self) -> int:
        curve = self.curve
        if curve is not None:
            return curve.key_size
        return _RSA_KEY_SIZES[self.digest_size]

    @property
    def raw_signature_width(self) -> Optional[int]:
        """Bytes per ECDSA coordinate in a JWS signature, ``None`` for RSA."""

        curve = self.curve
        if curve is None:
            return None
        # P-521 needs 66 bytes.
        return (curve.key_size + 7) // 8

    @property
    def hash_algorithm(self) -> hashes.HashAlgorithm:
        return _HASHES[self.digest_size]()

    def extra_information(self) -> str:
        curve = self.curve
        if curve is not None:
            return f"Curve: {curve.name}"
        return f"Key size: {self.rsa_key_size}"
