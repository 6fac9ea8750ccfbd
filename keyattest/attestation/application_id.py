"""Decoder for the AttestationApplicationId authorization (tag 709).

::

    AttestationApplicationId ::= SEQUENCE {
        package_infos      SET OF AttestationPackageInfo,
        signature_digests  SET OF OCTET_STRING,
    }

    AttestationPackageInfo ::= SEQUENCE {
        package_name  OCTET_STRING,
        version       INTEGER,
    }
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, List, Tuple

from ..der import (
    Element,
    parse_single,
    read_integer,
    read_octet_string,
    read_sequence,
    read_set,
)
from ..utils import colon_hex
from .base import ApplicationIdError

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class PackageInfo:
    package_name: str
    version: int

    def __str__(self) -> str:
        return f"{self.package_name} (v{self.version})"


@dataclass(frozen=True)
class AttestationApplicationId:
    """Packages sharing the calling UID plus their signing certificate digests."""

    package_infos: Tuple[PackageInfo, ...]
    signature_digests: FrozenSet[bytes]

    @property
    def signature_digests_hex(self) -> List[str]:
        """Digests rendered as colon separated hex, sorted for stable output."""
        return sorted(colon_hex(digest) for digest in self.signature_digests)

    def __str__(self) -> str:
        packages = ", ".join(str(info) for info in self.package_infos)
        digests = ", ".join(self.signature_digests_hex)
        return f"packages: {packages}; signatureDigests: {digests}"


def _decode_package_info(element: Element) -> PackageInfo:
    fields = read_sequence(element, "AttestationPackageInfo")
    if len(fields) != 2:
        raise ApplicationIdError(
            f"AttestationPackageInfo must have 2 elements, found {len(fields)}"
        )
    name = read_octet_string(fields[0], "package_name").decode("utf-8")
    version = read_integer(fields[1], "version")
    if not _INT64_MIN <= version <= _INT64_MAX:
        raise ApplicationIdError(f"Package version {version} exceeds 64 bits")
    return PackageInfo(package_name=name, version=version)


def _decode(der: bytes) -> AttestationApplicationId:
    fields = read_sequence(parse_single(der), "AttestationApplicationId")
    if len(fields) != 2:
        raise ApplicationIdError(
            f"AttestationApplicationId must have 2 elements, found {len(fields)}"
        )
    package_infos = tuple(
        _decode_package_info(element)
        for element in read_set(fields[0], "package_infos")
    )
    signature_digests = frozenset(
        read_octet_string(element, "signature_digest")
        for element in read_set(fields[1], "signature_digests")
    )
    return AttestationApplicationId(
        package_infos=package_infos, signature_digests=signature_digests
    )


def decode_application_id(der: bytes) -> AttestationApplicationId:
    """Decode the DER payload carried inside the tag 709 OCTET STRING.

    Every failure is reported as :class:`ApplicationIdError` so callers can tell
    a broken nested structure apart from a broken outer KeyDescription.
    """

    try:
        return _decode(bytes(der))
    except ApplicationIdError:
        raise
    except (ValueError, IndexError) as exc:
        raise ApplicationIdError(f"AttestationApplicationId: {exc}") from exc
