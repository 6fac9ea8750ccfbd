"""KeyDescription decoding and the queries built on top of it.

::

    KeyDescription ::= SEQUENCE {
        attestationVersion         INTEGER,
        attestationSecurityLevel   SecurityLevel,
        keyMintVersion             INTEGER,
        keyMintSecurityLevel       SecurityLevel,
        attestationChallenge       OCTET_STRING,
        uniqueId                   OCTET_STRING,
        softwareEnforced           AuthorizationList,
        hardwareEnforced           AuthorizationList,
    }
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar

from cryptography import x509
from cryptography.hazmat.backends import default_backend

from ..der import (
    MalformedEncoding,
    parse_single,
    read_enumerated,
    read_integer,
    read_octet_string,
    read_sequence,
)
from ..utils import b64encode
from .application_id import AttestationApplicationId
from .base import ATTESTATION_OID, Presence, SecurityLevel, catch_builtins, enum_value
from .root_of_trust import RootOfTrust
from .tags import TagValue, decode_authorization_elements, tag_name

logger = logging.getLogger(__name__)

OID_KEY_ATTESTATION = x509.ObjectIdentifier(ATTESTATION_OID)

_KEY_DESCRIPTION_LENGTH = 8

T = TypeVar("T")


@dataclass(frozen=True)
class AttestationRecord:
    """Decoded content of one certificate's key attestation extension."""

    attestation_version: int
    attestation_security_level: SecurityLevel
    keymaster_version: int
    keymaster_security_level: SecurityLevel
    attestation_challenge: bytes
    unique_id: bytes
    software_enforced: Mapping[int, TagValue]
    hardware_enforced: Mapping[int, TagValue]

    # Tag maps are not hashable; records compare by value only.
    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        for name in ("software_enforced", "hardware_enforced"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def attestation_challenge_b64(self) -> str:
        return b64encode(self.attestation_challenge)

    @property
    def unique_id_b64(self) -> str:
        return b64encode(self.unique_id)

    def __str__(self) -> str:
        return "\n".join(
            [
                f"attestationVersion: {self.attestation_version}",
                f"attestationSecurityLevel: {self.attestation_security_level.name}",
                f"keymasterVersion: {self.keymaster_version}",
                f"keymasterSecurityLevel: {self.keymaster_security_level.name}",
                f"attestationChallenge: {self.attestation_challenge_b64}",
                f"uniqueId: {self.unique_id_b64}",
                f"softwareEnforced: {_format_tags(self.software_enforced)}",
                f"hardwareEnforced: {_format_tags(self.hardware_enforced)}",
            ]
        )


def _format_tags(values: Mapping[int, TagValue]) -> str:
    parts = []
    for tag in sorted(values):
        value = values[tag]
        if isinstance(value, frozenset):
            value = sorted(value)
        parts.append(f"{tag_name(tag)}={value}")
    return "{" + ", ".join(parts) + "}"


@catch_builtins
def decode_key_description(der: bytes) -> AttestationRecord:
    """Decode the DER KeyDescription carried by the attestation extension."""

    fields = read_sequence(parse_single(bytes(der)), "KeyDescription")
    if len(fields) != _KEY_DESCRIPTION_LENGTH:
        raise MalformedEncoding(
            f"KeyDescription must have {_KEY_DESCRIPTION_LENGTH} elements, "
            f"found {len(fields)}"
        )
    return AttestationRecord(
        attestation_version=read_integer(fields[0], "attestationVersion"),
        attestation_security_level=enum_value(
            SecurityLevel,
            read_enumerated(fields[1], "attestationSecurityLevel"),
            "attestationSecurityLevel",
        ),
        keymaster_version=read_integer(fields[2], "keymasterVersion"),
        keymaster_security_level=enum_value(
            SecurityLevel,
            read_enumerated(fields[3], "keymasterSecurityLevel"),
            "keymasterSecurityLevel",
        ),
        attestation_challenge=read_octet_string(fields[4], "attestationChallenge"),
        unique_id=read_octet_string(fields[5], "uniqueId"),
        software_enforced=decode_authorization_elements(fields[6]),
        hardware_enforced=decode_authorization_elements(fields[7]),
    )


def parse_attestation_certificate(cert_der: bytes) -> Optional[AttestationRecord]:
    """Decode the attestation extension of a DER certificate.

    Returns ``None`` when the certificate carries no attestation extension.
    A corrupt extension raises :class:`MalformedEncoding`.
    """

    try:
        cert = x509.load_der_x509_certificate(bytes(cert_der), default_backend())
        extensions = cert.extensions
    except (ValueError, x509.DuplicateExtension) as exc:
        raise MalformedEncoding(f"Invalid certificate: {exc}") from exc
    try:
        ext = extensions.get_extension_for_oid(OID_KEY_ATTESTATION)
    except x509.ExtensionNotFound:
        logger.debug("Certificate carries no key attestation extension")
        return None
    # X.509 wraps extension values in an OCTET STRING, cryptography strips it.
    return decode_key_description(ext.value.value)


def find_attestation_record(chain: Iterable[bytes]) -> Optional[AttestationRecord]:
    """Return the record of the first certificate (leaf first) that has one."""

    for cert_der in chain:
        record = parse_attestation_certificate(cert_der)
        if record is not None:
            return record
    return None


def collect_tag_values(
    software: Mapping[int, TagValue],
    hardware: Mapping[int, TagValue],
    variant: Type[T],
) -> List[T]:
    """Values of type *variant* from both maps, software first, deduplicated."""

    found: List[T] = []
    for values in (software, hardware):
        for tag in sorted(values):
            value = values[tag]
            if isinstance(value, variant) and value not in found:
                found.append(value)
    return found


def find_application_ids(
    software: Mapping[int, TagValue], hardware: Mapping[int, TagValue]
) -> List[AttestationApplicationId]:
    return collect_tag_values(software, hardware, AttestationApplicationId)


def find_roots_of_trust(
    software: Mapping[int, TagValue], hardware: Mapping[int, TagValue]
) -> List[RootOfTrust]:
    return collect_tag_values(software, hardware, RootOfTrust)


def app_signing_digests(record: AttestationRecord) -> List[str]:
    """Colon hex digests of the signing certificates of the attested app."""

    digests: List[str] = []
    for app_id in find_application_ids(
        record.software_enforced, record.hardware_enforced
    ):
        for digest in app_id.signature_digests_hex:
            if digest not in digests:
                digests.append(digest)
    return digests


def challenge_matches(record: AttestationRecord, nonce: bytes) -> bool:
    return hmac.compare_digest(record.attestation_challenge, bytes(nonce))


def _tag_value_to_json(value: TagValue) -> Any:
    if isinstance(value, Presence):
        return True
    if isinstance(value, frozenset):
        return sorted(value)
    if isinstance(value, AttestationApplicationId):
        return {
            "packageInfos": [
                {"packageName": info.package_name, "version": info.version}
                for info in value.package_infos
            ],
            "signatureDigests": value.signature_digests_hex,
        }
    if isinstance(value, RootOfTrust):
        return {
            "verifiedBootKey": b64encode(value.verified_boot_key),
            "deviceLocked": value.device_locked,
            "verifiedBootState": value.verified_boot_state.name,
            "verifiedBootHash": (
                b64encode(value.verified_boot_hash)
                if value.verified_boot_hash is not None
                else None
            ),
        }
    return value


def authorization_list_to_json(values: Mapping[int, TagValue]) -> Dict[str, Any]:
    return {tag_name(tag): _tag_value_to_json(values[tag]) for tag in sorted(values)}


def record_to_json(record: AttestationRecord) -> Dict[str, Any]:
    """Render *record* with schema field names and base64 byte strings."""

    return {
        "attestationVersion": record.attestation_version,
        "attestationSecurityLevel": record.attestation_security_level.name,
        "keymasterVersion": record.keymaster_version,
        "keymasterSecurityLevel": record.keymaster_security_level.name,
        "attestationChallenge": record.attestation_challenge_b64,
        "uniqueId": record.unique_id_b64,
        "softwareEnforced": authorization_list_to_json(record.software_enforced),
        "hardwareEnforced": authorization_list_to_json(record.hardware_enforced),
    }
