"""DER encoders for the key attestation structures.

Used by the software keystore to issue attestation certificates and by the
test-suite to build fixtures. Output is accepted by the decoders in this
package.
"""
from __future__ import annotations

from typing import Iterable, Mapping

from asn1crypto import core as asn1_core
from asn1crypto import parser as asn1_parser

from ..der import (
    CLASS_CONTEXT,
    CLASS_UNIVERSAL,
    METHOD_CONSTRUCTED,
    METHOD_PRIMITIVE,
    TAG_ENUMERATED,
    TAG_SEQUENCE,
    TAG_SET,
)
from .application_id import AttestationApplicationId
from .base import Presence
from .record import AttestationRecord
from .root_of_trust import RootOfTrust
from .tags import (
    INTEGER_SET_TAGS,
    INTEGER_TAGS,
    PRESENCE_TAGS,
    TEXT_TAGS,
    Tag,
    TagValue,
)


def encode_integer(value: int) -> bytes:
    return asn1_core.Integer(value).dump()


def encode_enumerated(value: int) -> bytes:
    return asn1_parser.emit(
        CLASS_UNIVERSAL,
        METHOD_PRIMITIVE,
        TAG_ENUMERATED,
        asn1_core.Integer(int(value)).contents,
    )


def encode_octet_string(value: bytes) -> bytes:
    return asn1_core.OctetString(bytes(value)).dump()


def encode_boolean(value: bool) -> bytes:
    return asn1_core.Boolean(value).dump()


def encode_null() -> bytes:
    return asn1_core.Null().dump()


def encode_sequence(elements: Iterable[bytes]) -> bytes:
    return asn1_parser.emit(
        CLASS_UNIVERSAL, METHOD_CONSTRUCTED, TAG_SEQUENCE, b"".join(elements)
    )


def encode_set(elements: Iterable[bytes], sort: bool = True) -> bytes:
    """Encode a SET OF; DER orders the members by their encodings."""

    members = sorted(elements) if sort else list(elements)
    return asn1_parser.emit(
        CLASS_UNIVERSAL, METHOD_CONSTRUCTED, TAG_SET, b"".join(members)
    )


def encode_explicit(tag: int, inner: bytes) -> bytes:
    return asn1_parser.emit(CLASS_CONTEXT, METHOD_CONSTRUCTED, int(tag), inner)


def encode_application_id(app_id: AttestationApplicationId) -> bytes:
    package_infos = [
        encode_sequence(
            [
                encode_octet_string(info.package_name.encode("utf-8")),
                encode_integer(info.version),
            ]
        )
        for info in app_id.package_infos
    ]
    return encode_sequence(
        [
            # Keep the caller's package order, it is significant to readers.
            encode_set(package_infos, sort=False),
            encode_set(encode_octet_string(d) for d in app_id.signature_digests),
        ]
    )


def encode_root_of_trust(root_of_trust: RootOfTrust) -> bytes:
    fields = [
        encode_octet_string(root_of_trust.verified_boot_key),
        encode_boolean(root_of_trust.device_locked),
        encode_enumerated(root_of_trust.verified_boot_state),
    ]
    if root_of_trust.verified_boot_hash is not None:
        fields.append(encode_octet_string(root_of_trust.verified_boot_hash))
    return encode_sequence(fields)


def encode_tag_value(tag: int, value: TagValue) -> bytes:
    """Encode *value* as the explicitly tagged AuthorizationList entry *tag*."""

    if tag in INTEGER_TAGS:
        inner = encode_integer(value)  # type: ignore[arg-type]
    elif tag in TEXT_TAGS:
        inner = encode_octet_string(value.encode("utf-8"))  # type: ignore[union-attr]
    elif tag in INTEGER_SET_TAGS:
        inner = encode_set(encode_integer(v) for v in value)  # type: ignore[union-attr]
    elif tag in PRESENCE_TAGS:
        if value is not Presence.PRESENT:
            raise ValueError(f"Tag {tag} only accepts Presence.PRESENT")
        inner = encode_null()
    elif tag == Tag.ROOT_OF_TRUST:
        inner = encode_root_of_trust(value)  # type: ignore[arg-type]
    elif tag == Tag.ATTESTATION_APPLICATION_ID:
        inner = encode_octet_string(encode_application_id(value))  # type: ignore[arg-type]
    else:
        raise ValueError(f"No encoding known for authorization tag {tag}")
    return encode_explicit(tag, inner)


def encode_authorization_list(values: Mapping[int, TagValue]) -> bytes:
    return encode_sequence(encode_tag_value(tag, values[tag]) for tag in sorted(values))


def encode_key_description(record: AttestationRecord) -> bytes:
    return encode_sequence(
        [
            encode_integer(record.attestation_version),
            encode_enumerated(record.attestation_security_level),
            encode_integer(record.keymaster_version),
            encode_enumerated(record.keymaster_security_level),
            encode_octet_string(record.attestation_challenge),
            encode_octet_string(record.unique_id),
            encode_authorization_list(record.software_enforced),
            encode_authorization_list(record.hardware_enforced),
        ]
    )
