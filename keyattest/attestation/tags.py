"""Decoding of AuthorizationList sequences into ``{tag number: value}`` maps.

Each entry of an AuthorizationList is an EXPLICIT context-specific tag whose
number selects how the single wrapped element is interpreted. The mapping from
tag number to decoder is fixed for the attestation schema and resolved once at
import time; numbers missing from the table are skipped so newer schema
versions still decode.
"""
from __future__ import annotations

import logging
from enum import IntEnum, unique
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Mapping, Union

from ..der import (
    CLASS_CONTEXT,
    METHOD_CONSTRUCTED,
    Element,
    MalformedEncoding,
    parse_single,
    read_integer,
    read_null,
    read_octet_string,
    read_sequence,
    read_set,
)
from .application_id import AttestationApplicationId, decode_application_id
from .base import Presence, catch_builtins
from .root_of_trust import RootOfTrust, decode_root_of_trust

logger = logging.getLogger(__name__)

TagValue = Union[
    int, str, FrozenSet[int], Presence, AttestationApplicationId, RootOfTrust
]


@unique
class Tag(IntEnum):
    """Known authorization tag numbers."""

    PURPOSE = 1
    ALGORITHM = 2
    KEY_SIZE = 3
    BLOCK_MODE = 4
    DIGEST = 5
    PADDING = 6
    CALLER_NONCE = 7
    MIN_MAC_LENGTH = 8
    EC_CURVE = 10
    RSA_PUBLIC_EXPONENT = 200
    MGF_DIGEST = 203
    ROLLBACK_RESISTANCE = 303
    EARLY_BOOT_ONLY = 305
    ACTIVE_DATE_TIME = 400
    ORIGINATION_EXPIRE_DATE_TIME = 401
    USAGE_EXPIRE_DATE_TIME = 402
    USAGE_COUNT_LIMIT = 405
    USER_SECURE_ID = 502
    NO_AUTH_REQUIRED = 503
    USER_AUTH_TYPE = 504
    AUTH_TIMEOUT = 505
    ALLOW_WHILE_ON_BODY = 506
    TRUSTED_USER_PRESENCE_REQUIRED = 507
    TRUSTED_CONFIRMATION_REQUIRED = 508
    UNLOCKED_DEVICE_REQUIRED = 509
    CREATION_DATE_TIME = 701
    ORIGIN = 702
    ROOT_OF_TRUST = 704
    OS_VERSION = 705
    OS_PATCH_LEVEL = 706
    ATTESTATION_APPLICATION_ID = 709
    ATTESTATION_ID_BRAND = 710
    ATTESTATION_ID_DEVICE = 711
    ATTESTATION_ID_PRODUCT = 712
    ATTESTATION_ID_SERIAL = 713
    ATTESTATION_ID_IMEI = 714
    ATTESTATION_ID_MEID = 715
    ATTESTATION_ID_MANUFACTURER = 716
    ATTESTATION_ID_MODEL = 717
    VENDOR_PATCH_LEVEL = 718
    BOOT_PATCH_LEVEL = 719
    DEVICE_UNIQUE_ATTESTATION = 720
    ATTESTATION_ID_SECOND_IMEI = 723


INTEGER_TAGS: FrozenSet[int] = frozenset(
    {2, 3, 8, 10, 200, 400, 401, 402, 405, 502, 504, 505, 701, 702, 705, 706, 718, 719}
)
TEXT_TAGS: FrozenSet[int] = frozenset(
    {710, 711, 712, 713, 714, 715, 716, 717, 723}
)
INTEGER_SET_TAGS: FrozenSet[int] = frozenset({1, 4, 5, 6, 203})
PRESENCE_TAGS: FrozenSet[int] = frozenset({7, 303, 305, 503, 506, 507, 508, 509, 720})


def tag_name(tag: int) -> str:
    """Return the schema field name for *tag*, e.g. ``keySize``."""

    try:
        first, *rest = Tag(tag).name.lower().split("_")
    except ValueError:
        return f"tag{tag}"
    return first + "".join(part.title() for part in rest)


def _decode_integer(inner: Element) -> int:
    return read_integer(inner, "INTEGER authorization")


def _decode_text(inner: Element) -> str:
    return read_octet_string(inner, "OCTET STRING authorization").decode("utf-8")


def _decode_integer_set(inner: Element) -> FrozenSet[int]:
    return frozenset(
        read_integer(element, "SET OF INTEGER member")
        for element in read_set(inner, "SET OF INTEGER authorization")
    )


def _decode_presence(inner: Element) -> Presence:
    read_null(inner, "NULL authorization")
    return Presence.PRESENT


def _decode_application_id(inner: Element) -> AttestationApplicationId:
    return decode_application_id(
        read_octet_string(inner, "attestationApplicationId")
    )


def _build_dispatch_table() -> Mapping[int, Callable[[Element], TagValue]]:
    table: Dict[int, Callable[[Element], TagValue]] = {}
    for tags, decoder in (
        (INTEGER_TAGS, _decode_integer),
        (TEXT_TAGS, _decode_text),
        (INTEGER_SET_TAGS, _decode_integer_set),
        (PRESENCE_TAGS, _decode_presence),
        ({Tag.ROOT_OF_TRUST}, decode_root_of_trust),
        ({Tag.ATTESTATION_APPLICATION_ID}, _decode_application_id),
    ):
        for tag in tags:
            if tag in table:
                raise RuntimeError(f"Tag {tag} assigned to more than one class")
            table[int(tag)] = decoder
    return MappingProxyType(table)


TAG_DECODERS = _build_dispatch_table()


def decode_authorization_elements(element: Element) -> Mapping[int, TagValue]:
    """Decode an already parsed AuthorizationList SEQUENCE element."""

    values: Dict[int, TagValue] = {}
    for child in read_sequence(element, "AuthorizationList"):
        if child.class_ != CLASS_CONTEXT:
            raise MalformedEncoding(
                f"AuthorizationList entries must be context tagged, "
                f"found {child.describe()}"
            )
        decoder = TAG_DECODERS.get(child.tag)
        if decoder is None:
            logger.debug("Skipping unknown authorization tag %d", child.tag)
            continue
        if child.method != METHOD_CONSTRUCTED:
            raise MalformedEncoding(
                f"Authorization {tag_name(child.tag)} must be explicitly tagged"
            )
        inner = parse_single(child.contents)
        values[child.tag] = decoder(inner)
    return MappingProxyType(values)


@catch_builtins
def decode_authorization_list(der: bytes) -> Mapping[int, TagValue]:
    """Decode a DER AuthorizationList into a read-only ``{tag: value}`` map."""

    return decode_authorization_elements(parse_single(bytes(der)))


__all__ = [
    "INTEGER_SET_TAGS",
    "INTEGER_TAGS",
    "PRESENCE_TAGS",
    "TAG_DECODERS",
    "TEXT_TAGS",
    "Tag",
    "TagValue",
    "decode_authorization_elements",
    "decode_authorization_list",
    "tag_name",
]
