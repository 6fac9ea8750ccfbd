"""Android key attestation extension decoding."""
from __future__ import annotations

from .application_id import AttestationApplicationId, PackageInfo, decode_application_id
from .base import (
    ATTESTATION_OID,
    ApplicationIdError,
    MalformedEncoding,
    Presence,
    SecurityLevel,
    VerifiedBootState,
)
from .record import (
    AttestationRecord,
    app_signing_digests,
    challenge_matches,
    collect_tag_values,
    decode_key_description,
    find_application_ids,
    find_attestation_record,
    find_roots_of_trust,
    parse_attestation_certificate,
    record_to_json,
)
from .root_of_trust import RootOfTrust
from .tags import Tag, TagValue, decode_authorization_list, tag_name

__all__ = [
    "ATTESTATION_OID",
    "ApplicationIdError",
    "AttestationApplicationId",
    "AttestationRecord",
    "MalformedEncoding",
    "PackageInfo",
    "Presence",
    "RootOfTrust",
    "SecurityLevel",
    "Tag",
    "TagValue",
    "VerifiedBootState",
    "app_signing_digests",
    "challenge_matches",
    "collect_tag_values",
    "decode_application_id",
    "decode_authorization_list",
    "decode_key_description",
    "find_application_ids",
    "find_attestation_record",
    "find_roots_of_trust",
    "parse_attestation_certificate",
    "record_to_json",
    "tag_name",
]
