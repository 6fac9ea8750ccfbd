import hashlib

import pytest
from asn1crypto import core as asn1_core
from asn1crypto import parser as asn1_parser

from keyattest.attestation import (
    ApplicationIdError,
    AttestationApplicationId,
    PackageInfo,
    decode_application_id,
)
from keyattest.attestation.encode import encode_application_id

_DIGEST = hashlib.sha256(b"signing certificate").digest()


def _sequence(*members: bytes) -> bytes:
    return asn1_parser.emit(0, 1, 16, b"".join(members))


def _set(*members: bytes) -> bytes:
    return asn1_parser.emit(0, 1, 17, b"".join(members))


def _package(name: str, version: int) -> bytes:
    return _sequence(
        asn1_core.OctetString(name.encode("utf-8")).dump(),
        asn1_core.Integer(version).dump(),
    )


def test_two_packages_keep_their_order():
    der = _sequence(
        _set(_package("com.example.app", 1), _package("com.example.app.debug", 2)),
        _set(asn1_core.OctetString(_DIGEST).dump()),
    )

    app_id = decode_application_id(der)

    assert app_id.package_infos == (
        PackageInfo("com.example.app", 1),
        PackageInfo("com.example.app.debug", 2),
    )
    assert app_id.signature_digests == frozenset({_DIGEST})


def test_encoder_output_decodes_to_equal_value():
    app_id = AttestationApplicationId(
        package_infos=(PackageInfo("dio.security", 7),),
        signature_digests=frozenset({_DIGEST, b"\x01" * 32}),
    )
    assert decode_application_id(encode_application_id(app_id)) == app_id


def test_display():
    app_id = AttestationApplicationId(
        package_infos=(PackageInfo("com.example.app", 3),),
        signature_digests=frozenset({b"\xab\x01"}),
    )
    assert app_id.signature_digests_hex == ["ab:01"]
    assert str(app_id) == "packages: com.example.app (v3); signatureDigests: ab:01"


@pytest.mark.parametrize(
    "der",
    [
        b"",
        _sequence(_set(_package("com.example.app", 1))),
        _sequence(
            _sequence(_package("com.example.app", 1)),
            _set(asn1_core.OctetString(_DIGEST).dump()),
        ),
        _sequence(
            _set(_package("com.example.app", 2**63)),
            _set(),
        ),
        _sequence(
            _set(_sequence(asn1_core.OctetString(b"com.example.app").dump())),
            _set(),
        ),
        _sequence(
            _set(_package("com.example.app", 1)),
            _set(asn1_core.Integer(1).dump()),
        ),
        _sequence(_set(), _set()) + b"\x00",
    ],
)
def test_malformed_application_ids(der):
    with pytest.raises(ApplicationIdError):
        decode_application_id(der)


def test_largest_version_is_accepted():
    der = _sequence(_set(_package("com.example.app", 2**63 - 1)), _set())
    assert decode_application_id(der).package_infos[0].version == 2**63 - 1
