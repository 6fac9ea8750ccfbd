import json
import logging

import pytest

from keyattest.algorithms import Algorithm, DigestSize, SelectedAlgorithm
from keyattest.jwt import (
    create_token,
    decode_token,
    encode_header,
    encode_payload,
    verify_token,
)
from keyattest.keystore import SoftwareKeyStore
from keyattest.signature import NoSuchKey, Signer
from keyattest.utils import b64decode

_R = b"\x00\x9a" + bytes(range(31))
_S = bytes(range(1, 32))
_P256_DER = b"\x30\x44\x02\x21" + _R + b"\x02\x1f" + _S


class FixedSigner(Signer):
    """Returns a canned signature and records what it was asked to sign."""

    def __init__(self, signature: bytes):
        self.signature = signature
        self.calls = []

    def sign(self, algorithm, key_handle, data):
        self.calls.append((algorithm, key_handle, data))
        return self.signature

    def verify(self, algorithm, public_key, signature, data):  # pragma: no cover
        raise NotImplementedError


class MissingKeySigner(FixedSigner):
    def sign(self, algorithm, key_handle, data):
        raise NoSuchKey(key_handle)


def _segment(value: str) -> bytes:
    return b64decode(value, urlsafe=True, padding=False)


def test_es256_token_layout():
    signer = FixedSigner(_P256_DER)

    token = create_token("ES256", "hello", signer, "test_key")

    header, payload, signature = token.split(".")
    assert _segment(header) == b'{"alg":"ES256","typ":"JWT"}'
    assert _segment(payload) == b'{"data":"hello"}'
    raw = _segment(signature)
    assert len(raw) == 64
    assert raw[0] == 0x9A
    assert raw[32] == 0x00
    assert raw[33:] == _S
    assert signer.calls == [
        ("SHA256withECDSA", "test_key", f"{header}.{payload}".encode("ascii"))
    ]


def test_text_is_serialized_verbatim():
    payload = _segment(encode_payload('héllo "wörld"\n'))
    assert payload == '{"data":"héllo \\"wörld\\"\\n"}'.encode("utf-8")
    assert json.loads(payload) == {"data": 'héllo "wörld"\n'}


def test_header_key_order():
    assert _segment(encode_header("PS512")) == b'{"alg":"PS512","typ":"JWT"}'


@pytest.mark.parametrize("alg, name", [("RS256", "SHA256withRSA"), ("PS384", "SHA384withRSA/PSS")])
def test_rsa_signatures_pass_through(alg, name):
    signature = bytes(range(256))
    signer = FixedSigner(signature)

    token = create_token(alg, "hello", signer, "test_key")

    assert _segment(token.split(".")[2]) == signature
    assert signer.calls[0][0] == name


def test_signer_errors_propagate():
    with pytest.raises(NoSuchKey):
        create_token("ES256", "hello", MissingKeySigner(b""), "absent")


def test_unsupported_algorithm():
    with pytest.raises(ValueError):
        create_token("HS256", "hello", FixedSigner(b""), "test_key")


def test_token_is_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="keyattest.jwt"):
        token = create_token("ES256", "hello", FixedSigner(_P256_DER), "test_key")
    assert token in caplog.text


@pytest.mark.parametrize("alg", ["ES256", "ES384", "ES512", "PS256"])
def test_tokens_verify_with_the_key(alg):
    keystore = SoftwareKeyStore()
    selected = SelectedAlgorithm.from_jwt_name(alg)
    public_key = keystore.generate_key_pair("test_key", selected)

    token = create_token(alg, "hello", keystore, "test_key")

    header, payload, signature = decode_token(token)
    assert header == {"alg": alg, "typ": "JWT"}
    assert payload == {"data": "hello"}
    assert len(signature) == (
        2 * selected.raw_signature_width if selected.is_elliptic_curve else 256
    )
    assert verify_token(token, public_key)

    forged = ".".join([token.split(".")[0], encode_payload("bye"), token.split(".")[2]])
    assert not verify_token(forged, public_key)


def test_truncated_ec_signature_does_not_verify():
    keystore = SoftwareKeyStore()
    public_key = keystore.generate_key_pair(
        "test_key", SelectedAlgorithm(Algorithm.ECDSA, DigestSize.SHA256)
    )
    token = create_token("ES256", "hello", keystore, "test_key")
    assert not verify_token(token[:-4], public_key)


@pytest.mark.parametrize(
    "token",
    ["", "a.b", "a.b.c.d", "e30.e30.!!", "W10.e30.", "e30.W10."],
)
def test_decode_token_rejects_malformed_input(token):
    with pytest.raises(ValueError):
        decode_token(token)
