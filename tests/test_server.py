import logging

import keyattest.app as keyattest_app
from keyattest.config import _configure_logging, _env_flag, app


def _generate(client, algorithm="ECDSA", digest_size=256):
    return client.post("/api/keys", json={"algorithm": algorithm, "digestSize": digest_size})


def test_algorithms(client):
    response = client.get("/api/algorithms")

    assert response.status_code == 200
    body = response.get_json()
    assert body["algorithms"] == ["ECDSA", "RSA", "RSA/PSS"]
    assert body["digestSizes"] == [256, 384, 512]
    assert body["hasStrongBox"] is False


def test_requests_before_key_generation(client):
    assert client.get("/api/attestation").status_code == 404
    assert client.post("/api/sign", json={"text": "hello"}).status_code == 404


def test_generate_key(client):
    response = _generate(client, digest_size=384)

    assert response.status_code == 200
    body = response.get_json()
    assert body["publicKey"].startswith("-----BEGIN PUBLIC KEY-----")
    assert body["signatureAlgorithm"] == "SHA384withECDSA"
    assert body["jwtAlgorithm"] == "ES384"
    assert body["extraInformation"] == "Curve: secp384r1"
    assert body["hardwareBacked"] is False


def test_generate_key_validation(client):
    assert client.post("/api/keys", data="ECDSA").status_code == 400
    assert client.post("/api/keys", json={"digestSize": 256}).status_code == 400
    assert _generate(client, algorithm="DSA").status_code == 422
    assert _generate(client, digest_size=224).status_code == 422


def test_sign_and_verify(client):
    _generate(client)

    signed = client.post("/api/sign", json={"text": "hello"})
    assert signed.status_code == 200
    body = signed.get_json()
    assert body["verified"] is True
    assert "=" not in body["signature"]

    verified = client.post(
        "/api/verify", json={"text": "hello", "signature": body["signature"]}
    )
    assert verified.get_json() == {"verified": True}

    tampered = client.post(
        "/api/verify", json={"text": "hullo", "signature": body["signature"]}
    )
    assert tampered.get_json() == {"verified": False}

    token = client.post("/api/verify", json={"token": body["jwt"]})
    assert token.get_json() == {"verified": True}


def test_verify_validation(client):
    _generate(client)

    assert client.post("/api/verify", json={"text": "hello"}).status_code == 400
    assert client.post("/api/verify", json={"token": "not-a-token"}).status_code == 422
    assert (
        client.post("/api/verify", json={"text": "hello", "signature": "$$$"}).status_code
        == 422
    )


def test_attestation(client):
    generated = _generate(client).get_json()

    response = client.get("/api/attestation")

    assert response.status_code == 200
    body = response.get_json()
    assert body["challenge"] == generated["challenge"]
    assert body["challengeVerified"] is True
    assert len(body["chainPem"]) == 2
    assert body["details"]["attestationChallenge"] == generated["challenge"]
    assert body["details"]["softwareEnforced"]["keySize"] == 256
    assert body["details"]["softwareEnforced"]["attestationApplicationId"][
        "packageInfos"
    ] == [{"packageName": "dio.security", "version": 1}]
    assert len(body["rootOfTrust"]) == 1
    assert body["appSigningCertificates"] == []


def test_env_flag(monkeypatch):
    monkeypatch.delenv("KEYATTEST_TEST_FLAG", raising=False)
    assert _env_flag("KEYATTEST_TEST_FLAG") is None
    for value, expected in (("1", True), ("yes", True), ("off", False), ("", False)):
        monkeypatch.setenv("KEYATTEST_TEST_FLAG", value)
        assert _env_flag("KEYATTEST_TEST_FLAG") is expected


def test_debug_switch_follows_env_flag(monkeypatch):
    runs = []
    monkeypatch.setattr(app, "run", lambda **kwargs: runs.append(kwargs))

    for value, expected in (("0", False), ("false", False), ("1", True)):
        monkeypatch.setenv("KEYATTEST_DEBUG", value)
        keyattest_app.main()
        assert runs[-1]["debug"] is expected

    monkeypatch.delenv("KEYATTEST_DEBUG")
    keyattest_app.main()
    assert runs[-1]["debug"] is False


def test_unknown_log_level_is_ignored(caplog):
    previous = app.logger.level
    try:
        with caplog.at_level(logging.WARNING):
            assert _configure_logging("chatty") is None
        assert "chatty" in caplog.text
        assert app.logger.level == previous
        assert _configure_logging(" warning ") == logging.WARNING
        assert _configure_logging("") is None
    finally:
        app.logger.setLevel(previous)
