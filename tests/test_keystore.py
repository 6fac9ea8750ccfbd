import logging

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from keyattest.algorithms import Algorithm, DigestSize, SelectedAlgorithm
from keyattest.attestation import (
    PackageInfo,
    SecurityLevel,
    Tag,
    challenge_matches,
    find_application_ids,
    find_roots_of_trust,
)
from keyattest.keystore import KeyManager, SoftwareKeyStore
from keyattest.signature import HardwareUnavailable, NoSuchKey, ProviderError


def _ec256() -> SelectedAlgorithm:
    return SelectedAlgorithm(Algorithm.ECDSA, DigestSize.SHA256)


def test_generated_key_is_attested():
    manager = KeyManager(SoftwareKeyStore(package_name="com.example.app"))
    selected = _ec256()

    manager.generate_asymmetric_cert(selected)

    chain = manager.get_attestation_chain()
    assert len(chain) == 2
    record = manager.get_attestation_record()
    assert record is not None
    assert challenge_matches(record, selected.attestation_challenge)
    assert record.attestation_security_level is SecurityLevel.SOFTWARE
    assert record.software_enforced[Tag.KEY_SIZE] == 256
    assert record.software_enforced[Tag.EC_CURVE] == 1
    assert record.software_enforced[Tag.ATTESTATION_ID_BRAND] == "generic"
    assert record.hardware_enforced == {}
    (app_id,) = find_application_ids(record.software_enforced, record.hardware_enforced)
    assert app_id.package_infos == (PackageInfo("com.example.app", 1),)
    assert len(find_roots_of_trust(record.software_enforced, record.hardware_enforced)) == 1
    assert not manager.is_hardware_backed()


def test_chain_is_signed_by_root():
    manager = KeyManager(SoftwareKeyStore())
    manager.generate_asymmetric_cert(_ec256())

    leaf_pem, root_pem = manager.get_attestation_chain_pem()
    leaf = x509.load_pem_x509_certificate(leaf_pem.encode("ascii"))
    root = x509.load_pem_x509_certificate(root_pem.encode("ascii"))

    assert leaf.issuer == root.subject
    leaf.verify_directly_issued_by(root)


def test_retries_without_device_properties(caplog):
    manager = KeyManager(SoftwareKeyStore(device_properties_supported=False))

    with caplog.at_level(logging.WARNING, logger="keyattest.keystore"):
        manager.generate_asymmetric_cert(_ec256())

    record = manager.get_attestation_record()
    assert Tag.ATTESTATION_ID_BRAND not in record.software_enforced
    assert "retrying" in caplog.text


def test_device_properties_refused_by_keystore():
    keystore = SoftwareKeyStore(device_properties_supported=False)
    with pytest.raises(ProviderError):
        keystore.generate_key_pair("test_key", _ec256(), device_properties=True)


def test_strongbox_requires_support():
    with pytest.raises(HardwareUnavailable):
        SoftwareKeyStore().generate_key_pair("test_key", _ec256(), strongbox=True)


def test_hardware_backed_keys():
    keystore = SoftwareKeyStore(security_level=SecurityLevel.STRONG_BOX, has_strongbox=True)
    manager = KeyManager(keystore)

    manager.generate_asymmetric_cert(_ec256())

    record = manager.get_attestation_record()
    assert manager.has_strongbox
    assert manager.is_hardware_backed()
    assert record.hardware_enforced[Tag.KEY_SIZE] == 256
    assert Tag.ATTESTATION_APPLICATION_ID in record.software_enforced


def test_existing_key_is_replaced():
    manager = KeyManager(SoftwareKeyStore())
    manager.generate_asymmetric_cert(_ec256())
    first = manager.get_public_key_pem()

    manager.generate_asymmetric_cert(SelectedAlgorithm(Algorithm.ECDSA, DigestSize.SHA384))

    assert manager.get_public_key_pem() != first
    assert manager.selected_algorithm.digest_size is DigestSize.SHA384
    assert manager.get_attestation_record().software_enforced[Tag.KEY_SIZE] == 384


def test_rsa_key_sign_and_verify():
    manager = KeyManager(SoftwareKeyStore())
    manager.generate_asymmetric_cert(SelectedAlgorithm(Algorithm.RSAPSS, DigestSize.SHA256))

    signature = manager.sign(b"hello")

    assert len(signature) == 256
    assert manager.verify(signature, b"hello")
    assert not manager.verify(signature, b"hullo")
    record = manager.get_attestation_record()
    assert record.software_enforced[Tag.ALGORITHM] == 1
    assert record.software_enforced[Tag.RSA_PUBLIC_EXPONENT] == 65537


def test_public_key_pem_loads():
    manager = KeyManager(SoftwareKeyStore())
    manager.generate_asymmetric_cert(_ec256())

    pem = manager.get_public_key_pem()

    assert pem.startswith("-----BEGIN PUBLIC KEY-----\n")
    public_key = serialization.load_pem_public_key(pem.encode("ascii"))
    assert public_key.public_numbers() == manager.get_public_key().public_numbers()


def test_missing_key():
    keystore = SoftwareKeyStore()
    with pytest.raises(NoSuchKey):
        keystore.sign("SHA256withECDSA", "absent", b"data")
    with pytest.raises(NoSuchKey):
        KeyManager(keystore).get_attestation_chain()


def test_sign_with_mismatched_algorithm():
    keystore = SoftwareKeyStore()
    keystore.generate_key_pair("test_key", _ec256())
    with pytest.raises(ProviderError):
        keystore.sign("SHA256withRSA", "test_key", b"data")
