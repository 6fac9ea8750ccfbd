import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from keyattest.attestation import ATTESTATION_OID


@pytest.fixture
def make_certificate():
    """Return a factory for self-signed DER certificates.

    When ``key_description`` is given it is attached as the key attestation
    extension value. ``extra_extensions`` holds further ``(oid, value)``
    pairs.
    """

    def factory(key_description=None, extra_extensions=()):
        key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "fixture")])
        now = datetime.datetime.now(datetime.timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + datetime.timedelta(days=1))
        )
        if key_description is not None:
            builder = builder.add_extension(
                x509.UnrecognizedExtension(
                    x509.ObjectIdentifier(ATTESTATION_OID), key_description
                ),
                critical=False,
            )
        for oid, value in extra_extensions:
            builder = builder.add_extension(
                x509.UnrecognizedExtension(x509.ObjectIdentifier(oid), value),
                critical=False,
            )
        cert = builder.sign(key, hashes.SHA256())
        return cert.public_bytes(serialization.Encoding.DER)

    return factory


@pytest.fixture
def client():
    from keyattest.app import app
    from keyattest.config import reset_key_manager

    reset_key_manager()
    app.config.update(TESTING=True)
    with app.test_client() as test_client:
        yield test_client
    reset_key_manager()
