"""A software stand-in for the platform keystore.

:class:`SoftwareKeyStore` keeps ``cryptography`` keys in memory and issues, for
every generated key, a two certificate chain whose leaf carries a key
attestation extension, much like a device keystore does. :class:`KeyManager`
is the caller side: it owns the alias, replaces existing keys and retries key
generation without device property attestation when the provider refuses it.
"""
from __future__ import annotations

import datetime
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from .algorithms import RSA_PUBLIC_EXPONENT, DigestSize, SelectedAlgorithm
from .attestation import (
    AttestationApplicationId,
    AttestationRecord,
    PackageInfo,
    Presence,
    RootOfTrust,
    SecurityLevel,
    Tag,
    TagValue,
    VerifiedBootState,
    find_attestation_record,
)
from .attestation.encode import encode_key_description
from .attestation.record import OID_KEY_ATTESTATION
from .jwt import create_token
from .signature import (
    HardwareUnavailable,
    NoSuchKey,
    ProviderError,
    Signer,
    sign_with_private_key,
    verify_with_public_key,
)
from .utils import to_pem

logger = logging.getLogger(__name__)

ATTESTATION_VERSION = 3
KEYMASTER_VERSION = 4

# Keymaster enumeration values used in authorization lists.
KM_PURPOSE_SIGN = 2
KM_PURPOSE_VERIFY = 3
KM_ALGORITHM_RSA = 1
KM_ALGORITHM_EC = 3
KM_PAD_RSA_PSS = 3
KM_PAD_RSA_PKCS1_1_5_SIGN = 5
KM_ORIGIN_GENERATED = 0

_KM_DIGESTS = {
    DigestSize.SHA256: 4,
    DigestSize.SHA384: 5,
    DigestSize.SHA512: 6,
}

_KM_EC_CURVES = {
    "secp256r1": 1,
    "secp384r1": 2,
    "secp521r1": 3,
}

DEFAULT_DEVICE_PROPERTIES: Mapping[int, str] = {
    Tag.ATTESTATION_ID_BRAND: "generic",
    Tag.ATTESTATION_ID_DEVICE: "emulator",
    Tag.ATTESTATION_ID_PRODUCT: "sdk_phone",
    Tag.ATTESTATION_ID_MANUFACTURER: "keyattest",
    Tag.ATTESTATION_ID_MODEL: "Software Keystore",
}

_CERT_VALIDITY = datetime.timedelta(days=3650)


@dataclass
class KeyEntry:
    selected: SelectedAlgorithm
    private_key: Any
    certificate_chain: List[bytes]


def public_key_pem(public_key: Any) -> str:
    der = public_key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return to_pem(der, "PUBLIC KEY")


def certificate_chain_pem(chain: Sequence[bytes]) -> List[str]:
    """PEM encode each DER certificate, leaf first."""
    return [to_pem(cert_der, "CERTIFICATE") for cert_der in chain]


def _generate_private_key(selected: SelectedAlgorithm):
    curve = selected.curve
    if curve is not None:
        return ec.generate_private_key(curve)
    return rsa.generate_private_key(
        public_exponent=RSA_PUBLIC_EXPONENT, key_size=selected.rsa_key_size
    )


class SoftwareKeyStore(Signer):
    """In-memory keystore issuing emulated attestation certificates."""

    def __init__(
        self,
        *,
        package_name: str = "dio.security",
        package_version: int = 1,
        signature_digests: Sequence[bytes] = (),
        security_level: SecurityLevel = SecurityLevel.SOFTWARE,
        has_strongbox: bool = False,
        device_properties_supported: bool = True,
        device_properties: Optional[Mapping[int, str]] = None,
        os_version: int = 140000,
        os_patch_level: int = 202410,
    ):
        self.package_name = package_name
        self.package_version = package_version
        self.signature_digests = frozenset(bytes(d) for d in signature_digests)
        self.security_level = security_level
        self.has_strongbox = has_strongbox
        self.device_properties_supported = device_properties_supported
        self.device_properties = dict(
            DEFAULT_DEVICE_PROPERTIES if device_properties is None else device_properties
        )
        self.os_version = os_version
        self.os_patch_level = os_patch_level

        self._entries: Dict[str, KeyEntry] = {}
        self._lock = threading.Lock()
        self._root_key = ec.generate_private_key(ec.SECP256R1())
        self._root_name = x509.Name(
            [
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, "keyattest"),
                x509.NameAttribute(NameOID.COMMON_NAME, "Software Attestation Root"),
            ]
        )
        self._root_cert = self._issue_root_certificate()

    def _issue_root_certificate(self) -> x509.Certificate:
        now = datetime.datetime.now(datetime.timezone.utc)
        return (
            x509.CertificateBuilder()
            .subject_name(self._root_name)
            .issuer_name(self._root_name)
            .public_key(self._root_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + _CERT_VALIDITY)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(self._root_key, hashes.SHA256())
        )

    def _issue_attestation_certificate(
        self, public_key: Any, key_description: bytes
    ) -> x509.Certificate:
        now = datetime.datetime.now(datetime.timezone.utc)
        return (
            x509.CertificateBuilder()
            .subject_name(
                x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Android Keystore Key")])
            )
            .issuer_name(self._root_name)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + _CERT_VALIDITY)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.UnrecognizedExtension(OID_KEY_ATTESTATION, key_description),
                critical=False,
            )
            .sign(self._root_key, hashes.SHA256())
        )

    def _key_characteristics(
        self, selected: SelectedAlgorithm, public_key: Any
    ) -> Dict[int, TagValue]:
        values: Dict[int, TagValue] = {
            Tag.PURPOSE: frozenset({KM_PURPOSE_SIGN, KM_PURPOSE_VERIFY}),
            Tag.KEY_SIZE: selected.key_size,
            Tag.DIGEST: frozenset(_KM_DIGESTS.values()),
            Tag.NO_AUTH_REQUIRED: Presence.PRESENT,
            Tag.ORIGIN: KM_ORIGIN_GENERATED,
            Tag.ROOT_OF_TRUST: RootOfTrust(
                verified_boot_key=bytes(32),
                device_locked=False,
                verified_boot_state=VerifiedBootState.UNVERIFIED,
                verified_boot_hash=bytes(32),
            ),
            Tag.OS_VERSION: self.os_version,
            Tag.OS_PATCH_LEVEL: self.os_patch_level,
        }
        curve = selected.curve
        if curve is not None:
            values[Tag.ALGORITHM] = KM_ALGORITHM_EC
            values[Tag.EC_CURVE] = _KM_EC_CURVES[curve.name]
        else:
            values[Tag.ALGORITHM] = KM_ALGORITHM_RSA
            values[Tag.PADDING] = frozenset({KM_PAD_RSA_PSS, KM_PAD_RSA_PKCS1_1_5_SIGN})
            values[Tag.RSA_PUBLIC_EXPONENT] = public_key.public_numbers().e
        return values

    def _key_description(
        self, selected: SelectedAlgorithm, public_key: Any, device_properties: bool
    ) -> AttestationRecord:
        enforced = self._key_characteristics(selected, public_key)
        if device_properties:
            enforced.update(self.device_properties)
        software: Dict[int, TagValue] = {
            Tag.CREATION_DATE_TIME: int(time.time() * 1000),
            Tag.ATTESTATION_APPLICATION_ID: AttestationApplicationId(
                package_infos=(PackageInfo(self.package_name, self.package_version),),
                signature_digests=self.signature_digests,
            ),
        }
        hardware: Dict[int, TagValue] = {}
        if self.security_level is SecurityLevel.SOFTWARE:
            software.update(enforced)
        else:
            hardware.update(enforced)
        return AttestationRecord(
            attestation_version=ATTESTATION_VERSION,
            attestation_security_level=self.security_level,
            keymaster_version=KEYMASTER_VERSION,
            keymaster_security_level=self.security_level,
            attestation_challenge=selected.attestation_challenge,
            unique_id=b"",
            software_enforced=software,
            hardware_enforced=hardware,
        )

    def generate_key_pair(
        self,
        alias: str,
        selected: SelectedAlgorithm,
        *,
        strongbox: bool = False,
        device_properties: bool = False,
    ) -> Any:
        """Create a key under *alias* and return its public key."""

        if strongbox and not self.has_strongbox:
            raise HardwareUnavailable("StrongBox is not available on this keystore")
        if device_properties and not self.device_properties_supported:
            raise ProviderError("Device property attestation is not supported")

        private_key = _generate_private_key(selected)
        public_key = private_key.public_key()
        key_description = encode_key_description(
            self._key_description(selected, public_key, device_properties)
        )
        leaf = self._issue_attestation_certificate(public_key, key_description)
        chain = [
            leaf.public_bytes(serialization.Encoding.DER),
            self._root_cert.public_bytes(serialization.Encoding.DER),
        ]
        with self._lock:
            self._entries[alias] = KeyEntry(selected, private_key, chain)
        logger.info(
            "Generated %s key under alias %r (%s)",
            selected.algorithm.display_name,
            alias,
            selected.extra_information(),
        )
        return public_key

    def _entry(self, alias: str) -> KeyEntry:
        with self._lock:
            entry = self._entries.get(alias)
        if entry is None:
            raise NoSuchKey(alias)
        return entry

    def contains_alias(self, alias: str) -> bool:
        with self._lock:
            return alias in self._entries

    def delete_entry(self, alias: str) -> None:
        with self._lock:
            self._entries.pop(alias, None)

    def get_public_key(self, alias: str) -> Any:
        return self._entry(alias).private_key.public_key()

    def get_certificate_chain(self, alias: str) -> List[bytes]:
        return list(self._entry(alias).certificate_chain)

    def get_selected_algorithm(self, alias: str) -> SelectedAlgorithm:
        return self._entry(alias).selected

    def sign(self, algorithm: str, key_handle: str, data: bytes) -> bytes:
        entry = self._entry(key_handle)
        try:
            return sign_with_private_key(algorithm, entry.private_key, data)
        except (UnsupportedAlgorithm, ValueError) as exc:
            raise ProviderError(f"Signing with {algorithm} failed: {exc}") from exc

    def verify(
        self, algorithm: str, public_key: Any, signature: bytes, data: bytes
    ) -> bool:
        return verify_with_public_key(algorithm, public_key, signature, data)


class KeyManager:
    """Creates and uses the single demo key held by a keystore."""

    def __init__(self, keystore: SoftwareKeyStore, key_name: str = "test_key"):
        self.keystore = keystore
        self.key_name = key_name

    @property
    def has_strongbox(self) -> bool:
        return self.keystore.has_strongbox

    def _generate(self, selected: SelectedAlgorithm, device_properties: bool) -> Any:
        return self.keystore.generate_key_pair(
            self.key_name,
            selected,
            strongbox=self.has_strongbox,
            device_properties=device_properties,
        )

    def generate_asymmetric_cert(self, selected: SelectedAlgorithm) -> Any:
        """Generate a new key pair, replacing any key under the same name."""

        if self.keystore.contains_alias(self.key_name):
            self.keystore.delete_entry(self.key_name)
        try:
            return self._generate(selected, device_properties=True)
        except ProviderError as exc:
            logger.warning(
                "Failed to attest device properties, retrying without it: %s", exc
            )
            return self._generate(selected, device_properties=False)

    @property
    def selected_algorithm(self) -> SelectedAlgorithm:
        return self.keystore.get_selected_algorithm(self.key_name)

    def get_public_key(self) -> Any:
        return self.keystore.get_public_key(self.key_name)

    def get_public_key_pem(self) -> str:
        return public_key_pem(self.get_public_key())

    def get_attestation_chain(self) -> List[bytes]:
        return self.keystore.get_certificate_chain(self.key_name)

    def get_attestation_chain_pem(self) -> List[str]:
        return certificate_chain_pem(self.get_attestation_chain())

    def get_attestation_record(self) -> Optional[AttestationRecord]:
        return find_attestation_record(self.get_attestation_chain())

    def is_hardware_backed(self) -> bool:
        record = self.get_attestation_record()
        if record is None:
            return False
        return record.keymaster_security_level in (
            SecurityLevel.TRUSTED_ENVIRONMENT,
            SecurityLevel.STRONG_BOX,
        )

    def sign(self, data: bytes) -> bytes:
        return self.keystore.sign(
            self.selected_algorithm.signature_name, self.key_name, data
        )

    def verify(self, signature: bytes, data: bytes) -> bool:
        return self.keystore.verify(
            self.selected_algorithm.signature_name,
            self.get_public_key(),
            signature,
            data,
        )

    def create_token(self, text: str) -> str:
        return create_token(
            self.selected_algorithm.jwt_name, text, self.keystore, self.key_name
        )
