"""Shared types and errors for Android key attestation decoding.

See https://source.android.com/docs/security/features/keystore/attestation#schema
"""
from __future__ import annotations

from enum import Enum, IntEnum, unique
from functools import wraps

from ..der import MalformedEncoding

ATTESTATION_OID = "1.3.6.1.4.1.11129.2.1.17"


class ApplicationIdError(MalformedEncoding):
    """The nested AttestationApplicationId structure could not be decoded."""


@unique
class SecurityLevel(IntEnum):
    """Where an attestation or the keymaster implementation lives."""

    SOFTWARE = 0
    TRUSTED_ENVIRONMENT = 1
    STRONG_BOX = 2


@unique
class VerifiedBootState(IntEnum):
    VERIFIED = 0
    SELF_SIGNED = 1
    UNVERIFIED = 2
    FAILED = 3


@unique
class Presence(Enum):
    """Value of a NULL-typed authorization: the tag is set, there is no payload."""

    PRESENT = "present"

    def __repr__(self) -> str:
        return "Presence.PRESENT"


def enum_value(enum_cls, value: int, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise MalformedEncoding(f"{what}: unknown value {value}") from None


def catch_builtins(f):
    """Utility decorator to report stray builtin errors as MalformedEncoding."""

    @wraps(f)
    def inner(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except MalformedEncoding:
            raise
        except (ValueError, IndexError) as e:
            raise MalformedEncoding(str(e)) from e

    return inner
