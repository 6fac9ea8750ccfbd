"""Decoder for the RootOfTrust authorization (tag 704)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..der import (
    Element,
    MalformedEncoding,
    read_boolean,
    read_enumerated,
    read_octet_string,
    read_sequence,
)
from ..utils import b64encode
from .base import VerifiedBootState, enum_value


@dataclass(frozen=True)
class RootOfTrust:
    verified_boot_key: bytes
    device_locked: bool
    verified_boot_state: VerifiedBootState
    # Only present from attestation version 3 onwards.
    verified_boot_hash: Optional[bytes] = None

    def __str__(self) -> str:
        boot_hash = (
            b64encode(self.verified_boot_hash)
            if self.verified_boot_hash is not None
            else "-"
        )
        return (
            f"verifiedBootKey: {b64encode(self.verified_boot_key)}, "
            f"deviceLocked: {self.device_locked}, "
            f"verifiedBootState: {self.verified_boot_state.name}, "
            f"verifiedBootHash: {boot_hash}"
        )


def decode_root_of_trust(element: Element) -> RootOfTrust:
    fields = read_sequence(element, "RootOfTrust")
    if len(fields) not in (3, 4):
        raise MalformedEncoding(
            f"RootOfTrust must have 3 or 4 elements, found {len(fields)}"
        )
    state = read_enumerated(fields[2], "verifiedBootState")
    return RootOfTrust(
        verified_boot_key=read_octet_string(fields[0], "verifiedBootKey"),
        device_locked=read_boolean(fields[1], "deviceLocked"),
        verified_boot_state=enum_value(VerifiedBootState, state, "verifiedBootState"),
        verified_boot_hash=(
            read_octet_string(fields[3], "verifiedBootHash")
            if len(fields) == 4
            else None
        ),
    )
