"""Minimal DER reading helpers shared by the attestation and signature codecs."""
from __future__ import annotations

from typing import Iterator, NamedTuple, Tuple

from asn1crypto import parser as asn1_parser

CLASS_UNIVERSAL = 0
CLASS_CONTEXT = 2

METHOD_PRIMITIVE = 0
METHOD_CONSTRUCTED = 1

TAG_BOOLEAN = 1
TAG_INTEGER = 2
TAG_OCTET_STRING = 4
TAG_NULL = 5
TAG_ENUMERATED = 10
TAG_SEQUENCE = 16
TAG_SET = 17

_UNIVERSAL_NAMES = {
    TAG_BOOLEAN: "BOOLEAN",
    TAG_INTEGER: "INTEGER",
    TAG_OCTET_STRING: "OCTET STRING",
    TAG_NULL: "NULL",
    TAG_ENUMERATED: "ENUMERATED",
    TAG_SEQUENCE: "SEQUENCE",
    TAG_SET: "SET",
}

_CONSTRUCTED_TAGS = {TAG_SEQUENCE, TAG_SET}


class MalformedEncoding(ValueError):
    """The DER input does not match the expected structure."""


class Element(NamedTuple):
    """A single decoded TLV."""

    class_: int
    method: int
    tag: int
    contents: bytes

    def describe(self) -> str:
        if self.class_ == CLASS_UNIVERSAL:
            return _UNIVERSAL_NAMES.get(self.tag, f"universal tag {self.tag}")
        if self.class_ == CLASS_CONTEXT:
            return f"[{self.tag}]"
        return f"class {self.class_} tag {self.tag}"


def read_element(data: bytes, offset: int = 0) -> Tuple[Element, int]:
    """Decode the TLV starting at *offset*, returning it and the next offset."""

    if offset >= len(data):
        raise MalformedEncoding("Truncated DER element")
    try:
        class_, method, tag, header, contents, trailer = asn1_parser.parse(
            bytes(data[offset:])
        )
    except ValueError as exc:
        raise MalformedEncoding(str(exc)) from exc
    if trailer:
        raise MalformedEncoding("Indefinite length DER encodings are not supported")
    return (
        Element(class_, method, tag, contents),
        offset + len(header) + len(contents),
    )


def iter_elements(data: bytes) -> Iterator[Element]:
    """Yield each TLV of a concatenation of DER elements."""

    offset = 0
    while offset < len(data):
        element, offset = read_element(data, offset)
        yield element


def parse_single(data: bytes) -> Element:
    """Decode *data* as exactly one DER element."""

    element, end = read_element(data)
    if end != len(data):
        raise MalformedEncoding(
            f"{len(data) - end} trailing bytes after {element.describe()}"
        )
    return element


def expect_universal(element: Element, tag: int, what: str = "") -> bytes:
    """Return the contents of *element* after checking its universal tag."""

    expected = _UNIVERSAL_NAMES.get(tag, f"universal tag {tag}")
    label = f"{what}: " if what else ""
    if element.class_ != CLASS_UNIVERSAL or element.tag != tag:
        raise MalformedEncoding(
            f"{label}expected {expected}, found {element.describe()}"
        )
    method = METHOD_CONSTRUCTED if tag in _CONSTRUCTED_TAGS else METHOD_PRIMITIVE
    if element.method != method:
        raise MalformedEncoding(f"{label}{expected} has the wrong encoding form")
    return element.contents


def decode_integer(contents: bytes) -> int:
    if not contents:
        raise MalformedEncoding("INTEGER with empty contents")
    return int.from_bytes(contents, "big", signed=True)


def decode_boolean(contents: bytes) -> bool:
    if len(contents) != 1:
        raise MalformedEncoding("BOOLEAN must be exactly one byte")
    return contents[0] != 0


def read_integer(element: Element, what: str = "") -> int:
    return decode_integer(expect_universal(element, TAG_INTEGER, what))


def read_enumerated(element: Element, what: str = "") -> int:
    return decode_integer(expect_universal(element, TAG_ENUMERATED, what))


def read_octet_string(element: Element, what: str = "") -> bytes:
    return expect_universal(element, TAG_OCTET_STRING, what)


def read_boolean(element: Element, what: str = "") -> bool:
    return decode_boolean(expect_universal(element, TAG_BOOLEAN, what))


def read_null(element: Element, what: str = "") -> None:
    if expect_universal(element, TAG_NULL, what):
        raise MalformedEncoding("NULL with non-empty contents")


def read_sequence(element: Element, what: str = "") -> list:
    """Return the child elements of a SEQUENCE."""

    return list(iter_elements(expect_universal(element, TAG_SEQUENCE, what)))


def read_set(element: Element, what: str = "") -> list:
    """Return the child elements of a SET.

    A SEQUENCE is rejected here even though the contents would parse.
    """

    return list(iter_elements(expect_universal(element, TAG_SET, what)))
