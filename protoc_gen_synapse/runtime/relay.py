"""Relay identifiers, cursors and page-size rules used by generated code.

A global id is the base62 encoding of the UTF-8 bytes of "{TypeName}:{localId}";
a cursor is the base62 encoding of the row key's string form.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, TypeVar, Union

BASE62_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_BASE62_INDEX = {c: i for i, c in enumerate(BASE62_ALPHABET)}

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

LocalId = Union[int, str]
K = TypeVar("K")


def base62_encode(data: bytes) -> str:
    """Encode bytes as base62, keeping leading zero bytes as leading '0's."""
    if not data:
        return ""
    leading = len(data) - len(data.lstrip(b"\x00"))
    number = int.from_bytes(data, "big")
    chars = []
    while number:
        number, remainder = divmod(number, 62)
        chars.append(BASE62_ALPHABET[remainder])
    return "0" * leading + "".join(reversed(chars))


def base62_decode(text: str) -> bytes:
    """Inverse of base62_encode; raises ValueError on characters outside the alphabet."""
    if not text:
        return b""
    leading = len(text) - len(text.lstrip("0"))
    number = 0
    for char in text[leading:]:
        try:
            number = number * 62 + _BASE62_INDEX[char]
        except KeyError:
            raise ValueError(f"Invalid base62 character: {char!r}") from None
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading + body


def encode_global_id(type_name: str, local_id: LocalId) -> str:
    return base62_encode(f"{type_name}:{local_id}".encode("utf-8"))


def decode_global_id(global_id: str, key_type: Callable[[str], K] = str) -> Tuple[str, K]:
    """Return (type name, local id parsed with key_type); raises ValueError for malformed ids.

    key_type is the key column's Python type, `int` for integer keys.
    """
    raw = base62_decode(global_id).decode("utf-8")
    type_name, sep, local_id = raw.partition(":")
    if not sep or not type_name:
        raise ValueError(f"Malformed global id: {global_id!r}")
    return type_name, key_type(local_id)


def try_decode_global_id(global_id: str, key_type: Callable[[str], K] = str) -> Optional[Tuple[str, K]]:
    """decode_global_id that returns None instead of raising."""
    try:
        return decode_global_id(global_id, key_type)
    except (ValueError, UnicodeDecodeError):
        return None


def local_id(value: str, type_name: str, key_type: Callable[[str], K] = str) -> K:
    """Local id behind a global id of type_name; any other value is taken as a raw local id.

    Raises ValueError when the id does not parse as key_type.
    """
    decoded = try_decode_global_id(value)
    if decoded is not None and decoded[0] == type_name:
        return key_type(decoded[1])
    return key_type(value)


def internal_id(local_id: LocalId) -> str:
    return str(local_id)


def encode_cursor(key: LocalId) -> str:
    return base62_encode(str(key).encode("utf-8"))


def decode_cursor(cursor: str) -> str:
    return base62_decode(cursor).decode("utf-8")


def decode_int_cursor(cursor: str) -> int:
    return int(decode_cursor(cursor))


def normalize_page_size(
    first: Optional[int] = None,
    last: Optional[int] = None,
    default: int = DEFAULT_PAGE_SIZE,
    maximum: int = MAX_PAGE_SIZE,
) -> int:
    """first if given, else last, else the default; clamped to [1, maximum]."""
    if first is not None:
        size = first
    elif last is not None:
        size = last
    else:
        size = default
    return max(1, min(size, maximum))


@dataclass(frozen=True)
class PageArgs:
    """Normalized pagination arguments."""
    size: int
    backward: bool
    after: Optional[str] = None
    before: Optional[str] = None

    @classmethod
    def from_args(
        cls,
        first: Optional[int] = None,
        after: Optional[str] = None,
        last: Optional[int] = None,
        before: Optional[str] = None,
        default: int = DEFAULT_PAGE_SIZE,
        maximum: int = MAX_PAGE_SIZE,
    ) -> "PageArgs":
        return cls(
            size=normalize_page_size(first, last, default, maximum),
            backward=last is not None,
            after=after or None,
            before=before or None,
        )
