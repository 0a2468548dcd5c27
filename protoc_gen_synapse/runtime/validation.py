"""Field rules applied by generated request validators.

Each rule is a pydantic TypeAdapter over a constrained type; a pydantic
ValidationError becomes InvalidField with the rule's own message.
"""
from functools import lru_cache
from ipaddress import IPv4Address, IPv6Address
from typing import Annotated, Any, Optional, Tuple
from uuid import UUID

from pydantic import AnyUrl, ConfigDict, EmailStr, Field, IPvAnyAddress, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from protoc_gen_synapse.runtime.errors import InvalidField, MissingRequired

_FORMATS = {
    "email": (TypeAdapter(EmailStr), "must be a valid email address"),
    "url": (TypeAdapter(AnyUrl), "must be a valid URL"),
    "uuid": (TypeAdapter(UUID), "must be a valid UUID"),
    "ip": (TypeAdapter(IPvAnyAddress), "must be a valid IP address"),
    "ipv4": (TypeAdapter(IPv4Address), "must be a valid IPv4 address"),
    "ipv6": (TypeAdapter(IPv6Address), "must be a valid IPv6 address"),
}

ASCII_PATTERN = r"[\x00-\x7f]*"
ALPHANUMERIC_PATTERN = r"[^\W_]+"

# schema patterns are Python regular expressions
_CONFIG = ConfigDict(regex_engine="python-re")


@lru_cache(maxsize=256)
def _constrained(base: type, constraints: Tuple[Tuple[str, Any], ...]) -> TypeAdapter:
    return TypeAdapter(Annotated[base, Field(**dict(constraints))], config=_CONFIG)


def _passes(adapter: TypeAdapter, value: Any) -> bool:
    try:
        adapter.validate_python(value)
    except PydanticValidationError:
        return False
    return True


def _matches(text: str, pattern: str) -> bool:
    return _passes(_constrained(str, (("pattern", f"^(?:{pattern})$"),)), text)


def _sized(value: Any) -> Any:
    """str and bytes as they are; any other sized value (repeated fields) as a list."""
    if isinstance(value, (str, bytes)):
        return value
    return list(value)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (hasattr(value, "__len__") and len(value) == 0)


def check(
    field: str,
    value: Any,
    required: bool = False,
    email: bool = False,
    url: bool = False,
    uuid_format: bool = False,
    ascii_only: bool = False,
    alphanumeric: bool = False,
    ip: bool = False,
    ipv4: bool = False,
    ipv6: bool = False,
    pattern: Optional[str] = None,
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
    length: Optional[int] = None,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
    exclusive_minimum: bool = False,
    exclusive_maximum: bool = False,
    unique_items: bool = False,
    message: Optional[str] = None,
) -> None:
    """Raise MissingRequired or InvalidField when value breaks a rule.

    Empty values only fail the required rule; the remaining rules are
    skipped for them. `message` replaces the text of any InvalidField.
    """
    if _is_empty(value):
        if required:
            raise MissingRequired(field)
        return

    def fail(text: str) -> InvalidField:
        return InvalidField(field, message or text)

    text = value if isinstance(value, str) else str(value)
    formats = {"email": email, "url": url, "uuid": uuid_format, "ip": ip, "ipv4": ipv4, "ipv6": ipv6}
    for name, enabled in formats.items():
        adapter, error = _FORMATS[name]
        if enabled and not _passes(adapter, text):
            raise fail(error)
    if ascii_only and not _matches(text, ASCII_PATTERN):
        raise fail("must contain only ASCII characters")
    if alphanumeric and not _matches(text, ALPHANUMERIC_PATTERN):
        raise fail("must be alphanumeric")
    if pattern is not None and not _matches(text, pattern):
        raise fail(f"must match pattern {pattern}")

    if length is not None or min_length is not None or max_length is not None:
        sized = _sized(value)
        base = type(sized)
        if length is not None and not _passes(_constrained(base, (("min_length", length), ("max_length", length))), sized):
            raise fail(f"length must be exactly {length}")
        if min_length is not None and not _passes(_constrained(base, (("min_length", min_length),)), sized):
            raise fail(f"length must be at least {min_length}")
        if max_length is not None and not _passes(_constrained(base, (("max_length", max_length),)), sized):
            raise fail(f"length must be at most {max_length}")

    if minimum is not None:
        bound = ("gt" if exclusive_minimum else "ge", minimum)
        if not _passes(_constrained(float, (bound,)), value):
            raise fail(f"must be > {minimum}" if exclusive_minimum else f"must be >= {minimum}")
    if maximum is not None:
        bound = ("lt" if exclusive_maximum else "le", maximum)
        if not _passes(_constrained(float, (bound,)), value):
            raise fail(f"must be < {maximum}" if exclusive_maximum else f"must be <= {maximum}")

    # pydantic v2 has no unique_items constraint
    if unique_items and len(set(_sized(value))) != len(value):
        raise fail("items must be unique")
