"""Helpers for moving values between protobuf messages, entities and GraphQL inputs."""
import base64
import dataclasses
import json
from collections.abc import Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

from google.protobuf import json_format
from google.protobuf.message import Message
from google.protobuf.timestamp_pb2 import Timestamp

TIMESTAMP_TYPE = "google.protobuf.Timestamp"
WRAPPER_TYPES = frozenset(
    f"google.protobuf.{name}Value"
    for name in ("Bool", "Int32", "Int64", "UInt32", "UInt64", "Float", "Double", "String", "Bytes")
)

M = TypeVar("M", bound=Message)


def has_value(obj: Any, name: str) -> bool:
    """Presence test that works for protobuf messages and plain objects.

    Protobuf fields without presence tracking (plain proto3 scalars) are
    always considered set.
    """
    if isinstance(obj, Message):
        descriptor = obj.DESCRIPTOR.fields_by_name.get(name)
        if descriptor is None:
            return False
        if descriptor.has_presence:
            return obj.HasField(name)
        return True
    return getattr(obj, name, None) is not None


def optional_value(obj: Any, name: str) -> Any:
    """The field's value, or None when it is unset.

    Fields without presence tracking count as unset when they hold their
    zero value.
    """
    if not has_value(obj, name):
        return None
    value = getattr(obj, name)
    if isinstance(obj, Message) and obj.DESCRIPTOR.fields_by_name[name].has_presence:
        return value
    if isinstance(value, (str, bytes, int, float)) and not isinstance(value, bool) and not value:
        return None
    return value


def which_oneof(obj: Any, group: str) -> Optional[str]:
    """Active member of a oneof group, or None for plain objects and unknown groups."""
    if not isinstance(obj, Message):
        return None
    if group not in obj.DESCRIPTOR.oneofs_by_name:
        return None
    return obj.WhichOneof(group)


def message_to_json(value: Any) -> Any:
    """JSON-compatible form of a message (or list of messages) for structured columns."""
    if isinstance(value, Message):
        return json_format.MessageToDict(value, preserving_proto_field_name=True)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [message_to_json(item) for item in value]
    return value


def json_into_message(data: Any, target: Message) -> None:
    """Merge a structured column value back into a message field."""
    if data is None:
        return
    json_format.ParseDict(data, target, ignore_unknown_fields=True)


def timestamp_pair(value: Optional[datetime]) -> Tuple[int, int]:
    """(seconds, nanos) of a datetime; naive datetimes are taken as UTC."""
    if value is None:
        return 0, 0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    delta = value - epoch
    seconds = delta.days * 86400 + delta.seconds
    return seconds, delta.microseconds * 1000


def to_timestamp(value: Optional[datetime]) -> Optional[Timestamp]:
    if value is None:
        return None
    seconds, nanos = timestamp_pair(value)
    return Timestamp(seconds=seconds, nanos=nanos)


def to_datetime(value: Any) -> Optional[datetime]:
    """Accept a Timestamp message, a datetime or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, Timestamp):
        return value.ToDatetime(tzinfo=timezone.utc)
    raise TypeError(f"Cannot convert {type(value).__name__} to datetime")


def message_to_conditions(message: Message) -> Dict[str, Any]:
    """Set fields of a filter or order-by message as nested plain values.

    Sub-messages become dicts, repeated fields lists, timestamps datetimes.
    """
    result: Dict[str, Any] = {}
    for descriptor, value in message.ListFields():
        result[descriptor.name] = _plain(descriptor, value)
    return result


def _plain(descriptor, value):
    if descriptor.is_repeated:
        return [_plain_single(descriptor, item) for item in value]
    return _plain_single(descriptor, value)


def _plain_single(descriptor, value):
    if descriptor.message_type is None:
        return value
    if descriptor.message_type.full_name == TIMESTAMP_TYPE:
        return value.ToDatetime(tzinfo=timezone.utc)
    return message_to_conditions(value)


def input_to_dict(value: Any) -> Any:
    """Convert a GraphQL input object into the protobuf JSON mapping.

    Unset (None) fields are dropped, trailing underscores added to dodge
    Python keywords are removed ("in_" becomes "in"), enums become their
    value and datetimes RFC 3339 strings.
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        result = {}
        for f in dataclasses.fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            result[f.name.rstrip("_")] = input_to_dict(item)
        return result
    if isinstance(value, (list, tuple)):
        return [input_to_dict(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_timestamp(value).ToJsonString()
    return value


def build_message(message_class: Type[M], data: Optional[Mapping[str, Any]] = None) -> M:
    """Instantiate a message from JSON-mapped data; unknown keys are ignored."""
    message = message_class()
    if data:
        json_format.ParseDict(data, message, ignore_unknown_fields=True)
    return message


def _output_single(descriptor, value, enum_class):
    if descriptor.enum_type is not None:
        entry = descriptor.enum_type.values_by_number.get(value)
        if entry is None:
            return None
        return enum_class(entry.name) if enum_class is not None else entry.name
    if descriptor.message_type is not None:
        full_name = descriptor.message_type.full_name
        if full_name == TIMESTAMP_TYPE:
            return value.ToDatetime(tzinfo=timezone.utc)
        if full_name in WRAPPER_TYPES:
            return _output_scalar(value.value)
        return json_format.MessageToDict(value, preserving_proto_field_name=True)
    return _output_scalar(value)


def _output_scalar(value):
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return value


def output_value(message: Message, name: str, enum_class: Optional[Type[Enum]] = None) -> Any:
    """A field of a wire message in GraphQL form.

    Unset presence fields are None, timestamps datetimes, wrappers their
    inner value, bytes base64 text, other messages dicts and enums members
    of enum_class (or their proto names).
    """
    descriptor = message.DESCRIPTOR.fields_by_name[name]
    value = getattr(message, name)
    if descriptor.is_repeated:
        return [_output_single(descriptor, item, enum_class) for item in value]
    if descriptor.has_presence and not message.HasField(name):
        return None
    return _output_single(descriptor, value, enum_class)


def context_value(
    context: Any,
    path: str,
    required: bool = False,
    error_message: str = "",
) -> Any:
    """Read a dotted path (mapping keys or attributes) from a request context."""
    current = context
    for part in path.split("."):
        if current is None:
            break
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    if current is None and required:
        raise PermissionError(error_message or f"{path} is required")
    return current


def unwrap(value: Any) -> Any:
    """Inner value of a google.protobuf wrapper message; other values pass through."""
    if isinstance(value, Message) and value.DESCRIPTOR.full_name in WRAPPER_TYPES:
        return value.value
    return value


def tagged_value(value: Any) -> str:
    """Text form of a oneof variant for the tagged value column."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Message):
        return json.dumps(message_to_json(value))
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
