"""Name-case helpers shared by every backend."""
import keyword
import re

# Suffixes of message names that describe API plumbing rather than domain types.
GENERATED_TYPE_SUFFIXES = ("Filter", "OrderBy", "Edge", "Connection", "Request", "Response", "Input")

ENUM_SKIP_SUFFIXES = ("_UNSPECIFIED", "_UNKNOWN")


def to_snake_case(name: str) -> str:
    """Convert PascalCase or camelCase to snake_case."""
    s1 = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', name)
    s2 = re.sub('([a-z0-9])([A-Z])', r'\1_\2', s1)
    return s2.replace('-', '_').lower()


def to_pascal_case(name: str) -> str:
    """Convert snake_case, SHOUTY_CASE or camelCase to PascalCase."""
    parts = [p for p in to_snake_case(name).split('_') if p]
    return ''.join(p[:1].upper() + p[1:] for p in parts)


def to_shouty_case(name: str) -> str:
    return to_snake_case(name).upper()


def pluralize(word: str) -> str:
    """Naive English plural of the last word, preserving case style."""
    lower = word.lower()
    if lower.endswith(('s', 'x', 'z', 'ch', 'sh')):
        return word + 'es'
    if lower.endswith('y') and len(lower) > 1 and lower[-2] not in 'aeiou':
        return word[:-1] + 'ies'
    return word + 's'


def singularize(word: str) -> str:
    """Inverse of pluralize for the forms it produces."""
    lower = word.lower()
    if lower.endswith('ies') and len(lower) > 3:
        return word[:-3] + 'y'
    if lower.endswith(('ses', 'xes', 'zes', 'ches', 'shes')):
        return word[:-2]
    if lower.endswith('s') and not lower.endswith('ss'):
        return word[:-1]
    return word


def to_plural_snake_case(name: str) -> str:
    """Convert an entity name to plural snake_case (tables, list methods)."""
    return pluralize(to_snake_case(name))


def to_plural_pascal_case(name: str) -> str:
    return pluralize(to_pascal_case(name))


def simple_name(type_name: str) -> str:
    """Strip the package from a fully-qualified proto type name."""
    return type_name.rsplit('.', 1)[-1]


def strip_enum_prefix(enum_name: str, value_name: str) -> str:
    """STATUS_ACTIVE in enum Status becomes ACTIVE."""
    prefix = to_shouty_case(enum_name) + '_'
    if value_name.startswith(prefix) and len(value_name) > len(prefix):
        return value_name[len(prefix):]
    return value_name


def is_skipped_enum_value(value_name: str) -> bool:
    return value_name.endswith(ENUM_SKIP_SUFFIXES)


def is_generated_type_name(name: str) -> bool:
    """True for request/response/filter/pagination plumbing message names."""
    return simple_name(name).endswith(GENERATED_TYPE_SUFFIXES)


def safe_identifier(name: str) -> str:
    """Append an underscore to Python keywords ("in" becomes "in_")."""
    return name + '_' if keyword.iskeyword(name) else name


def proto_module(file_name: str) -> str:
    """Module protoc's Python plugin emits for a .proto file."""
    stem = file_name[:-len('.proto')] if file_name.endswith('.proto') else file_name
    return stem.replace('/', '.').replace('-', '_') + '_pb2'


def package_path(package: str) -> str:
    return package.replace('.', '/')
