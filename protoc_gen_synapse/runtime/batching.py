"""Key coverage rules for batched loaders.

A loader receives a batch of keys, makes one list call and must answer
for every key. Identity loaders leave unmatched keys out of the map;
relation loaders map them to an empty list.
"""
from typing import Callable, Dict, Hashable, Iterable, List, Sequence, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


def index_by_key(keys: Sequence[K], rows: Iterable[V], key: Callable[[V], K]) -> Dict[K, V]:
    """Map each requested key to its row; keys without a row are absent."""
    wanted = set(keys)
    found: Dict[K, V] = {}
    for row in rows:
        row_key = key(row)
        if row_key in wanted and row_key not in found:
            found[row_key] = row
    return found


def group_by_key(keys: Sequence[K], rows: Iterable[V], key: Callable[[V], K]) -> Dict[K, List[V]]:
    """Map every requested key to its rows, with an empty list when nothing matched."""
    grouped: Dict[K, List[V]] = {k: [] for k in keys}
    for row in rows:
        row_key = key(row)
        if row_key in grouped:
            grouped[row_key].append(row)
    return grouped


def in_filter(column: str, keys: Sequence[K]) -> Dict[str, Dict[str, List[K]]]:
    """Filter payload selecting rows whose column is one of keys."""
    return {column: {"in": list(dict.fromkeys(keys))}}
