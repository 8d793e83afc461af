"""SCOREVIEW — Lookup Index.

Hash map for point lookups plus a sorted key list for range lookups,
over one or more entity attributes. Maintained incrementally: after any
sequence of on_entity_changed / on_entity_removed calls the index holds
exactly what a full build over the same entities would.
"""

from bisect import bisect_left, bisect_right, insort
from typing import Any, Dict, Hashable, Iterable, List, Optional, Set, Union

from scoreview.core.exceptions import ValidationFailed
from scoreview.core.logging import get_logger
from scoreview.models.view_models import IndexDescriptor

logger = get_logger("engine.index")


def resolve_path(obj: Any, path: str) -> Any:
    """Follow a dotted attribute path through objects or dicts."""
    value = obj
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


class LookupIndex:
    """Secondary index keyed by the descriptor's attribute(s)."""

    def __init__(self, descriptor: IndexDescriptor):
        self.descriptor = descriptor
        self._by_key: Dict[Hashable, Set[str]] = {}
        self._sorted_keys: List[Hashable] = []
        self._key_of: Dict[str, Hashable] = {}

    @classmethod
    def for_attribute(cls, attribute_path: str, **kwargs) -> "LookupIndex":
        return cls(IndexDescriptor(name=attribute_path, attributes=[attribute_path], **kwargs))

    @property
    def name(self) -> str:
        return self.descriptor.name

    def __len__(self) -> int:
        return len(self._key_of)

    # ── Keys ──

    def _normalize(self, value: Any) -> Any:
        n = self.descriptor.prefix_length
        if n is not None and isinstance(value, str):
            return value[:n]
        return value

    def key_for(self, entity: Any) -> Optional[Hashable]:
        """Index key of an entity, or None when it is not indexable."""
        values = [self._normalize(resolve_path(entity, p)) for p in self.descriptor.attributes]
        if any(v is None for v in values):
            return None
        if len(values) == 1:
            return values[0]
        return tuple(values)

    def normalize_key(self, key: Any) -> Hashable:
        """Apply prefix truncation to a caller-supplied key."""
        if isinstance(key, (list, tuple)):
            return tuple(self._normalize(k) for k in key)
        return self._normalize(key)

    # ── Build / maintain ──

    def build(self, entities: Iterable[Any]) -> "LookupIndex":
        """Rebuild from scratch over all current entities."""
        self._by_key.clear()
        self._sorted_keys.clear()
        self._key_of.clear()
        for entity in entities:
            self._insert(entity.id, self.key_for(entity))
        logger.info(f"Built index {self.name} over {len(self)} entities")
        return self

    def on_entity_changed(self, entity: Any) -> None:
        """Move one entity to its current key."""
        new_key = self.key_for(entity)
        old_key = self._key_of.get(entity.id)
        if entity.id in self._key_of and old_key == new_key:
            return
        self._check_unique(entity.id, new_key)
        self._remove(entity.id)
        self._insert(entity.id, new_key)

    def check(self, entity: Any) -> None:
        """Raise ValidationFailed if entity would break a unique index."""
        self._check_unique(entity.id, self.key_for(entity))

    def on_entity_removed(self, entity_id: str) -> None:
        self._remove(entity_id)

    def _check_unique(self, entity_id: str, key: Optional[Hashable]) -> None:
        if not self.descriptor.unique or key is None:
            return
        holders = self._by_key.get(key, set()) - {entity_id}
        if holders:
            raise ValidationFailed(
                ",".join(self.descriptor.attributes),
                f"duplicate value {key!r} in unique index {self.name}",
                entity_id=entity_id,
            )

    def _insert(self, entity_id: str, key: Optional[Hashable]) -> None:
        if key is None:
            return
        self._check_unique(entity_id, key)
        bucket = self._by_key.get(key)
        if bucket is None:
            bucket = self._by_key[key] = set()
            insort(self._sorted_keys, key)
        bucket.add(entity_id)
        self._key_of[entity_id] = key

    def _remove(self, entity_id: str) -> None:
        key = self._key_of.pop(entity_id, None)
        if key is None:
            return
        bucket = self._by_key[key]
        bucket.discard(entity_id)
        if not bucket:
            del self._by_key[key]
            pos = bisect_left(self._sorted_keys, key)
            del self._sorted_keys[pos]

    # ── Queries ──

    def lookup(self, key: Any) -> List[str]:
        """Entity ids whose indexed value equals key."""
        return sorted(self._by_key.get(self.normalize_key(key), ()))

    def lookup_range(self, low: Any = None, high: Any = None) -> List[str]:
        """Entity ids whose key lies in [low, high]; None leaves a side open."""
        start = 0 if low is None else bisect_left(self._sorted_keys, self.normalize_key(low))
        stop = (
            len(self._sorted_keys)
            if high is None
            else bisect_right(self._sorted_keys, self.normalize_key(high))
        )
        ids: List[str] = []
        for key in self._sorted_keys[start:stop]:
            ids.extend(sorted(self._by_key[key]))
        return ids

    def snapshot(self) -> Dict[Hashable, List[str]]:
        """Key → sorted ids, for comparing two indexes."""
        return {k: sorted(v) for k, v in self._by_key.items()}


def build_index(spec: Union[str, IndexDescriptor], entities: Iterable[Any]) -> LookupIndex:
    """Build an index from an attribute path or a full descriptor."""
    if isinstance(spec, str):
        index = LookupIndex.for_attribute(spec)
    else:
        index = LookupIndex(spec)
    return index.build(entities)
