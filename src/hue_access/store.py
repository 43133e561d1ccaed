from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from hue_access.errors import ApiFailure

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def normalize_name(value: str) -> str:
    return " ".join(value.strip().lower().split())


def merge_patch(cached: dict[str, Any], partial: dict[str, Any]) -> dict[str, Any]:
    """Merge a partial resource into a cached one.

    Present fields overwrite, absent fields are kept. Nested objects are merged by the
    same rule; lists (children, actions, services) are replaced wholesale.
    """
    merged = dict(cached)
    for key, value in partial.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = merge_patch(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _default_name(resource: BaseModel) -> str | None:
    metadata = getattr(resource, "metadata", None)
    name = getattr(metadata, "name", None)
    if isinstance(name, str):
        return name
    return None


def _is_name_bearing(partial: dict[str, Any]) -> bool:
    if "name" in partial:
        return True
    metadata = partial.get("metadata")
    if isinstance(metadata, dict) and "name" in metadata:
        return True
    attributes = partial.get("attributes")
    return isinstance(attributes, dict) and "friendly_name" in attributes


Loader = Callable[[], Awaitable[Any]]


class ResourceStore(Generic[ModelT]):
    """Lazily populated cache for one resource type.

    The whole collection is fetched on first access and after ``invalidate()``; at
    most one fetch is in flight per store. Patches against an unpopulated store are
    dropped.
    """

    def __init__(
        self,
        *,
        rtype: str,
        model: type[ModelT],
        loader: Loader,
        id_of: Callable[[ModelT], str] = lambda resource: resource.id,  # type: ignore[attr-defined]
        name_of: Callable[[ModelT], str | None] = _default_name,
    ) -> None:
        self.rtype = rtype
        self._model = model
        self._loader = loader
        self._id_of = id_of
        self._name_of = name_of
        self._items: dict[str, ModelT] = {}
        self._loaded = False
        self._generation = 0
        self._lock = asyncio.Lock()
        self._names: dict[str, list[str]] | None = None

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def get_or_load(self) -> dict[str, ModelT]:
        if self._loaded:
            return self._items
        async with self._lock:
            if self._loaded:
                return self._items
            generation = self._generation
            raw = await self._loader()
            items = self._parse_collection(raw)
            self._items = items
            self._names = None
            # A change signalled while the fetch was in flight may not be reflected in it.
            self._loaded = generation == self._generation
            if not self._loaded:
                logger.debug("Store %s changed during fetch, will refetch on next read", self.rtype)
            return items

    async def get(self, rid: str) -> ModelT | None:
        items = await self.get_or_load()
        return items.get(rid)

    async def ids_for_name(self, name: str) -> list[str]:
        items = await self.get_or_load()
        names = self._names
        if names is None:
            index: dict[str, list[str]] = defaultdict(list)
            for rid, item in items.items():
                item_name = self._name_of(item)
                if isinstance(item_name, str) and item_name.strip():
                    index[normalize_name(item_name)].append(rid)
            names = dict(index)
            if self._loaded:
                self._names = names
        return list(names.get(normalize_name(name), []))

    def invalidate(self) -> None:
        self._loaded = False
        self._generation += 1
        self._names = None

    def patch(self, rid: str, partial: Any) -> bool:
        """Apply a partial update; returns False when the patch was dropped."""
        if not self._loaded:
            if self._lock.locked():
                self._generation += 1
            return False
        current = self._items.get(rid)
        if current is None:
            logger.debug("Dropping %s patch for uncached id %s", self.rtype, rid)
            return False
        if not isinstance(partial, dict):
            logger.warning("Ignoring %s patch for %s: not an object", self.rtype, rid)
            return False
        cached = current.model_dump(mode="json", exclude_unset=True)
        merged = merge_patch(cached, partial)
        try:
            updated = self._model.model_validate(merged)
        except ValidationError as exc:
            logger.warning("Ignoring malformed %s patch for %s: %s", self.rtype, rid, exc.errors()[:1])
            return False
        self._items[rid] = updated
        if _is_name_bearing(partial):
            self._names = None
        return True

    def replace(self, rid: str, resource: ModelT) -> bool:
        """Swap in a complete snapshot of one resource; dropped when the store is not populated."""
        if not self._loaded:
            if self._lock.locked():
                self._generation += 1
            return False
        self._items[rid] = resource
        self._names = None
        return True

    def remove(self, rid: str) -> bool:
        if not self._loaded and self._lock.locked():
            self._generation += 1
        removed = self._items.pop(rid, None) is not None
        if removed:
            self._names = None
        return removed

    def _parse_collection(self, raw: Any) -> dict[str, ModelT]:
        if raw is None:
            return {}
        if isinstance(raw, dict):
            # CLIP v2 wraps collections in {"errors": [...], "data": [...]}
            raw = raw.get("data")
            if raw is None:
                return {}
        if not isinstance(raw, list):
            raise ApiFailure(f"Unexpected {self.rtype} collection payload", body=raw)
        items: dict[str, ModelT] = {}
        try:
            for entry in raw:
                resource = self._model.model_validate(entry)
                items[self._id_of(resource)] = resource
        except ValidationError as exc:
            raise ApiFailure(f"Unparseable {self.rtype} collection: {exc.errors()[:1]}", body=raw) from exc
        return items
