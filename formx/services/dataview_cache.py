"""
Dataview Cache

In-memory cache in front of the external dataview layer.

The provider (the remote fetch layer) is async; the engine itself never
awaits. Editors await refresh()/fields()/records() and the synchronous
accessors (is_known, cached_records) feed source classification and preview
resolution from whatever has been loaded so far.

Fetch failures are logged and leave the cache as it was.
"""

import json
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from formx.config import get_settings
from formx.models.contracts.dataviews import DataviewRef

logger = logging.getLogger(__name__)


@runtime_checkable
class DataviewProvider(Protocol):
    """The external dataview layer."""

    async def list_available(self) -> list[DataviewRef | dict[str, Any]]:
        ...

    async def load_fields(self, ref_id: str) -> list[str]:
        ...

    async def load_records(self, ref_id: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        ...


def _filter_key(filters: Mapping[str, Any] | None) -> str:
    if not filters:
        return ""
    return json.dumps(filters, sort_keys=True, default=str)


class _Entry:
    __slots__ = ("value", "expires_at")

    def __init__(self, value: Any, expires_at: float):
        self.value = value
        self.expires_at = expires_at


class DataviewCache:
    """
    Caches the dataview listing, field lists and records.

    Args:
        provider: The external dataview layer
        clock: Monotonic time source (seconds); injectable for tests
    """

    def __init__(self, provider: DataviewProvider, clock: Callable[[], float] = time.monotonic):
        settings = get_settings()
        self.provider = provider
        self.clock = clock
        self.records_ttl = settings.dataview_records_ttl
        self.filtered_records_ttl = settings.dataview_filtered_records_ttl
        self.fields_ttl = settings.dataview_fields_ttl
        self._refs: dict[str, DataviewRef] = {}
        self._fields: dict[str, _Entry] = {}
        self._records: dict[tuple[str, str], _Entry] = {}

    # -------------------------------------------------------------------------
    # Async loading
    # -------------------------------------------------------------------------

    async def refresh(self) -> list[DataviewRef]:
        """Reload the listing of available dataviews."""
        try:
            raw_refs = await self.provider.list_available()
        except Exception as e:
            logger.warning(f"Listing dataviews failed: {e}")
            return list(self._refs.values())

        refs: dict[str, DataviewRef] = {}
        for raw in raw_refs:
            try:
                ref = raw if isinstance(raw, DataviewRef) else DataviewRef.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping malformed dataview entry: {e.error_count()} error(s)")
                continue
            refs[ref.id] = ref
        self._refs = refs
        logger.info(f"Loaded {len(refs)} dataview(s)")
        return list(refs.values())

    async def fields(self, ref_id: str) -> list[str]:
        """Field names of a dataview (listing fields, cache, then provider)."""
        entry = self._fresh(self._fields.get(ref_id))
        if entry is not None:
            return entry.value

        ref = self._refs.get(ref_id)
        if ref is not None and ref.fields:
            return list(ref.fields)

        try:
            fields = list(await self.provider.load_fields(ref_id))
        except Exception as e:
            logger.warning(f"Loading fields of dataview {ref_id} failed: {e}")
            return []
        self._fields[ref_id] = _Entry(fields, self.clock() + self.fields_ttl)
        return fields

    async def records(self, ref_id: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Records of a dataview; filtered queries are cached for a shorter time."""
        key = (ref_id, _filter_key(filters))
        entry = self._fresh(self._records.get(key))
        if entry is not None:
            return entry.value

        try:
            records = list(await self.provider.load_records(ref_id, filters or None))
        except Exception as e:
            logger.warning(f"Loading records of dataview {ref_id} failed: {e}")
            stale = self._records.get(key)
            return stale.value if stale is not None else []

        ttl = self.filtered_records_ttl if filters else self.records_ttl
        self._records[key] = _Entry(records, self.clock() + ttl)
        logger.debug(f"Cached {len(records)} record(s) of dataview {ref_id}")
        return records

    # -------------------------------------------------------------------------
    # Synchronous access
    # -------------------------------------------------------------------------

    def is_known(self, ref_id: str) -> bool:
        """True if ref_id is in the listing or has cached records."""
        return ref_id in self._refs or any(key[0] == ref_id for key in self._records)

    def known_ids(self) -> list[str]:
        return list(self._refs)

    def get_ref(self, ref_id: str) -> DataviewRef | None:
        return self._refs.get(ref_id)

    def cached_records(self, ref_id: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]] | None:
        """Records loaded earlier (even if stale), or None."""
        entry = self._records.get((ref_id, _filter_key(filters)))
        return entry.value if entry is not None else None

    def invalidate(self, ref_id: str | None = None) -> None:
        """Drop cached fields/records of one dataview, or of all."""
        if ref_id is None:
            self._fields.clear()
            self._records.clear()
            return
        self._fields.pop(ref_id, None)
        for key in [k for k in self._records if k[0] == ref_id]:
            del self._records[key]

    def _fresh(self, entry: _Entry | None) -> _Entry | None:
        if entry is None or entry.expires_at <= self.clock():
            return None
        return entry
