"""Scene persistence across two independent key-value records per owner.

A save or delete touches the scene blob (namespace ``scenes``) and the owner's
metadata index (namespace ``settings``). The store gives no multi-key
transaction, so the blob is always written first and the index second. A crash
between the two leaves either an index entry that lags the blob, or an entry
for a blob that is already gone; reads treat the missing blob as "not found".

Index read-modify-write is serialized per owner inside one ``SceneStore``.
Separate processes sharing a database can still lose an index update when they
save for the same owner at the same moment.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from identifiers import require_ids, require_owner_id
from kv_store import KeyValueStore, StorageNamespace, index_key, scene_key
from scene_codec import (
    DecodeError, SceneMetadata, SceneRecord,
    decode_index, decode_record, encode_index, encode_record,
)

logger = logging.getLogger(__name__)

INDEX_LIMIT = 100


def now_ms() -> int:
    return int(time.time() * 1000)


def _by_recency(entries: List[SceneMetadata]) -> List[SceneMetadata]:
    # equal modified_at values keep no guaranteed relative order
    return sorted(entries, key=lambda m: m.modified_at, reverse=True)


class SceneStore:
    def __init__(self, store: KeyValueStore, clock: Optional[Callable[[], int]] = None,
                 index_limit: int = INDEX_LIMIT) -> None:
        self.store = store
        self.clock = clock or now_ms
        self.index_limit = index_limit
        # owner_id -> [lock, number of callers holding or waiting on it]
        self._owner_locks: Dict[str, list] = {}
        self._guard = threading.Lock()

    @contextmanager
    def _owner_lock(self, owner_id: str):
        with self._guard:
            entry = self._owner_locks.get(owner_id)
            if entry is None:
                entry = self._owner_locks[owner_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._owner_locks[owner_id]

    # ---------------------------
    # READ HELPERS
    # ---------------------------

    def _read_index(self, owner_id: str) -> List[SceneMetadata]:
        raw = self.store.get(index_key(owner_id), StorageNamespace.SETTINGS)
        if not raw:
            return []
        try:
            return decode_index(raw)
        except DecodeError as exc:
            logger.warning("Failed to parse scene index for user %s: %s", owner_id, exc)
            return []

    def _read_record(self, owner_id: str, scene_id: str) -> Optional[SceneRecord]:
        """Return the decoded record, ``None`` if absent. Raises DecodeError if corrupt."""
        raw = self.store.get(scene_key(owner_id, scene_id), StorageNamespace.SCENES)
        if not raw:
            return None
        return decode_record(raw)

    def _write_index(self, owner_id: str, entries: List[SceneMetadata]) -> None:
        self.store.set(index_key(owner_id), encode_index(entries), StorageNamespace.SETTINGS)

    # ---------------------------
    # OPERATIONS
    # ---------------------------

    def save_scene(self, owner_id: str, scene_id: str, name: str, ciphertext: bytes,
                   key_reference: str, *, thumbnail: Optional[str] = None,
                   element_count: Optional[int] = None,
                   file_count: Optional[int] = None) -> SceneMetadata:
        require_ids(owner_id, scene_id)

        with self._owner_lock(owner_id):
            now = self.clock()
            created_at = None
            try:
                existing = self._read_record(owner_id, scene_id)
                if existing is not None:
                    created_at = existing.created_at
            except DecodeError as exc:
                logger.warning("Stored scene %s for user %s is unreadable (%s); overwriting",
                               scene_id, owner_id, exc)
                created_at = next(
                    (m.created_at for m in self._read_index(owner_id) if m.id == scene_id), None
                )
            is_update = created_at is not None
            if created_at is None:
                created_at = now

            record = SceneRecord(
                id=scene_id,
                owner_id=owner_id,
                name=name,
                ciphertext=bytes(ciphertext),
                key_reference=key_reference,
                created_at=created_at,
                modified_at=max(now, created_at),
                thumbnail=thumbnail,
                element_count=element_count,
                file_count=file_count,
            )
            # content first; the index is only a listing aid
            self.store.set(scene_key(owner_id, scene_id), encode_record(record),
                           StorageNamespace.SCENES)

            entries = [m for m in self._read_index(owner_id) if m.id != scene_id]
            entries.append(record.metadata())
            self._write_index(owner_id, _by_recency(entries)[:self.index_limit])

        logger.info("Saved scene %s for user %s (%s)", scene_id, owner_id,
                    "updated" if is_update else "created")
        return record.metadata()

    def list_scenes(self, owner_id: str) -> List[SceneMetadata]:
        require_owner_id(owner_id)
        # indexes written elsewhere may be longer than ours
        return _by_recency(self._read_index(owner_id))[:self.index_limit]

    def get_scene(self, owner_id: str, scene_id: str) -> Optional[bytes]:
        """Ciphertext of the scene, or ``None`` when it is absent or unreadable."""
        require_ids(owner_id, scene_id)
        try:
            record = self._read_record(owner_id, scene_id)
        except DecodeError as exc:
            logger.warning("Failed to parse scene %s for user %s: %s", scene_id, owner_id, exc)
            return None
        return record.ciphertext if record else None

    def delete_scene(self, owner_id: str, scene_id: str) -> bool:
        require_ids(owner_id, scene_id)

        with self._owner_lock(owner_id):
            if not self.store.has(scene_key(owner_id, scene_id), StorageNamespace.SCENES):
                return False

            self.store.set(scene_key(owner_id, scene_id), None, StorageNamespace.SCENES)

            entries = [m for m in self._read_index(owner_id) if m.id != scene_id]
            self._write_index(owner_id, entries)

        logger.info("Deleted scene %s for user %s", scene_id, owner_id)
        return True
