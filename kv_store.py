"""Namespaced key-value storage used for scene blobs and per-owner indexes.

Every call is independently atomic; nothing here spans more than one key.
"""
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, scoped_session
from sqlalchemy.pool import StaticPool

from models import Base, KVEntry

StoredValue = Union[bytes, str]


class StorageNamespace(str, Enum):
    SCENES = "scenes"
    SETTINGS = "settings"


class StorageUnavailable(RuntimeError):
    """The backing store could not complete a get/set/has call."""


def scene_key(owner_id: str, scene_id: str) -> str:
    return f"workspace:{owner_id}:{scene_id}"


def index_key(owner_id: str) -> str:
    return f"workspace:meta:{owner_id}"


def _ns(namespace) -> str:
    return namespace.value if isinstance(namespace, StorageNamespace) else str(namespace)


class KeyValueStore(ABC):
    """get/set/has over (namespace, key). Setting ``None`` removes the key."""

    @abstractmethod
    def get(self, key: str, namespace) -> Optional[StoredValue]:
        """Return the stored value, or ``None`` when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: Optional[StoredValue], namespace) -> None:
        """Store ``value`` under ``key``; ``None`` deletes it."""

    @abstractmethod
    def has(self, key: str, namespace) -> bool:
        """Return whether ``key`` exists, without reading its value."""

    def delete(self, key: str, namespace) -> None:
        self.set(key, None, namespace)


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store. Values come back exactly as they were written."""

    def __init__(self) -> None:
        self._data: Dict[Tuple[str, str], StoredValue] = {}
        self._lock = threading.Lock()

    def get(self, key: str, namespace) -> Optional[StoredValue]:
        with self._lock:
            return self._data.get((_ns(namespace), key))

    def set(self, key: str, value: Optional[StoredValue], namespace) -> None:
        with self._lock:
            if value is None:
                self._data.pop((_ns(namespace), key), None)
            else:
                self._data[(_ns(namespace), key)] = value

    def has(self, key: str, namespace) -> bool:
        with self._lock:
            return (_ns(namespace), key) in self._data

    def keys(self, namespace):
        ns = _ns(namespace)
        with self._lock:
            return sorted(k for (n, k) in self._data if n == ns)


class SqlKeyValueStore(KeyValueStore):
    """Key-value rows in a single SQLAlchemy table, one session per call."""

    def __init__(self, database_url: str) -> None:
        kwargs = {"future": True}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # a single shared connection, otherwise every session sees a fresh empty db
            kwargs.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
        self.engine = create_engine(database_url, **kwargs)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = scoped_session(
            sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)
        )

    def db_sess(self):
        return self.SessionLocal()

    def _find(self, db, key: str, namespace):
        return db.execute(
            select(KVEntry).where(KVEntry.namespace == _ns(namespace), KVEntry.key == key)
        ).scalar_one_or_none()

    def get(self, key: str, namespace) -> Optional[bytes]:
        db = self.db_sess()
        try:
            row = self._find(db, key, namespace)
            return bytes(row.value) if row else None
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"get {_ns(namespace)}/{key} failed") from exc
        finally:
            db.close()

    def _write(self, db, key: str, value: Optional[bytes], namespace) -> None:
        row = self._find(db, key, namespace)
        if value is None:
            if row:
                db.delete(row)
        elif row:
            row.value = value
        else:
            db.add(KVEntry(namespace=_ns(namespace), key=key, value=value))
        db.commit()

    def set(self, key: str, value: Optional[StoredValue], namespace) -> None:
        if isinstance(value, str):
            value = value.encode("utf-8")
        db = self.db_sess()
        try:
            try:
                self._write(db, key, value, namespace)
            except IntegrityError:
                # another writer inserted the key between our select and insert
                db.rollback()
                self._write(db, key, value, namespace)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageUnavailable(f"set {_ns(namespace)}/{key} failed") from exc
        finally:
            db.close()

    def has(self, key: str, namespace) -> bool:
        db = self.db_sess()
        try:
            found = db.execute(
                select(KVEntry.id).where(KVEntry.namespace == _ns(namespace), KVEntry.key == key)
            ).first()
            return found is not None
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"has {_ns(namespace)}/{key} failed") from exc
        finally:
            db.close()
