"""
Record store for PaperShare.

Collections are stored as JSON text blobs under fixed keys. A backend only
knows how to read and conditionally write a blob; ``RecordStore`` turns blobs
into lists of dicts and back. Reads never raise: a missing or corrupt blob is
an empty collection.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, TypeVar

from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import Settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "papershare"
CURRENT_USER = f"{KEY_PREFIX}_current_user"
USERS = f"{KEY_PREFIX}_users"
PAPERS = f"{KEY_PREFIX}_papers"
NOTES = f"{KEY_PREFIX}_notes"

T = TypeVar("T")


class Blob(NamedTuple):
    text: str
    version: int


class StorageError(Exception):
    """Raised by backends when the underlying storage cannot be reached."""


class WriteConflict(StorageError):
    """Another writer changed the blob between our read and our write."""


class MemoryBackend:
    """Blobs held in a dict. Used for tests and throwaway demos."""

    name = "memory"

    def __init__(self) -> None:
        self._blobs: Dict[str, Blob] = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[Blob]:
        with self._lock:
            return self._blobs.get(key)

    def write(self, key: str, text: str, expected_version: int) -> bool:
        with self._lock:
            current = self._blobs.get(key)
            if (current.version if current else 0) != expected_version:
                return False
            self._blobs[key] = Blob(text, expected_version + 1)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._blobs.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._blobs)


class FileBackend:
    """One ``<key>.json`` file per blob. The version lives next to the value."""

    name = "file"

    def __init__(self, directory: str) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read_unlocked(self, key: str) -> Optional[Blob]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"cannot read {path}: {e}") from e
        try:
            envelope = json.loads(raw)
            return Blob(envelope["value"], int(envelope["version"]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            # Hand-edited or legacy file holding the bare value
            return Blob(raw, 0)

    def read(self, key: str) -> Optional[Blob]:
        with self._lock:
            return self._read_unlocked(key)

    def write(self, key: str, text: str, expected_version: int) -> bool:
        with self._lock:
            current = self._read_unlocked(key)
            if (current.version if current else 0) != expected_version:
                return False
            path = self._path(key)
            tmp = path.with_suffix(".tmp")
            try:
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump({"value": text, "version": expected_version + 1}, f, ensure_ascii=False)
                tmp.replace(path)
            except OSError as e:
                raise StorageError(f"cannot write {path}: {e}") from e
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)

    def keys(self) -> List[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))


class MongoBackend:
    """Blobs as documents ``{"_id": key, "value": text, "version": n}``."""

    name = "mongo"

    def __init__(self, collection) -> None:
        self.collection = collection

    @classmethod
    def from_settings(cls, settings: Settings) -> "MongoBackend":
        if not settings.database_url or not settings.database_name:
            raise StorageError("DATABASE_URL and DATABASE_NAME must be set for the mongo backend")
        client = MongoClient(settings.database_url)
        return cls(client[settings.database_name][settings.blob_collection])

    def read(self, key: str) -> Optional[Blob]:
        try:
            doc = self.collection.find_one({"_id": key})
        except PyMongoError as e:
            raise StorageError(str(e)) from e
        if not doc:
            return None
        return Blob(doc.get("value", ""), int(doc.get("version", 0)))

    def write(self, key: str, text: str, expected_version: int) -> bool:
        try:
            if expected_version == 0:
                try:
                    self.collection.insert_one({"_id": key, "value": text, "version": 1})
                except DuplicateKeyError:
                    return False
                return True
            result = self.collection.update_one(
                {"_id": key, "version": expected_version},
                {"$set": {"value": text, "version": expected_version + 1}},
            )
        except PyMongoError as e:
            raise StorageError(str(e)) from e
        return result.matched_count == 1

    def delete(self, key: str) -> None:
        try:
            self.collection.delete_one({"_id": key})
        except PyMongoError as e:
            raise StorageError(str(e)) from e

    def keys(self) -> List[str]:
        try:
            return sorted(doc["_id"] for doc in self.collection.find({}, {"_id": 1}))
        except PyMongoError as e:
            raise StorageError(str(e)) from e


def create_backend(settings: Settings):
    if settings.storage_backend == "memory":
        return MemoryBackend()
    if settings.storage_backend == "mongo":
        return MongoBackend.from_settings(settings)
    return FileBackend(settings.storage_dir)


class RecordStore:
    """Named collections and singleton records on top of a blob backend."""

    def __init__(self, backend) -> None:
        self.backend = backend

    def _load(self, key: str) -> Optional[Blob]:
        try:
            return self.backend.read(key)
        except StorageError as e:
            logger.warning(f"Storage read failed for {key}: {e}")
            return None

    @staticmethod
    def _decode(key: str, blob: Optional[Blob], expect: type) -> Any:
        if blob is None:
            return None
        try:
            value = json.loads(blob.text)
        except json.JSONDecodeError:
            logger.warning(f"Unparsable data under {key}, treating as empty")
            return None
        if not isinstance(value, expect):
            logger.warning(f"Unexpected {type(value).__name__} under {key}, treating as empty")
            return None
        return value

    def has(self, key: str) -> bool:
        return self._load(key) is not None

    def get(self, collection: str) -> List[dict]:
        records = self._decode(collection, self._load(collection), list)
        return [r for r in records if isinstance(r, dict)] if records else []

    def set(self, collection: str, records: List[dict]) -> bool:
        return self._write(collection, json.dumps(list(records), ensure_ascii=False))

    def get_singleton(self, key: str) -> Optional[dict]:
        return self._decode(key, self._load(key), dict)

    def set_singleton(self, key: str, record: Optional[dict]) -> bool:
        if record is None:
            try:
                self.backend.delete(key)
            except StorageError as e:
                logger.warning(f"Storage delete failed for {key}: {e}")
                return False
            return True
        return self._write(key, json.dumps(record, ensure_ascii=False))

    def _write(self, key: str, text: str) -> bool:
        blob = self._load(key)
        version = blob.version if blob else 0
        try:
            if self.backend.write(key, text, version):
                return True
        except StorageError as e:
            logger.warning(f"Storage write failed for {key}: {e}")
            return False
        logger.warning(f"Concurrent write detected on {key}, change dropped")
        return False

    def modify(self, collection: str, fn: Callable[[List[dict]], T]) -> Optional[T]:
        """Run ``fn`` on the collection's records in place and write them back.

        Returns whatever ``fn`` returns. ``fn`` returning None means nothing
        changed and no write is attempted. Raises WriteConflict if another
        writer got in first, StorageError if the backend failed; there is no
        retry.
        """
        blob = self._load(collection)
        records = self._decode(collection, blob, list) or []
        result = fn(records)
        if result is None:
            return None
        text = json.dumps(records, ensure_ascii=False)
        try:
            written = self.backend.write(collection, text, blob.version if blob else 0)
        except StorageError as e:
            logger.warning(f"Storage write failed for {collection}: {e}")
            raise
        if not written:
            logger.warning(f"Concurrent write detected on {collection}, change dropped")
            raise WriteConflict(f"{collection} changed during update")
        return result

    def status(self) -> dict:
        """Backend name and stored keys, for diagnostics."""
        try:
            keys = self.backend.keys()
            connected = True
        except StorageError as e:
            logger.warning(f"Storage status check failed: {e}")
            keys, connected = [], False
        return {"backend": self.backend.name, "connected": connected, "keys": keys}
