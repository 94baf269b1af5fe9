import json
import logging
import os
from pathlib import Path
from typing import Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

import config
from db import get_storage_collection
from errors import StorageCorruptionError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class FileBackend:
    """Key-value storage with one JSON file per key."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    async def write(self, key: str, text: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)

    async def ping(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        if not os.access(self.directory, os.W_OK):
            raise OSError(f"Storage directory {self.directory} is not writable")


class MongoBackend:
    """Key-value storage with one document per key: {_id: key, value: text}."""

    def __init__(self, collection=None):
        self._collection = collection

    @property
    def collection(self):
        if self._collection is None:
            self._collection = get_storage_collection()
        return self._collection

    async def read(self, key: str) -> Optional[str]:
        doc = await self.collection.find_one({"_id": key})
        if not doc:
            return None
        return doc.get("value")

    async def write(self, key: str, text: str) -> None:
        await self.collection.replace_one({"_id": key}, {"_id": key, "value": text}, upsert=True)

    async def ping(self) -> None:
        await self.collection.database.command("ping")


def create_backend(kind: Optional[str] = None):
    kind = (kind or config.STORAGE_BACKEND).lower()
    if kind == "mongo":
        return MongoBackend()
    if kind == "file":
        return FileBackend(config.STORAGE_DIR)
    raise ValueError(f"Unknown storage backend: {kind}")


class SessionStore(Generic[M]):
    """
    Loads and saves a whole collection of records under one namespace.

    Every save overwrites the namespace. A corrupt namespace loads as an
    empty collection so the app keeps working.
    """

    def __init__(self, backend, namespace: str, model: Type[M]):
        self.backend = backend
        self.namespace = namespace
        self._adapter = TypeAdapter(List[model])

    async def load_all(self) -> List[M]:
        try:
            raw = await self.backend.read(self.namespace)
        except Exception:
            logger.exception(f"Failed to read {self.namespace} from storage")
            return []
        if raw is None or not raw.strip():
            return []

        try:
            return self._adapter.validate_python(json.loads(raw))
        except (ValueError, ValidationError) as e:
            error = StorageCorruptionError(f"Stored data under {self.namespace} is corrupt: {e}")
            logger.error(error.message)
            return []

    async def save_all(self, records: List[M]) -> None:
        data = [record.model_dump(mode="json", by_alias=True) for record in records]
        await self.backend.write(self.namespace, json.dumps(data, ensure_ascii=False))

    async def ping(self) -> None:
        await self.backend.ping()
