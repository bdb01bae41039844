"""
Key-value stores behind the persistence boundary.
"""

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import sessionmaker

from ..config.settings import AppSettings, get_settings
from .encryption import EncryptionManager
from .models import Base, StoredValue

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """String keys to string values; ``get`` returns None for unknown keys."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    """Dict-backed store for tests and ephemeral workspaces."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SQLiteStore:
    """Single-table SQLite store with optional value encryption."""

    def __init__(
        self,
        database_url: str | None = None,
        encryption: EncryptionManager | None = None,
        settings: AppSettings | None = None,
    ):
        settings = settings or get_settings()

        if database_url:
            self.database_url = database_url
        else:
            db_path = Path(settings.storage.database_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self.database_url = f"sqlite:///{db_path}"

        if encryption is None and settings.storage.encryption_enabled:
            encryption = EncryptionManager(settings.storage.encryption_key or "")
        self.encryption = encryption

        self.engine = create_engine(self.database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

        logger.info(
            f"Initialized SQLiteStore at {self.database_url} "
            f"(encryption {'on' if self.encryption else 'off'})"
        )

    def get(self, key: str) -> str | None:
        with self.SessionLocal() as session:
            row = session.get(StoredValue, key)
            if row is None:
                return None
            if row.encryption_key_id:
                if self.encryption is None:
                    raise ValueError(f"Value for {key!r} is encrypted but no key is configured")
                return self.encryption.decrypt(row.value, row.encryption_key_id)
            return row.value

    def set(self, key: str, value: str) -> None:
        key_id = None
        if self.encryption is not None:
            value, key_id = self.encryption.encrypt(value)

        with self.SessionLocal() as session:
            row = session.get(StoredValue, key)
            if row is None:
                session.add(StoredValue(key=key, value=value, encryption_key_id=key_id))
            else:
                row.value = value
                row.encryption_key_id = key_id
            session.commit()
        logger.debug(f"Stored {key!r}")

    def delete(self, key: str) -> None:
        with self.SessionLocal() as session:
            session.execute(delete(StoredValue).where(StoredValue.key == key))
            session.commit()

    def keys(self) -> list[str]:
        with self.SessionLocal() as session:
            return sorted(session.scalars(select(StoredValue.key)))

    def close(self) -> None:
        self.engine.dispose()
