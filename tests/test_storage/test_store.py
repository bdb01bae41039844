"""
Tests for the key-value stores and value encryption.
"""

import pytest

from chatdesk.config.settings import AppSettings
from chatdesk.storage.encryption import EncryptionManager
from chatdesk.storage.models import StoredValue
from chatdesk.storage.store import KeyValueStore, MemoryStore, SQLiteStore


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'store.db'}"


@pytest.fixture
def encryption():
    return EncryptionManager("test-master-key")


class TestEncryptionManager:
    def test_round_trip(self, encryption):
        ciphertext, key_id = encryption.encrypt('{"title": "Launch"}')

        assert key_id == "primary_v1"
        assert "Launch" not in ciphertext
        assert encryption.decrypt(ciphertext, key_id) == '{"title": "Launch"}'

    def test_empty_master_key_rejected(self):
        with pytest.raises(ValueError):
            EncryptionManager("")

    def test_wrong_master_key(self, encryption):
        ciphertext, key_id = encryption.encrypt("secret")
        with pytest.raises(ValueError, match="cannot be decrypted"):
            EncryptionManager("other-key").decrypt(ciphertext, key_id)

    def test_rotation_keeps_old_values_readable(self, encryption):
        old, old_key = encryption.encrypt("old")
        encryption.rotate_key("primary_v2")
        new, new_key = encryption.encrypt("new")

        assert encryption.current_key_id == "primary_v2"
        assert new_key == "primary_v2"
        assert encryption.decrypt(old, old_key) == "old"
        assert encryption.decrypt(new, new_key) == "new"


class TestMemoryStore:
    def test_get_set_delete(self):
        store = MemoryStore({"a": "1"})

        assert isinstance(store, KeyValueStore)
        assert store.get("a") == "1"
        assert store.get("missing") is None

        store.set("b", "2")
        store.delete("a")
        store.delete("never-there")

        assert store.keys() == ["b"]


class TestSQLiteStore:
    def test_plain_values(self, settings, database_url):
        store = SQLiteStore(database_url, settings=settings)

        assert isinstance(store, KeyValueStore)
        assert store.get("sessions") is None

        store.set("sessions", "[]")
        store.set("sessions", '[{"id": "s1"}]')
        store.set("labels", "[]")

        assert store.get("sessions") == '[{"id": "s1"}]'
        assert store.keys() == ["labels", "sessions"]

        store.delete("labels")
        assert store.keys() == ["sessions"]
        store.close()

    def test_values_persist_across_instances(self, settings, database_url):
        first = SQLiteStore(database_url, settings=settings)
        first.set("profile", '{"user_name": "Ada"}')
        first.close()

        second = SQLiteStore(database_url, settings=settings)
        assert second.get("profile") == '{"user_name": "Ada"}'
        second.close()

    def test_default_path_from_settings(self, tmp_path):
        settings = AppSettings(storage={"database_path": str(tmp_path / "nested" / "desk.db")})

        store = SQLiteStore(settings=settings)
        store.set("k", "v")

        assert (tmp_path / "nested" / "desk.db").exists()
        store.close()

    def test_encrypted_values(self, settings, database_url, encryption):
        store = SQLiteStore(database_url, encryption=encryption, settings=settings)
        store.set("messages", '{"s1": []}')

        with store.SessionLocal() as session:
            row = session.get(StoredValue, "messages")
            assert row.value != '{"s1": []}'
            assert row.encryption_key_id == "primary_v1"

        assert store.get("messages") == '{"s1": []}'
        store.close()

    def test_encryption_from_settings(self, database_url):
        settings = AppSettings(storage={"encryption_enabled": True, "encryption_key": "master"})

        store = SQLiteStore(database_url, settings=settings)

        assert store.encryption is not None
        store.set("k", "v")
        assert store.get("k") == "v"
        store.close()

    def test_encrypted_value_without_key(self, settings, database_url, encryption):
        writer = SQLiteStore(database_url, encryption=encryption, settings=settings)
        writer.set("agents", "[]")
        writer.close()

        reader = SQLiteStore(database_url, settings=settings)
        with pytest.raises(ValueError, match="encrypted"):
            reader.get("agents")
        reader.close()
