"""
Tests for the state file and the state lock.
"""

import json
from unittest.mock import patch

import pytest

from berth.core.state import (
    ResourceState,
    StateDocument,
    StateError,
    StateLock,
    StateLockError,
    StateStore,
    force_unlock,
    lock_path_for,
    read_lock,
)


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "berth.state.json"


class TestStateDocument:
    """Tests for StateDocument bookkeeping."""

    def test_upsert_replaces_same_address(self):
        doc = StateDocument()
        doc.upsert(ResourceState(type="docker_image", name="nginx", attributes={"id": "1"}))
        doc.upsert(ResourceState(type="docker_image", name="nginx", attributes={"id": "2"}))
        assert doc.addresses() == ["docker_image.nginx"]
        assert doc.get("docker_image.nginx").attributes["id"] == "2"

    def test_remove(self):
        doc = StateDocument()
        doc.upsert(ResourceState(type="docker_container", name="web"))
        assert doc.remove("docker_container.web").name == "web"
        assert doc.remove("docker_container.web") is None

    def test_fresh_documents_have_distinct_lineage(self):
        assert StateDocument().lineage != StateDocument().lineage


class TestStateStore:
    """Tests for StateStore load and save."""

    def test_missing_file_is_empty_state(self, state_path):
        doc = StateStore(state_path).load()
        assert doc.resources == []
        assert doc.serial == 0

    def test_save_bumps_serial_and_round_trips(self, state_path):
        store = StateStore(state_path)
        doc = store.load()
        doc.upsert(ResourceState(type="docker_image", name="nginx", attributes={"id": "sha256:1"}))
        store.save(doc)

        loaded = store.load()
        assert loaded.serial == 1
        assert loaded.lineage == doc.lineage
        assert loaded.get("docker_image.nginx").attributes == {"id": "sha256:1"}

    def test_previous_version_kept_as_backup(self, state_path):
        store = StateStore(state_path)
        doc = store.load()
        store.save(doc)
        assert not store.backup_path.exists()
        store.save(doc)

        backup = json.loads(store.backup_path.read_text())
        assert backup["serial"] == 1
        assert store.load().serial == 2

    def test_no_temp_files_left(self, state_path):
        StateStore(state_path).save(StateDocument())
        assert sorted(p.name for p in state_path.parent.iterdir()) == ["berth.state.json"]

    def test_corrupt_file(self, state_path):
        state_path.write_text("{not json")
        with pytest.raises(StateError):
            StateStore(state_path).load()

    def test_malformed_document(self, state_path):
        state_path.write_text(json.dumps({"resources": "nope"}))
        with pytest.raises(StateError):
            StateStore(state_path).load()

    def test_newer_format_refused(self, state_path):
        state_path.write_text(json.dumps({"version": 2}))
        with pytest.raises(StateError) as exc_info:
            StateStore(state_path).load()
        assert "format version 2" in str(exc_info.value)


class TestStateLock:
    """Tests for the exclusive state lock."""

    def test_lock_file_written_and_removed(self, state_path):
        with StateLock(state_path, "apply") as lock:
            holder = read_lock(state_path)
            assert holder.id == lock.info.id
            assert holder.operation == "apply"
        assert not lock_path_for(state_path).exists()

    def test_second_lock_fails_with_holder_info(self, state_path):
        with StateLock(state_path, "apply") as first:
            holder_id = first.info.id
            with pytest.raises(StateLockError) as exc_info:
                StateLock(state_path, "plan").acquire()
        assert exc_info.value.info.id == holder_id
        assert exc_info.value.info.operation == "apply"
        assert "State is locked" in str(exc_info.value)

    def test_waits_for_release(self, state_path):
        """Test that a lock with a timeout retries until the holder releases."""
        first = StateLock(state_path, "apply")
        first.acquire()
        with patch("berth.core.state.time.sleep", side_effect=lambda _: first.release()) as sleep:
            info = StateLock(state_path, "plan", timeout=30).acquire()
        assert sleep.call_count == 1
        assert read_lock(state_path).id == info.id

    def test_lock_released_on_error(self, state_path):
        with pytest.raises(RuntimeError):
            with StateLock(state_path, "apply"):
                raise RuntimeError("boom")
        assert not lock_path_for(state_path).exists()


class TestForceUnlock:
    """Tests for force_unlock."""

    def test_matching_id_removes_lock(self, state_path):
        info = StateLock(state_path, "apply").acquire()
        removed = force_unlock(state_path, info.id)
        assert removed.id == info.id
        assert not lock_path_for(state_path).exists()

    def test_wrong_id_refused(self, state_path):
        StateLock(state_path, "apply").acquire()
        with pytest.raises(StateLockError) as exc_info:
            force_unlock(state_path, "not-the-id")
        assert "does not match" in str(exc_info.value)
        assert lock_path_for(state_path).exists()

    def test_not_locked(self, state_path):
        with pytest.raises(StateLockError):
            force_unlock(state_path, "anything")

    def test_unreadable_lock_refused_without_force(self, state_path):
        lock_path_for(state_path).write_text("garbage")
        with pytest.raises(StateLockError) as exc_info:
            force_unlock(state_path, "anything")
        assert "--force" in str(exc_info.value)
        assert lock_path_for(state_path).exists()

    def test_unreadable_lock_removed_with_force(self, state_path):
        """Test that a half-written lock file can still be cleared."""
        lock_path_for(state_path).write_text("garbage")
        assert force_unlock(state_path, "anything", force=True) is None
        assert not lock_path_for(state_path).exists()
        StateLock(state_path, "apply").acquire()
