"""Tests for the persisted upload queue and its key-value store."""

from datetime import timezone

import pytest
from pydantic import ValidationError

from conftest import jpeg_bytes
from equiduty_uploads.sync import KeyValueStore, QueuedUpload, UploadQueue


def _item(**kwargs) -> QueuedUpload:
    kwargs.setdefault("image_bytes", b"\xff\xd8jpeg")
    kwargs.setdefault("endpoint", "/api/v1/routines/instances/i/steps/s/upload-url")
    kwargs.setdefault("request_body", {"instanceId": "i", "stepId": "s"})
    return QueuedUpload(**kwargs)


class TestKeyValueStore:
    """SQLite key-value persistence."""

    def test_set_and_get(self, tmp_path):
        store = KeyValueStore(tmp_path / "kv.db")
        store.set("a", "1")

        assert store.get("a") == "1"
        store.close()

    def test_overwrite(self, tmp_path):
        store = KeyValueStore(tmp_path / "kv.db")
        store.set("a", "1")
        store.set("a", "2")

        assert store.get("a") == "2"
        store.close()

    def test_missing_and_delete(self, tmp_path):
        store = KeyValueStore(tmp_path / "kv.db")
        store.set("a", "1")
        store.delete("a")

        assert store.get("a") is None
        store.close()

    def test_creates_parent_directory(self, tmp_path):
        store = KeyValueStore(tmp_path / "nested" / "dir" / "kv.db")

        assert (tmp_path / "nested" / "dir").is_dir()
        store.close()

    def test_update_transforms_current_value(self, tmp_path):
        store = KeyValueStore(tmp_path / "kv.db")
        store.set("n", "1")

        written = store.update("n", lambda value: str(int(value) + 1))

        assert written == "2"
        assert store.get("n") == "2"
        store.close()

    def test_update_missing_key_sees_none(self, tmp_path):
        store = KeyValueStore(tmp_path / "kv.db")

        store.update("n", lambda value: "fresh" if value is None else value)

        assert store.get("n") == "fresh"
        store.close()

    def test_update_rolls_back_when_apply_raises(self, tmp_path):
        store = KeyValueStore(tmp_path / "kv.db")
        store.set("n", "1")

        def boom(value):
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            store.update("n", boom)

        assert store.get("n") == "1"
        store.set("n", "3")
        assert store.get("n") == "3"
        store.close()

    def test_update_sees_other_connection_writes(self, tmp_path):
        first = KeyValueStore(tmp_path / "kv.db")
        second = KeyValueStore(tmp_path / "kv.db")
        first.set("log", "a")

        second.update("log", lambda value: value + "b")
        first.update("log", lambda value: value + "c")

        assert first.get("log") == "abc"
        first.close()
        second.close()


class TestQueuedUpload:
    """Item model invariants."""

    def test_defaults(self):
        item = _item()

        assert item.retry_count == 0
        assert item.max_retries == 3
        assert item.created_at.tzinfo == timezone.utc
        assert len(item.id) == 36

    def test_ids_unique(self):
        assert _item().id != _item().id

    def test_retry_count_above_max_rejected(self):
        with pytest.raises(ValidationError):
            _item(retry_count=4, max_retries=3)

    def test_assignment_validated(self):
        item = _item(retry_count=3)

        with pytest.raises(ValidationError):
            item.retry_count = 4

    def test_negative_retry_count_rejected(self):
        with pytest.raises(ValidationError):
            _item(retry_count=-1)

    def test_retries_exhausted(self):
        assert _item(retry_count=2).retries_exhausted is False
        assert _item(retry_count=3).retries_exhausted is True


class TestUploadQueue:
    """Ordering, mutation and persistence."""

    def test_enqueue_keeps_order(self, queue):
        first = queue.enqueue(_item())
        second = queue.enqueue(_item())

        assert [i.id for i in queue.items] == [first.id, second.id]
        assert len(queue) == 2

    def test_items_is_a_snapshot(self, queue):
        queue.enqueue(_item())
        snapshot = queue.items
        snapshot.clear()

        assert len(queue) == 1

    def test_create_item_uses_queue_ceiling(self, tmp_path):
        store = KeyValueStore(tmp_path / "q.db")
        queue = UploadQueue(store, max_retries=5)

        item = queue.create_item(b"data", "/e", {"k": "v"})

        assert item.max_retries == 5
        assert item.request_body == {"k": "v"}
        assert len(queue) == 0
        store.close()

    def test_dequeue_successful(self, queue):
        a, b, c = (queue.enqueue(_item()) for _ in range(3))

        removed = queue.dequeue_successful([a.id, c.id, "unknown"])

        assert removed == 2
        assert [i.id for i in queue.items] == [b.id]

    def test_remove(self, queue):
        item = queue.enqueue(_item())

        assert queue.remove(item.id) is True
        assert queue.remove(item.id) is False

    def test_bump_retry(self, queue):
        item = queue.enqueue(_item())

        bumped = queue.bump_retry(item.id)

        assert bumped.retry_count == 1
        assert queue.get(item.id).retry_count == 1

    def test_bump_retry_unknown(self, queue):
        assert queue.bump_retry("missing") is None

    def test_bump_retry_at_ceiling_raises(self, queue):
        item = queue.enqueue(_item(retry_count=3))

        with pytest.raises(ValueError):
            queue.bump_retry(item.id)
        assert queue.get(item.id).retry_count == 3

    def test_clear(self, queue):
        queue.enqueue(_item())
        queue.enqueue(_item())

        assert queue.clear() == 2
        assert len(queue) == 0

    def test_stats(self, queue):
        queue.enqueue(_item(image_bytes=b"1234"))
        queue.enqueue(_item(image_bytes=b"12", retry_count=1))

        assert queue.get_stats() == {"total": 2, "fresh": 1, "retrying": 1, "bytes": 6}


class TestQueuePersistence:
    """Every mutation is written through and survives a restart."""

    def test_survives_restart(self, tmp_path):
        db_path = tmp_path / "q.db"
        data = jpeg_bytes(32, 32)

        store = KeyValueStore(db_path)
        queue = UploadQueue(store)
        item = queue.enqueue(_item(image_bytes=data, request_body={"horseId": None, "stepId": "s"}))
        queue.bump_retry(item.id)
        store.close()

        store = KeyValueStore(db_path)
        reloaded = UploadQueue(store)
        reloaded.load()

        (restored,) = reloaded.items
        assert restored.id == item.id
        assert restored.image_bytes == data
        assert restored.request_body == {"horseId": None, "stepId": "s"}
        assert restored.retry_count == 1
        assert restored.created_at == item.created_at
        store.close()

    def test_removal_persisted(self, tmp_path):
        db_path = tmp_path / "q.db"
        store = KeyValueStore(db_path)
        queue = UploadQueue(store)
        item = queue.enqueue(_item())
        queue.remove(item.id)

        reloaded = UploadQueue(store)
        reloaded.load()

        assert len(reloaded) == 0
        store.close()

    def test_save_overwrites_stored_list(self, tmp_path):
        store = KeyValueStore(tmp_path / "q.db")
        writer = UploadQueue(store)
        kept = writer.enqueue(_item())
        other = UploadQueue(store)
        other.enqueue(_item())

        writer.save()

        reloaded = UploadQueue(store)
        reloaded.load()
        assert [i.id for i in reloaded.items] == [kept.id]
        store.close()

    def test_load_without_data(self, queue):
        queue.load()

        assert len(queue) == 0

    def test_corrupt_data_starts_empty(self, tmp_path, caplog):
        store = KeyValueStore(tmp_path / "q.db")
        store.set("upload_queue", "{not json")
        queue = UploadQueue(store)

        queue.load()

        assert len(queue) == 0
        assert "unreadable" in caplog.text
        store.close()


class TestSharedQueue:
    """Two queues on separate connections to one database, as two processes would be."""

    @pytest.fixture
    def pair(self, tmp_path):
        first_store = KeyValueStore(tmp_path / "shared.db")
        second_store = KeyValueStore(tmp_path / "shared.db")
        first, second = UploadQueue(first_store), UploadQueue(second_store)
        first.load()
        second.load()
        yield first, second
        first_store.close()
        second_store.close()

    def test_enqueue_keeps_other_writers_items(self, pair):
        first, second = pair

        a = first.enqueue(_item())
        b = second.enqueue(_item())

        assert [i.id for i in second.items] == [a.id, b.id]
        first.load()
        assert [i.id for i in first.items] == [a.id, b.id]

    def test_stale_copy_does_not_erase_new_items(self, pair):
        first, second = pair
        a = first.enqueue(_item())
        second.load()

        b = second.enqueue(_item())
        first.bump_retry(a.id)

        first.load()
        assert [i.id for i in first.items] == [a.id, b.id]
        assert first.get(a.id).retry_count == 1

    def test_dequeue_only_removes_named_items(self, pair):
        first, second = pair
        a = first.enqueue(_item())
        b = second.enqueue(_item())

        assert first.dequeue_successful([a.id]) == 1

        second.load()
        assert [i.id for i in second.items] == [b.id]

    def test_failed_mutation_leaves_store_untouched(self, pair):
        first, second = pair
        a = first.enqueue(_item(retry_count=3))

        with pytest.raises(ValueError):
            second.bump_retry(a.id)

        second.load()
        assert second.get(a.id).retry_count == 3
