from datetime import datetime, timezone

import pytest

from train_dispatch.core.config import SchedulerConfig
from train_dispatch.core.errors import StorageUnavailable, ValidationFailed
from train_dispatch.storage.keys import checkpoint_prefix_for, resolve_bucket
from train_dispatch.storage.object_store import StoredObject, newest_first


def test_local_store_lists_by_prefix(object_store, put_object):
    put_object("ckpt", "loras/a/checkpoint-100.safetensors", 1000)
    put_object("ckpt", "loras/a/checkpoint-200.safetensors", 2000)
    put_object("ckpt", "loras/b/checkpoint-100.safetensors", 3000)

    keys = [o.key for o in object_store.list_objects("ckpt", "loras/a/")]
    assert keys == ["loras/a/checkpoint-100.safetensors", "loras/a/checkpoint-200.safetensors"]
    assert object_store.list_objects("missing-bucket", "loras/") == []


def test_local_store_upload_time_and_delete(object_store, put_object):
    put_object("ckpt", "loras/a/one", 1000)
    [obj] = object_store.list_objects("ckpt", "loras/a/")
    assert obj.uploaded_at == datetime.fromtimestamp(1000, tz=timezone.utc)

    object_store.delete("ckpt", "loras/a/one")
    object_store.delete("ckpt", "loras/a/one")
    assert object_store.list_objects("ckpt", "loras/a/") == []


def test_local_store_rejects_escaping_keys(object_store):
    with pytest.raises(ValueError):
        object_store.delete("ckpt", "../outside")


def test_local_store_unreadable_bucket_is_unavailable(object_store, put_object, monkeypatch):
    put_object("ckpt", "loras/a/one", 1000)

    def _denied(self, pattern):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(type(object_store.root), "rglob", _denied)
    with pytest.raises(StorageUnavailable) as exc_info:
        object_store.list_objects("ckpt", "loras/")
    assert exc_info.value.status_code == 503
    assert exc_info.value.detail["backend"] == "fs"


def test_local_store_failed_delete_is_unavailable(object_store):
    (object_store.root / "ckpt" / "loras" / "a-directory").mkdir(parents=True)

    with pytest.raises(StorageUnavailable):
        object_store.delete("ckpt", "loras/a-directory")


def test_newest_first_breaks_ties_by_key():
    t1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    t2 = datetime(2024, 1, 2, tzinfo=timezone.utc)
    objects = [StoredObject("a", t1), StoredObject("c", t2), StoredObject("b", t2)]
    assert [o.key for o in newest_first(objects)] == ["c", "b", "a"]


def test_checkpoint_prefix_and_bucket_resolution():
    config = SchedulerConfig(training_bucket="data", checkpoint_bucket="ckpt", checkpoint_prefix_root="loras")
    assert checkpoint_prefix_for(config, "job-1") == "loras/job-1/"
    assert resolve_bucket(config, "CKPT") == "ckpt"
    with pytest.raises(ValidationFailed):
        resolve_bucket(config, "elsewhere")
