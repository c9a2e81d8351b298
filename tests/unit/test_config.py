import pytest
from pydantic import ValidationError

from train_dispatch.core.config import Settings


def test_scheduler_config_is_normalized():
    cfg = Settings(
        training_bucket="Training-Data",
        checkpoint_bucket="CKPT",
        checkpoint_prefix_root="/loras/",
        max_heartbeat_age=120,
    ).scheduler_config()
    assert cfg.training_bucket == "training-data"
    assert cfg.checkpoint_bucket == "ckpt"
    assert cfg.checkpoint_prefix_root == "loras"
    assert cfg.max_heartbeat_age == 120
    assert cfg.allowed_buckets == {"training-data", "ckpt"}


def test_thresholds_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(max_stored_checkpoints=0)
    with pytest.raises(ValidationError):
        Settings(checkpoint_gc_mode="later")
