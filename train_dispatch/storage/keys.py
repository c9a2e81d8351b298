from train_dispatch.core.config import SchedulerConfig
from train_dispatch.core.errors import ValidationFailed


def checkpoint_prefix_for(config: SchedulerConfig, job_id: str) -> str:
    return f"{config.checkpoint_prefix_root}/{job_id}/"


def resolve_bucket(config: SchedulerConfig, bucket_name: str) -> str:
    """Normalize a caller-supplied bucket name, rejecting unknown buckets."""
    name = bucket_name.lower()
    if name not in config.allowed_buckets:
        raise ValidationFailed(
            "Unknown bucket",
            bucket_name=bucket_name,
            allowed=sorted(config.allowed_buckets),
        )
    return name
