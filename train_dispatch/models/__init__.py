from train_dispatch.models.jobs import Base, JobEvent, JobFailure, TrainingJob, WorkerBan, new_id, now_utc

__all__ = [
    "Base",
    "JobEvent",
    "JobFailure",
    "TrainingJob",
    "WorkerBan",
    "new_id",
    "now_utc",
]
