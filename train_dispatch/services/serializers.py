from train_dispatch.models import JobEvent, TrainingJob
from train_dispatch.schemas.event import EventOut, WorkerMeta
from train_dispatch.schemas.job import JobOut, WorkOut
from train_dispatch.services.scheduler import WorkAssignment


def _job_fields(m: TrainingJob) -> dict:
    return {
        "id": m.id,
        "status": m.status,
        "created_at": m.created_at,
        "started_at": m.started_at,
        "completed_at": m.completed_at,
        "canceled_at": m.canceled_at,
        "failed_at": m.failed_at,
        "last_heartbeat": m.last_heartbeat,
        "data_bucket": m.data_bucket,
        "checkpoint_bucket": m.checkpoint_bucket,
        "checkpoint_prefix": m.checkpoint_prefix,
        "instance_data_prefix": m.instance_data_prefix,
        "class_data_prefix": m.class_data_prefix,
        "model_bucket": m.model_bucket,
        "model_key": m.model_key,
        "params": m.params_json or {},
    }


def job_out(m: TrainingJob) -> JobOut:
    return JobOut(**_job_fields(m))


def work_out(a: WorkAssignment) -> WorkOut:
    return WorkOut(
        **_job_fields(a.job),
        resume_from=a.resume_from,
        instance_data_keys=a.instance_data_keys,
        class_data_keys=a.class_data_keys,
    )


def event_out(m: JobEvent) -> EventOut:
    return EventOut(
        id=m.id,
        job_id=m.job_id,
        event_type=m.event_type,
        event_data=WorkerMeta(**(m.event_data or {})),
        created_at=m.created_at,
    )
