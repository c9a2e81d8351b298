from train_dispatch.api.api_v1.endpoints import events, jobs, webhooks, work

__all__ = [
    "events",
    "jobs",
    "webhooks",
    "work",
]
