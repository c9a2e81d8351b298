from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


JobStatusName = Literal["pending", "running", "complete", "failed", "canceled"]


class TrainingParams(BaseModel):
    """Hyperparameters handed through to the training script untouched."""

    model_config = ConfigDict(extra="allow")

    instance_prompt: str = Field(min_length=1)
    max_train_steps: int = Field(default=500, ge=1)
    train_batch_size: int = Field(default=1, ge=1)
    learning_rate: float = Field(default=0.000002, gt=0)
    use_8bit_adam: bool = False
    mixed_precision: Literal["no", "fp16", "bf16"] = "fp16"
    resolution: int = Field(default=1024, ge=64)
    gradient_accumulation_steps: int = Field(default=4, ge=1)
    lr_scheduler: Literal[
        "linear", "cosine", "cosine_with_restarts", "polynomial", "constant", "constant_with_warmup"
    ] = "constant"
    lr_warmup_steps: int = Field(default=0, ge=0)
    train_text_encoder: bool = True
    gradient_checkpointing: bool = False
    with_prior_preservation: bool = False
    prior_loss_weight: float = 1.0
    validation_prompt: str | None = None
    validation_epochs: int = Field(default=50, ge=1)
    checkpointing_steps: int = Field(default=100, ge=1)
    pretrained_model_name_or_path: str = "stabilityai/stable-diffusion-xl-base-1.0"
    pretrained_vae_model_name_or_path: str = "madebyollin/sdxl-vae-fp16-fix"
    training_script: str = "train_dreambooth_lora_sdxl.py"

    @field_validator("mixed_precision", "lr_scheduler", mode="before")
    @classmethod
    def _lowercase_choice(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class CreateJobRequest(TrainingParams):
    instance_data_prefix: str = Field(min_length=1, max_length=1024)
    class_data_prefix: str | None = Field(default=None, max_length=1024)

    def training_params(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"instance_data_prefix", "class_data_prefix"})


class JobOut(BaseModel):
    id: str
    status: JobStatusName
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    canceled_at: datetime | None = None
    failed_at: datetime | None = None
    last_heartbeat: datetime | None = None
    data_bucket: str
    checkpoint_bucket: str
    checkpoint_prefix: str
    instance_data_prefix: str
    class_data_prefix: str | None = None
    model_bucket: str | None = None
    model_key: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)


class WorkOut(JobOut):
    resume_from: str | None = None
    instance_data_keys: list[str] = Field(default_factory=list)
    class_data_keys: list[str] = Field(default_factory=list)
