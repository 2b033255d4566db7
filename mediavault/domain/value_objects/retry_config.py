"""Upload retry configuration value object."""

from pydantic import BaseModel, Field


class RetryConfig(BaseModel):
    """Parameters of the per-chunk retry policy."""

    model_config = {"frozen": True}

    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum retry attempts per chunk",
    )
    base_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Base delay before the first retry in milliseconds",
    )
    max_delay_ms: int = Field(
        default=30_000,
        ge=0,
        description="Upper bound on any retry delay in milliseconds",
    )
    exponential_backoff: bool = Field(
        default=True,
        description="Double the delay on each attempt instead of growing linearly",
    )
