"""Domain value objects."""

from mediavault.domain.value_objects.quality_preset import (
    QUALITY_PRESETS,
    TranscodingPreset,
    get_preset,
)
from mediavault.domain.value_objects.retry_config import RetryConfig

__all__ = [
    "QUALITY_PRESETS",
    "TranscodingPreset",
    "get_preset",
    "RetryConfig",
]
