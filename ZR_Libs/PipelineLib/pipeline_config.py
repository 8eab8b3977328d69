"""
Pipeline configuration.

PipelineConfig holds every knob of a run. It follows the same dataclass
pattern as the other configs: ``to_dict`` / ``from_dict`` for persistence
(unknown keys are ignored) and ``from_env`` for environment overrides.
"""

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict

from ZR_Libs.constants import (
    DEFAULT_CALL_TIMEOUT_S,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_ORDERING_POLICY,
    ENV_ATTACH_ZONE_MASK,
    ENV_CALL_TIMEOUT,
    ENV_MAX_ATTEMPTS,
    ENV_ORDERING_POLICY,
    MASK_THRESHOLD,
)
from ZR_Libs.GenerationLib.prompts import GLOBAL_QUALITY_INSTRUCTION

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class PipelineConfig:
    """Configuration for one edit pipeline.

    Attributes:
        max_attempts: Generation attempts per zone (>= 1)
        call_timeout_s: Timeout enforced on every generation call, in seconds
        ordering_policy: Name of the zone ordering policy (see zone_ordering)
        attach_zone_mask: Send the zone mask with each zone edit request
        mask_threshold: Minimum mask value that counts as included (1-255)
        global_instruction: Instruction used for the base quality pass
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    call_timeout_s: float = DEFAULT_CALL_TIMEOUT_S
    ordering_policy: str = DEFAULT_ORDERING_POLICY
    attach_zone_mask: bool = True
    mask_threshold: int = MASK_THRESHOLD
    global_instruction: str = GLOBAL_QUALITY_INSTRUCTION

    def __post_init__(self):
        """Validate configuration values."""
        if int(self.max_attempts) < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if float(self.call_timeout_s) <= 0:
            raise ValueError(f"call_timeout_s must be positive, got {self.call_timeout_s}")
        if not (1 <= int(self.mask_threshold) <= 255):
            raise ValueError(f"mask_threshold must be 1-255, got {self.mask_threshold}")
        if not str(self.ordering_policy).strip():
            raise ValueError("ordering_policy cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create from dictionary."""
        filtered = {k: v for k, v in data.items()
                    if k in cls.__dataclass_fields__}
        return cls(**filtered)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Defaults overridden by ZR_* environment variables when set."""
        overrides: Dict[str, Any] = {}

        max_attempts = os.environ.get(ENV_MAX_ATTEMPTS)
        if max_attempts:
            overrides["max_attempts"] = int(max_attempts)

        timeout = os.environ.get(ENV_CALL_TIMEOUT)
        if timeout:
            overrides["call_timeout_s"] = float(timeout)

        policy = os.environ.get(ENV_ORDERING_POLICY)
        if policy:
            overrides["ordering_policy"] = policy.strip()

        attach = os.environ.get(ENV_ATTACH_ZONE_MASK)
        if attach:
            value = attach.strip().lower()
            if value in _TRUE_VALUES:
                overrides["attach_zone_mask"] = True
            elif value in _FALSE_VALUES:
                overrides["attach_zone_mask"] = False
            else:
                raise ValueError(f"{ENV_ATTACH_ZONE_MASK} must be a boolean, got {attach!r}")

        return cls(**overrides)
