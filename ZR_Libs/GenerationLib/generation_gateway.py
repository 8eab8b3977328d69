"""
Generation Gateway contract.

The gateway is the only way the pipeline talks to the external image
generation service: ``generate(image, instruction, mask=None)`` returns
either a GeneratedImage or a GenerationFailure. Failures are values, not
exceptions, and a gateway never hands back its input raster in place of an
edit.

Classes:
    FailureKind: Typed failure reasons signalled across the boundary
    GeneratedImage: Successful result
    GenerationFailure: Failed result (kind + message)
    GatewayConfig: Connection settings for concrete gateways
    GenerationGateway: Abstract async gateway
"""

import os
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from PIL import Image

from ZR_Libs.constants import (
    DEFAULT_GENERATION_MODEL,
    DEFAULT_JPEG_QUALITY,
    ENV_API_KEY,
    ENV_MODEL,
)


class FailureKind(Enum):
    SAFETY_BLOCKED = "SafetyBlocked"
    NO_IMAGE_PAYLOAD = "NoImagePayload"
    TIMEOUT = "Timeout"
    TRANSPORT_ERROR = "TransportError"

    @property
    def retryable(self) -> bool:
        return self is not FailureKind.SAFETY_BLOCKED


@dataclass(frozen=True)
class GeneratedImage:
    """A decodable image produced by the service."""
    image: Image.Image


@dataclass(frozen=True)
class GenerationFailure:
    """A typed failure produced at the gateway boundary."""
    kind: FailureKind
    message: str = ""

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}" if self.message else self.kind.value


GenerationResult = Union[GeneratedImage, GenerationFailure]


@dataclass
class GatewayConfig:
    """Configuration for the remote generation service.

    Attributes:
        api_key: Service API key (None means read from the environment)
        model: Model identifier
        jpeg_quality: JPEG quality used to send photos (1-100)
    """
    api_key: Optional[str] = None
    model: str = DEFAULT_GENERATION_MODEL
    jpeg_quality: int = DEFAULT_JPEG_QUALITY

    def __post_init__(self):
        if not (1 <= int(self.jpeg_quality) <= 100):
            raise ValueError(f"jpeg_quality must be 1-100, got {self.jpeg_quality}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (the API key is never serialized)."""
        data = asdict(self)
        data["api_key"] = None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        """Create from dictionary."""
        filtered = {k: v for k, v in data.items()
                    if k in cls.__dataclass_fields__}
        return cls(**filtered)

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        return cls(
            api_key=os.environ.get(ENV_API_KEY) or None,
            model=os.environ.get(ENV_MODEL) or DEFAULT_GENERATION_MODEL,
        )


class GenerationGateway(ABC):
    """
    Async boundary to the image generation service.

    Implementations must not mutate their inputs, must return a
    GeneratedImage holding a decodable image or a GenerationFailure, and
    must never return the input image as if it were an edit.
    """

    @abstractmethod
    async def generate(
        self,
        image: Image.Image,
        instruction: str,
        mask: Optional[Image.Image] = None,
    ) -> GenerationResult:
        pass
