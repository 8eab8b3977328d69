"""
GenerationLib - Boundary to the image generation service

This module provides the gateway contract, typed results, the Gemini
adapter, and instruction assembly.
"""

from ZR_Libs.GenerationLib.generation_gateway import (
    FailureKind,
    GatewayConfig,
    GeneratedImage,
    GenerationFailure,
    GenerationGateway,
    GenerationResult,
)
from ZR_Libs.GenerationLib.prompts import (
    GLOBAL_QUALITY_INSTRUCTION,
    build_zone_instruction,
    build_refinement_instruction,
    build_request_text,
)

__all__ = [
    "FailureKind",
    "GatewayConfig",
    "GeneratedImage",
    "GenerationFailure",
    "GenerationGateway",
    "GenerationResult",
    "GLOBAL_QUALITY_INSTRUCTION",
    "build_zone_instruction",
    "build_refinement_instruction",
    "build_request_text",
]
