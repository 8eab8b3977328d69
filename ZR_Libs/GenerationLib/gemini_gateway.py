"""
Gemini image generation gateway.

Sends the photo (JPEG), the optional zone mask (PNG) and the request text to
a Gemini image model through the google-genai async client, and maps every
outcome onto a GeneratedImage or a typed GenerationFailure.

Example:
    >>> gateway = GeminiGenerationGateway(GatewayConfig.from_env())
    >>> result = await gateway.generate(photo.image, "close the blinds", mask)
"""

import asyncio
import logging
from typing import Any, List, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from PIL import Image

from ZR_Libs.constants import ENV_API_KEY, MASK_TRANSFER_MIME, PHOTO_TRANSFER_MIME
from ZR_Libs.GenerationLib.generation_gateway import (
    FailureKind,
    GatewayConfig,
    GeneratedImage,
    GenerationFailure,
    GenerationGateway,
    GenerationResult,
)
from ZR_Libs.GenerationLib.prompts import build_request_text
from ZR_Libs.ImageEditingLib.image_codec import decode_image, encode_mask, encode_photo

logger = logging.getLogger(__name__)

SAFETY_FINISH_REASONS = {"SAFETY", "IMAGE_SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}


def _reason_name(reason: Any) -> str:
    if reason is None:
        return ""
    return str(getattr(reason, "name", reason)).upper()


class GeminiGenerationGateway(GenerationGateway):
    """GenerationGateway backed by the Gemini generate_content API."""

    def __init__(self, config: GatewayConfig, client: Optional[Any] = None) -> None:
        self.config = config
        if client is None:
            if not config.api_key:
                raise ValueError(f"Gemini API key missing: set {ENV_API_KEY}")
            client = genai.Client(api_key=config.api_key)
        self._client = client

    def _build_parts(self, image: Image.Image, instruction: str, mask: Optional[Image.Image]) -> List[Any]:
        parts: List[Any] = [
            genai_types.Part.from_bytes(
                data=encode_photo(image, self.config.jpeg_quality),
                mime_type=PHOTO_TRANSFER_MIME,
            )
        ]
        if mask is not None:
            parts.append(genai_types.Part.from_bytes(data=encode_mask(mask), mime_type=MASK_TRANSFER_MIME))
        parts.append(genai_types.Part.from_text(text=build_request_text(instruction, mask is not None)))
        return parts

    async def generate(
        self,
        image: Image.Image,
        instruction: str,
        mask: Optional[Image.Image] = None,
    ) -> GenerationResult:
        if not hasattr(image, "mode"):
            raise TypeError(f"Expected PIL Image, got {type(image)}")
        if not instruction or not instruction.strip():
            raise ValueError("Generation instruction cannot be empty")

        parts = self._build_parts(image, instruction, mask)
        logger.debug(f"Sending generation request to {self.config.model} (mask={'yes' if mask is not None else 'no'})")

        try:
            response = await self._client.aio.models.generate_content(
                model=self.config.model,
                contents=parts,
                config=genai_types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                ),
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            return GenerationFailure(FailureKind.TIMEOUT, f"Generation request timed out: {e}")
        except genai_errors.APIError as e:
            return GenerationFailure(FailureKind.TRANSPORT_ERROR, f"API error {e.code}: {e.message}")
        except (httpx.HTTPError, OSError) as e:
            return GenerationFailure(FailureKind.TRANSPORT_ERROR, f"Network error: {e}")

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> GenerationResult:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = _reason_name(getattr(feedback, "block_reason", None))
        if block_reason and block_reason != "BLOCKED_REASON_UNSPECIFIED":
            return GenerationFailure(FailureKind.SAFETY_BLOCKED, f"Request blocked: {block_reason}")

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return GenerationFailure(FailureKind.NO_IMAGE_PAYLOAD, "No candidates returned")

        candidate = candidates[0]
        finish_reason = _reason_name(getattr(candidate, "finish_reason", None))
        if finish_reason in SAFETY_FINISH_REASONS:
            return GenerationFailure(FailureKind.SAFETY_BLOCKED, f"Generation stopped: {finish_reason}")

        content = getattr(candidate, "content", None)
        text_reply = ""
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                try:
                    return GeneratedImage(decode_image(inline.data))
                except ValueError as e:
                    return GenerationFailure(FailureKind.NO_IMAGE_PAYLOAD, str(e))
            if getattr(part, "text", None) and not text_reply:
                text_reply = part.text

        message = "Model returned no image"
        if text_reply:
            message = f"{message}; it replied: {text_reply[:200]}"
        return GenerationFailure(FailureKind.NO_IMAGE_PAYLOAD, message)
