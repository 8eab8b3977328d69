"""
Pytest configuration and shared fixtures for Zone Retouch tests.

This module provides shared test fixtures, small raster helpers and a
scripted generation gateway used across the pipeline tests.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import pytest
from PIL import Image, ImageDraw

from ZR_Libs.GenerationLib.generation_gateway import GeneratedImage, GenerationGateway
from ZR_Libs.ImageEditingLib.image_models import Photo
from ZR_Libs.MaskEditingLib.mask_models import ZoneSnapshot

PHOTO_SIZE = (120, 80)
BASE_GRAY = (100, 100, 100)


def solid(color: Tuple[int, int, int], size: Tuple[int, int] = PHOTO_SIZE) -> Image.Image:
    return Image.new("RGB", size, color)


def rect_mask(box: Tuple[int, int, int, int], size: Tuple[int, int] = PHOTO_SIZE) -> Image.Image:
    """L-mode mask, white inside box (inclusive PIL rectangle), black elsewhere."""
    mask = Image.new("L", size, 0)
    ImageDraw.Draw(mask).rectangle(box, fill=255)
    return mask


def make_zone(color: str, instruction: str, box=(0, 0, 9, 9), size=PHOTO_SIZE) -> ZoneSnapshot:
    return ZoneSnapshot(color=color, instruction=instruction, mask=rect_mask(box, size), stroke_count=1)


@dataclass
class GatewayCall:
    image: Image.Image
    instruction: str
    mask: Optional[Image.Image]


class ScriptedGateway(GenerationGateway):
    """
    Fake generation service.

    Responses are scripted per keyword found in the instruction text. Each
    response is a GenerationResult, an exception instance to raise, or a
    callable taking the input image. The most recently registered matching
    keyword wins. Queued responses are consumed in order
    and the last one repeats. Unmatched requests get a solid image of
    ``default_color`` at the input size.
    """

    def __init__(self, default_color: Tuple[int, int, int] = (10, 20, 30)) -> None:
        self.default_color = default_color
        self.calls: List[GatewayCall] = []
        self._rules: List[Tuple[str, List[Any]]] = []
        self._hangs: List[str] = []

    def on(self, keyword: str, *responses: Any) -> "ScriptedGateway":
        self._rules.append((keyword, list(responses)))
        return self

    def hang_on(self, keyword: str) -> "ScriptedGateway":
        """Never answer requests containing keyword (until cancelled)."""
        self._hangs.append(keyword)
        return self

    def calls_matching(self, keyword: str) -> List[GatewayCall]:
        return [call for call in self.calls if keyword in call.instruction]

    async def generate(self, image, instruction, mask=None):
        self.calls.append(GatewayCall(image=image, instruction=instruction, mask=mask))
        if any(keyword in instruction for keyword in self._hangs):
            await asyncio.sleep(3600)

        for keyword, responses in reversed(self._rules):
            if keyword in instruction and responses:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, BaseException):
                    raise response
                if callable(response):
                    return response(image)
                return response

        return GeneratedImage(solid(self.default_color, image.size))


@pytest.fixture
def photo_image():
    """
    Provide a uniform gray RGB photo raster.

    Returns:
        PIL Image of PHOTO_SIZE filled with BASE_GRAY
    """
    return solid(BASE_GRAY)


@pytest.fixture
def photo(photo_image):
    """
    Provide a Photo built from the gray raster.

    Args:
        photo_image: The gray photo raster fixture

    Returns:
        Photo instance
    """
    return Photo.from_image(photo_image)


@pytest.fixture
def large_photo():
    """Provide a 2000x1000 Photo (display raster is downscaled)."""
    return Photo.from_image(solid(BASE_GRAY, (2000, 1000)))


@pytest.fixture
def gateway():
    """Provide a fresh scripted gateway."""
    return ScriptedGateway()
