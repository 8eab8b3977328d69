"""
Instruction assembly for generation calls.

The pipeline sends three kinds of instruction: the global quality pass,
one edit per zone (with extra emphasis on retries), and the follow-up
refinement. When a mask accompanies the photo, the request text explains
the mask convention before the instruction.
"""

GLOBAL_QUALITY_INSTRUCTION = (
    "Upgrade this photograph to premium professional quality: correct white "
    "balance, recover highlights and shadows, sharpen fine detail and "
    "straighten vertical lines. Keep the composition, every object, every "
    "color and the exact framing unchanged. Do not add or remove anything."
)

MASK_PREAMBLE = (
    "The second image is a mask. WHITE pixels mark the only area you may "
    "edit. BLACK pixels are protected and must be copied exactly from the "
    "first image."
)

PRESERVATION_RULES = (
    "Rules: make only the requested change; keep dimensions, perspective and "
    "lighting; do not add new objects; do not draw boxes, outlines or markers."
)


def build_zone_instruction(instruction: str, attempt: int = 1, zone_number: int = 1, zone_total: int = 1) -> str:
    """
    Build the edit instruction for one zone.

    Args:
        instruction: The user's instruction for this zone
        attempt: 1-based attempt number; later attempts add emphasis
        zone_number: 1-based position of this zone in the run
        zone_total: Number of zones in the run
    """
    text = instruction.strip()
    if not text:
        raise ValueError("Zone instruction cannot be empty")

    lines = [f"ZONE EDIT {zone_number}/{zone_total}", "", text, "", PRESERVATION_RULES]
    if attempt > 1:
        lines.extend([
            "",
            f"ATTEMPT {attempt}: the previous attempt did not produce a usable edit. "
            "Apply the change precisely and return an image.",
        ])
    return "\n".join(lines)


def build_refinement_instruction(instruction: str) -> str:
    text = instruction.strip()
    if not text:
        raise ValueError("Refinement instruction cannot be empty")
    return "\n".join(["REFINEMENT EDIT", "", text, "", PRESERVATION_RULES])


def build_request_text(instruction: str, has_mask: bool) -> str:
    """Text part sent alongside the image(s)."""
    if has_mask:
        return f"{MASK_PREAMBLE}\n\n{instruction}"
    return instruction
