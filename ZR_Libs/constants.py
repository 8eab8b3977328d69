"""
Constants and configuration values for Zone Retouch.

This module centralizes all constant values, magic numbers, and
configuration settings used throughout the application.
"""

# Mask constants
MASK_MODE = "L"
MASK_INCLUDED = 255
MASK_EXCLUDED = 0
# ~10% of 255; tolerates anti-aliased stroke edges
MASK_THRESHOLD = 26

# Photo constants
PHOTO_MODE = "RGB"
DISPLAY_MAX_SIDE = 1536

# Editor viewport constants
FIT_PADDING = 0.95
MIN_ZOOM_SCALE = 0.1
MAX_ZOOM_SCALE = 3.0
ZOOM_STEP_FACTOR = 0.5
DEFAULT_BRUSH_SIZE = 40.0
DEFAULT_VIEWPORT_WIDTH = 800
DEFAULT_VIEWPORT_HEIGHT = 600

# Tools
TOOL_PAINT = "paint"
TOOL_ERASE = "erase"
TOOL_PAN = "pan"

# Zone palette (id, hex, label)
ZONE_COLORS = (
    ("red", "#ef4444", "Red"),
    ("blue", "#3b82f6", "Blue"),
    ("green", "#22c55e", "Green"),
    ("yellow", "#eab308", "Yellow"),
    ("purple", "#a855f7", "Purple"),
)
DEFAULT_ZONE_COLOR = "red"

# Pipeline constants
DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_CALL_TIMEOUT_S = 120.0
SUMMARY_INSTRUCTION_LENGTH = 100

# Ordering policies
ORDERING_INSTRUCTION_LENGTH = "instruction_length"
ORDERING_MASK_AREA = "mask_area"
DEFAULT_ORDERING_POLICY = ORDERING_INSTRUCTION_LENGTH

# Generation service constants
DEFAULT_GENERATION_MODEL = "gemini-3-pro-image-preview"
PHOTO_TRANSFER_FORMAT = "JPEG"
PHOTO_TRANSFER_MIME = "image/jpeg"
MASK_TRANSFER_FORMAT = "PNG"
MASK_TRANSFER_MIME = "image/png"
DEFAULT_JPEG_QUALITY = 95

# Environment variable names
ENV_API_KEY = "GEMINI_API_KEY"
ENV_MODEL = "ZR_GEMINI_MODEL"
ENV_MAX_ATTEMPTS = "ZR_MAX_ATTEMPTS"
ENV_CALL_TIMEOUT = "ZR_CALL_TIMEOUT"
ENV_ORDERING_POLICY = "ZR_ORDERING_POLICY"
ENV_ATTACH_ZONE_MASK = "ZR_ATTACH_ZONE_MASK"
ENV_LOG_LEVEL = "ZR_LOG_LEVEL"

# Session snapshot field names
FIELD_SCHEMA_VERSION = "schema_version"
FIELD_PHASE = "phase"
FIELD_ZONE_INDEX = "zone_index"
FIELD_ZONE_INSTRUCTIONS = "zone_instructions"
FIELD_WORKING_IMAGE_REF = "working_image_ref"
FIELD_OUTCOMES = "outcomes"
FIELD_EXCLUDED_ZONES = "excluded_zones"
FIELD_BASE_UPGRADE_APPLIED = "base_upgrade_applied"
FIELD_BASE_UPGRADE_FAILURE = "base_upgrade_failure"
SCHEMA_VERSION = 1

# File naming
OUTPUT_FILE_PREFIX = "retouched_"
DEFAULT_OUTPUT_FORMAT = "PNG"

# Supported file formats
SUPPORTED_STANDARD_IMAGES = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".webp"}
