"""
ZR_Libs - Zone Retouch Library Modules

This package contains core functionality for the Zone Retouch project,
organized into specialized sub-packages:

- MaskEditingLib: Editor session, strokes, and per-zone mask rasterization
- ImageEditingLib: Photo models, image codecs, and mask compositing
- GenerationLib: Generation service gateway and instruction assembly
- PipelineLib: Pipeline state machine, orchestrator, and zone ordering
"""

__version__ = "0.1.0"
