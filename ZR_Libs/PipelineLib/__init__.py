"""
PipelineLib - Multi-phase edit pipeline

This module provides the pipeline configuration, zone ordering policies,
the immutable pipeline state with its transitions, the asyncio orchestrator
and session snapshots.
"""

from ZR_Libs.PipelineLib.pipeline_config import PipelineConfig
from ZR_Libs.PipelineLib.zone_ordering import (
    ZoneOrderingRegistry,
    get_default_registry,
    order_zones,
)
from ZR_Libs.PipelineLib.pipeline_state import (
    PipelinePhase,
    PipelineReport,
    PipelineState,
    ZoneOutcome,
    ZoneStatus,
)
from ZR_Libs.PipelineLib.edit_orchestrator import (
    CancellationToken,
    EditOrchestrator,
    RefinementOutcome,
)
from ZR_Libs.PipelineLib.session_snapshot import SessionSnapshot, rehydrate_state

__all__ = [
    "PipelineConfig",
    "ZoneOrderingRegistry",
    "get_default_registry",
    "order_zones",
    "PipelinePhase",
    "PipelineReport",
    "PipelineState",
    "ZoneOutcome",
    "ZoneStatus",
    "CancellationToken",
    "EditOrchestrator",
    "RefinementOutcome",
    "SessionSnapshot",
    "rehydrate_state",
]
