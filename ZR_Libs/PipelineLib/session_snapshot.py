"""
Session snapshots for external persistence.

A SessionSnapshot records where a run stands (phase, zone index, per-zone
instructions, outcomes, base upgrade result, skipped zones) plus a
caller-defined reference to the working image. Rasters are not serialized
here: the caller stores the working image wherever it likes and hands back
a ``load_image`` callable on rehydration.

Example:
    >>> snapshot = SessionSnapshot.from_state(orchestrator.state, "work/run_3.png")
    >>> json.dump(snapshot.to_dict(), fp)
    ...
    >>> state = rehydrate_state(SessionSnapshot.from_dict(json.load(fp)),
    ...                         photo.image, session.export_zones(), Image.open)
    >>> report = await orchestrator.resume(state)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from PIL import Image

from ZR_Libs.constants import (
    FIELD_BASE_UPGRADE_APPLIED,
    FIELD_BASE_UPGRADE_FAILURE,
    FIELD_EXCLUDED_ZONES,
    FIELD_OUTCOMES,
    FIELD_PHASE,
    FIELD_SCHEMA_VERSION,
    FIELD_WORKING_IMAGE_REF,
    FIELD_ZONE_INDEX,
    FIELD_ZONE_INSTRUCTIONS,
    SCHEMA_VERSION,
)
from ZR_Libs.MaskEditingLib.mask_models import ZoneSnapshot
from ZR_Libs.PipelineLib.pipeline_state import (
    PipelinePhase,
    PipelineState,
    ZoneOutcome,
    ZoneStatus,
)

logger = logging.getLogger(__name__)

ImageLoader = Callable[[str], Image.Image]


@dataclass
class SessionSnapshot:
    """
    Serializable view of a PipelineState.

    Attributes:
        phase: PipelinePhase value
        zone_index: Index of the next zone to edit
        zone_instructions: {color: instruction} in processing order
        working_image_ref: Caller-defined reference to the stored working image
        outcomes: {color: {"status", "attempts", "failure_kind", "message"}}
        excluded_zones: Colors of zones left out of the run
        base_upgrade_applied: Whether the quality upgrade replaced the photo
        base_upgrade_failure: Why the upgrade was skipped, if it was
    """
    phase: str = PipelinePhase.IDLE.value
    zone_index: int = 0
    zone_instructions: Dict[str, str] = field(default_factory=dict)
    working_image_ref: Optional[str] = None
    outcomes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    excluded_zones: List[str] = field(default_factory=list)
    base_upgrade_applied: bool = False
    base_upgrade_failure: Optional[str] = None

    @classmethod
    def from_state(cls, state: PipelineState, working_image_ref: Optional[str] = None) -> "SessionSnapshot":
        outcomes = {
            outcome.color: {
                "status": outcome.status.value,
                "attempts": outcome.attempts,
                "failure_kind": outcome.failure_kind,
                "message": outcome.message,
            }
            for outcome in state.outcomes
        }
        return cls(
            phase=state.phase.value,
            zone_index=state.zone_index,
            zone_instructions={zone.color: zone.instruction for zone in state.zones},
            working_image_ref=working_image_ref,
            outcomes=outcomes,
            excluded_zones=list(state.excluded_zones),
            base_upgrade_applied=state.base_upgrade_applied,
            base_upgrade_failure=state.base_upgrade_failure,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            FIELD_SCHEMA_VERSION: SCHEMA_VERSION,
            FIELD_PHASE: self.phase,
            FIELD_ZONE_INDEX: self.zone_index,
            FIELD_ZONE_INSTRUCTIONS: dict(self.zone_instructions),
            FIELD_WORKING_IMAGE_REF: self.working_image_ref,
            FIELD_OUTCOMES: {color: dict(data) for color, data in self.outcomes.items()},
            FIELD_EXCLUDED_ZONES: list(self.excluded_zones),
            FIELD_BASE_UPGRADE_APPLIED: self.base_upgrade_applied,
            FIELD_BASE_UPGRADE_FAILURE: self.base_upgrade_failure,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionSnapshot":
        """
        Raises:
            ValueError: If the schema version is unsupported or the phase is unknown
        """
        version = data.get(FIELD_SCHEMA_VERSION, SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise ValueError(f"Unsupported snapshot schema version {version}")

        phase = data.get(FIELD_PHASE, PipelinePhase.IDLE.value)
        PipelinePhase(phase)

        return cls(
            phase=phase,
            zone_index=int(data.get(FIELD_ZONE_INDEX, 0)),
            zone_instructions=dict(data.get(FIELD_ZONE_INSTRUCTIONS) or {}),
            working_image_ref=data.get(FIELD_WORKING_IMAGE_REF),
            outcomes={color: dict(value) for color, value in (data.get(FIELD_OUTCOMES) or {}).items()},
            excluded_zones=list(data.get(FIELD_EXCLUDED_ZONES) or []),
            base_upgrade_applied=bool(data.get(FIELD_BASE_UPGRADE_APPLIED, False)),
            base_upgrade_failure=data.get(FIELD_BASE_UPGRADE_FAILURE),
        )


def _restore_phase(phase: PipelinePhase) -> PipelinePhase:
    # An interrupted refinement is dropped; the stored image is the last finished one
    if phase in (PipelinePhase.REFINEMENT_WAITING, PipelinePhase.REFINEMENT_EDIT):
        return PipelinePhase.DONE
    return phase


def rehydrate_state(
    snapshot: SessionSnapshot,
    photo: Image.Image,
    zones: Sequence[ZoneSnapshot],
    load_image: ImageLoader,
) -> PipelineState:
    """
    Build a PipelineState to resume from.

    Args:
        snapshot: Snapshot previously taken with SessionSnapshot.from_state
        photo: The full-resolution photo the run was started with
        zones: Zones carrying the masks (matched to the snapshot by color)
        load_image: Callable turning working_image_ref into an image

    Returns:
        PipelineState with zones in the snapshot's processing order

    Raises:
        ValueError: If a zone named in the snapshot has no mask available
    """
    by_color = {zone.color: zone for zone in zones}
    ordered = []
    for color, instruction in snapshot.zone_instructions.items():
        zone = by_color.get(color)
        if zone is None:
            raise ValueError(f"No mask available for zone '{color}'")
        ordered.append(ZoneSnapshot(
            color=color,
            instruction=instruction,
            mask=zone.mask,
            stroke_count=zone.stroke_count,
        ))

    outcomes = tuple(
        ZoneOutcome(
            color=color,
            instruction=snapshot.zone_instructions.get(color, ""),
            status=ZoneStatus(data["status"]),
            attempts=int(data.get("attempts", 1)),
            failure_kind=data.get("failure_kind"),
            message=data.get("message", ""),
        )
        for color, data in snapshot.outcomes.items()
    )

    phase = _restore_phase(PipelinePhase(snapshot.phase))
    working = photo
    if snapshot.working_image_ref:
        working = load_image(snapshot.working_image_ref).convert("RGB")

    zone_index = min(max(snapshot.zone_index, len(outcomes)), len(ordered))
    logger.info(f"Rehydrated session at {phase.value}, zone {zone_index}/{len(ordered)}")

    return PipelineState(
        phase=phase,
        photo=photo,
        working_image=working,
        zones=tuple(ordered),
        zone_index=zone_index,
        attempt=1 if phase is PipelinePhase.ZONE_EDIT else 0,
        outcomes=outcomes,
        excluded_zones=tuple(snapshot.excluded_zones),
        base_upgrade_applied=snapshot.base_upgrade_applied,
        base_upgrade_failure=snapshot.base_upgrade_failure,
    )
