"""
Pipeline state and pure transitions.

A run is described by one frozen PipelineState. Every transition is a plain
function that takes a state (plus the result of the external call that
drove it) and returns a new state; nothing here performs I/O, so each step
can be tested in isolation and a failed run can be resumed from the last
state it reached.

Phase order:
    IDLE -> BASE_UPGRADE -> ZONE_EDIT(0..N-1) -> DONE
    DONE -> REFINEMENT_WAITING -> REFINEMENT_EDIT -> DONE
    any  -> IDLE (reset)
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image

from ZR_Libs.constants import SUMMARY_INSTRUCTION_LENGTH
from ZR_Libs.errors import CompositingError, InvalidTransitionError, PipelineFatalError
from ZR_Libs.GenerationLib.generation_gateway import (
    FailureKind,
    GeneratedImage,
    GenerationFailure,
    GenerationResult,
)
from ZR_Libs.ImageEditingLib.mask_compositor import MaskCompositor
from ZR_Libs.MaskEditingLib.mask_models import ZoneSnapshot
from ZR_Libs.PipelineLib.pipeline_config import PipelineConfig
from ZR_Libs.PipelineLib.zone_ordering import get_default_registry

logger = logging.getLogger(__name__)


class PipelinePhase(Enum):
    IDLE = "Idle"
    BASE_UPGRADE = "BaseUpgrade"
    ZONE_EDIT = "ZoneEdit"
    REFINEMENT_WAITING = "RefinementWaiting"
    REFINEMENT_EDIT = "RefinementEdit"
    DONE = "Done"


class ZoneStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ZoneOutcome:
    """
    Tagged result of one zone.

    Attributes:
        color: Zone identity
        instruction: Instruction the zone was edited with
        status: SUCCESS or FAILED
        attempts: Number of generation attempts made
        failure_kind: Failure kind name for failed zones ("CompositingError"
                      when the result could not be composited)
        message: Human-readable failure detail
    """
    color: str
    instruction: str
    status: ZoneStatus
    attempts: int
    failure_kind: Optional[str] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is ZoneStatus.SUCCESS

    def __str__(self) -> str:
        if self.succeeded:
            return ZoneStatus.SUCCESS.value
        return f"{ZoneStatus.FAILED.value}({self.attempts})"


@dataclass(frozen=True)
class PipelineState:
    """
    Immutable snapshot of a run.

    ``zones`` are stored in processing order; ``zone_index`` points at the
    zone being edited (== len(zones) once every zone has been handled).
    """
    phase: PipelinePhase = PipelinePhase.IDLE
    photo: Optional[Image.Image] = None
    working_image: Optional[Image.Image] = None
    zones: Tuple[ZoneSnapshot, ...] = ()
    excluded_zones: Tuple[str, ...] = ()
    zone_index: int = 0
    attempt: int = 0
    outcomes: Tuple[ZoneOutcome, ...] = ()
    base_upgrade_applied: bool = False
    base_upgrade_failure: Optional[str] = None
    pre_refinement_image: Optional[Image.Image] = None
    refinement_instruction: Optional[str] = None
    refinement_failure: Optional[GenerationFailure] = None
    refinement_count: int = 0
    run_id: int = 0

    @property
    def current_zone(self) -> Optional[ZoneSnapshot]:
        if self.phase is not PipelinePhase.ZONE_EDIT or self.zone_index >= len(self.zones):
            return None
        return self.zones[self.zone_index]

    @property
    def outcome_log(self) -> Dict[str, str]:
        """{color: "success" | "failed(attempts)"} in processing order."""
        return {outcome.color: str(outcome) for outcome in self.outcomes}

    def describe(self) -> str:
        if self.phase is PipelinePhase.ZONE_EDIT and self.current_zone is not None:
            return (f"{self.phase.value}({self.zone_index}, attempt {self.attempt}) "
                    f"'{self.current_zone.color}'")
        return self.phase.value


@dataclass(frozen=True)
class PipelineReport:
    """What a finished run yields: the image, the tagged outcomes and a summary."""
    final_image: Image.Image
    outcomes: Tuple[ZoneOutcome, ...]
    instruction_summary: str
    excluded_zones: Tuple[str, ...] = ()
    base_upgrade_applied: bool = False
    base_upgrade_failure: Optional[str] = None

    @property
    def applied_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed_zones(self) -> List[ZoneOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def outcome_log(self) -> Dict[str, str]:
        return {outcome.color: str(outcome) for outcome in self.outcomes}

    def summary_message(self) -> str:
        """
        User-facing result line, e.g.
        "2 of 3 zones applied; untouched: blue (Timeout)".
        """
        message = f"{self.applied_count} of {len(self.outcomes)} zones applied"
        failed = self.failed_zones
        if failed:
            untouched = ", ".join(
                f"{outcome.color} ({outcome.failure_kind})" if outcome.failure_kind else outcome.color
                for outcome in failed
            )
            message = f"{message}; untouched: {untouched}"
        if self.excluded_zones:
            message = f"{message}; skipped: {', '.join(self.excluded_zones)}"
        return message


def _require_phase(state: PipelineState, *phases: PipelinePhase) -> None:
    if state.phase not in phases:
        expected = " or ".join(phase.value for phase in phases)
        raise InvalidTransitionError(f"Expected phase {expected}, pipeline is in {state.phase.value}")


def _image_problem(result: GeneratedImage, source: Image.Image) -> Optional[str]:
    """Why a GeneratedImage cannot be used as an edit of source, or None."""
    image = result.image
    if not isinstance(image, Image.Image):
        return f"result is not an image ({type(image).__name__})"
    if image is source:
        return "service returned the unmodified input image"
    if image.width <= 0 or image.height <= 0:
        return "result image is empty"
    return None


def instruction_summary(zones: Sequence[ZoneSnapshot], limit: int = SUMMARY_INSTRUCTION_LENGTH) -> str:
    """One "[Zone k] color: instruction" line per zone, instructions truncated."""
    lines = []
    for number, zone in enumerate(zones, start=1):
        lines.append(f"[Zone {number}] {zone.color}: {zone.instruction.strip()[:limit]}")
    return "\n".join(lines)


def start_run(
    photo: Optional[Image.Image],
    zones: Sequence[ZoneSnapshot],
    config: PipelineConfig,
    run_id: int = 0,
) -> PipelineState:
    """
    Idle -> BaseUpgrade.

    Args:
        photo: Full-resolution photo raster
        zones: Zones exported from the editor
        config: Pipeline configuration (ordering policy, global instruction)
        run_id: Identifier of the run, used to match results to the run

    Returns:
        State in BASE_UPGRADE with zones in processing order

    Raises:
        PipelineFatalError: If no photo is loaded or the base upgrade request
                            cannot be formed
    """
    if photo is None:
        raise PipelineFatalError("No photo loaded")
    if photo.width <= 0 or photo.height <= 0:
        raise PipelineFatalError(f"Photo has invalid size {photo.size}")
    if not config.global_instruction or not config.global_instruction.strip():
        raise PipelineFatalError("Base upgrade request is malformed: empty global instruction")

    eligible = []
    excluded = []
    for zone in zones:
        if not zone.instruction or not zone.instruction.strip():
            logger.warning(f"Zone '{zone.color}' skipped: empty instruction")
            excluded.append(zone.color)
            continue
        eligible.append(zone)

    registry = get_default_registry()
    if not registry.has_policy(config.ordering_policy):
        raise PipelineFatalError(
            f"Unknown ordering policy '{config.ordering_policy}'. "
            f"Available policies: {', '.join(registry.list_policies())}"
        )
    ordered = registry.order(config.ordering_policy, eligible)

    logger.info(
        f"Run {run_id} started: {len(ordered)} zone(s) ordered by {config.ordering_policy}: "
        f"{', '.join(zone.color for zone in ordered) or 'none'}"
    )
    return PipelineState(
        phase=PipelinePhase.BASE_UPGRADE,
        photo=photo,
        working_image=photo,
        zones=tuple(ordered),
        excluded_zones=tuple(excluded),
        run_id=run_id,
    )


def apply_base_upgrade(state: PipelineState, result: GenerationResult) -> PipelineState:
    """
    BaseUpgrade -> ZoneEdit(0).

    A failed or unusable upgrade is not fatal: the original photo stays the
    working image.
    """
    _require_phase(state, PipelinePhase.BASE_UPGRADE)

    working = state.photo
    applied = False
    failure: Optional[str] = None

    if isinstance(result, GeneratedImage):
        problem = _image_problem(result, state.photo)
        if problem is None and result.image.size != state.photo.size:
            problem = f"result is {result.image.size}, photo is {state.photo.size}"
        if problem is None:
            working = result.image.convert("RGB")
            applied = True
        else:
            failure = problem
    else:
        failure = str(result)

    if applied:
        logger.info("Base upgrade applied")
    else:
        logger.warning(f"Base upgrade failed, continuing with the original photo: {failure}")

    return replace(
        state,
        phase=PipelinePhase.ZONE_EDIT,
        working_image=working,
        zone_index=0,
        attempt=1,
        base_upgrade_applied=applied,
        base_upgrade_failure=failure,
    )


def _advance(state: PipelineState, outcome: ZoneOutcome, working: Image.Image) -> PipelineState:
    if outcome.succeeded:
        logger.info(f"Zone '{outcome.color}' applied after {outcome.attempts} attempt(s)")
    else:
        logger.warning(
            f"Zone '{outcome.color}' failed after {outcome.attempts} attempt(s): "
            f"{outcome.failure_kind}: {outcome.message}"
        )
    return replace(
        state,
        working_image=working,
        zone_index=state.zone_index + 1,
        attempt=1,
        outcomes=state.outcomes + (outcome,),
    )


def apply_zone_result(state: PipelineState, result: GenerationResult, config: PipelineConfig) -> PipelineState:
    """
    ZoneEdit(i, attempt) -> ZoneEdit(i, attempt + 1) | ZoneEdit(i + 1, 1).

    A usable result is composited into the working image through the zone
    mask. A retryable failure below max_attempts retries the same zone;
    anything else marks the zone failed and leaves the working image as is.
    """
    _require_phase(state, PipelinePhase.ZONE_EDIT)
    zone = state.current_zone
    if zone is None:
        raise InvalidTransitionError("Every zone has been processed; call finish_run")

    failure: Optional[GenerationFailure]
    if isinstance(result, GeneratedImage):
        problem = _image_problem(result, state.working_image)
        if problem is None:
            try:
                blended = MaskCompositor.blend_zone_result(
                    state.working_image, result.image, zone.mask, threshold=config.mask_threshold
                )
            except CompositingError as e:
                outcome = ZoneOutcome(
                    color=zone.color,
                    instruction=zone.instruction,
                    status=ZoneStatus.FAILED,
                    attempts=state.attempt,
                    failure_kind=CompositingError.__name__,
                    message=str(e),
                )
                return _advance(state, outcome, state.working_image)

            outcome = ZoneOutcome(
                color=zone.color,
                instruction=zone.instruction,
                status=ZoneStatus.SUCCESS,
                attempts=state.attempt,
            )
            return _advance(state, outcome, blended)
        failure = GenerationFailure(FailureKind.NO_IMAGE_PAYLOAD, problem)
    else:
        failure = result

    if failure.retryable and state.attempt < config.max_attempts:
        logger.info(f"Zone '{zone.color}' attempt {state.attempt} failed ({failure}); retrying")
        return replace(state, attempt=state.attempt + 1)

    outcome = ZoneOutcome(
        color=zone.color,
        instruction=zone.instruction,
        status=ZoneStatus.FAILED,
        attempts=state.attempt,
        failure_kind=failure.kind.value,
        message=failure.message,
    )
    return _advance(state, outcome, state.working_image)


def finish_run(state: PipelineState) -> PipelineState:
    """ZoneEdit(N) -> Done."""
    _require_phase(state, PipelinePhase.ZONE_EDIT)
    if state.zone_index < len(state.zones):
        raise InvalidTransitionError(
            f"{len(state.zones) - state.zone_index} zone(s) still pending"
        )
    applied = sum(1 for outcome in state.outcomes if outcome.succeeded)
    logger.info(f"Run {state.run_id} done: {applied} of {len(state.outcomes)} zones applied")
    return replace(state, phase=PipelinePhase.DONE, attempt=0)


def build_report(state: PipelineState) -> PipelineReport:
    _require_phase(state, PipelinePhase.DONE)
    return PipelineReport(
        final_image=state.working_image,
        outcomes=state.outcomes,
        instruction_summary=instruction_summary(state.zones),
        excluded_zones=state.excluded_zones,
        base_upgrade_applied=state.base_upgrade_applied,
        base_upgrade_failure=state.base_upgrade_failure,
    )


def await_refinement(state: PipelineState) -> PipelineState:
    """Done -> RefinementWaiting."""
    _require_phase(state, PipelinePhase.DONE)
    return replace(state, phase=PipelinePhase.REFINEMENT_WAITING)


def begin_refinement(state: PipelineState, instruction: str) -> PipelineState:
    """RefinementWaiting -> RefinementEdit, remembering the image to roll back to."""
    _require_phase(state, PipelinePhase.REFINEMENT_WAITING)
    if not instruction or not instruction.strip():
        raise ValueError("Refinement instruction cannot be empty")
    return replace(
        state,
        phase=PipelinePhase.REFINEMENT_EDIT,
        pre_refinement_image=state.working_image,
        refinement_instruction=instruction.strip(),
        refinement_failure=None,
    )


def apply_refinement_result(state: PipelineState, result: GenerationResult) -> PipelineState:
    """
    RefinementEdit -> Done.

    On success the working image is replaced; on any failure it is rolled
    back to its pre-refinement value and the failure is kept on the state.
    """
    _require_phase(state, PipelinePhase.REFINEMENT_EDIT)
    before = state.pre_refinement_image

    failure: Optional[GenerationFailure] = None
    if isinstance(result, GeneratedImage):
        problem = _image_problem(result, before)
        if problem is None and result.image.size != before.size:
            problem = f"result is {result.image.size}, working image is {before.size}"
        if problem is not None:
            failure = GenerationFailure(FailureKind.NO_IMAGE_PAYLOAD, problem)
    else:
        failure = result

    if failure is None:
        logger.info("Refinement applied")
        return replace(
            state,
            phase=PipelinePhase.DONE,
            working_image=result.image.convert("RGB"),
            pre_refinement_image=None,
            refinement_count=state.refinement_count + 1,
        )

    logger.warning(f"Refinement failed, rolled back: {failure}")
    return replace(
        state,
        phase=PipelinePhase.DONE,
        working_image=before,
        pre_refinement_image=None,
        refinement_failure=failure,
    )


def reset_state() -> PipelineState:
    """Any -> Idle."""
    return PipelineState()
