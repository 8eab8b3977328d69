"""
Edit orchestrator: the asyncio driver of the edit pipeline.

The orchestrator owns the session's single PipelineState. It performs the
external generation calls (each bounded by its own timeout) and feeds the
results through the pure transitions in pipeline_state. Zones are edited
strictly one after another because each edit starts from the working image
the previous composite produced.

A reset cancels the run's CancellationToken and the in-flight task. The
token is checked before every state write, so a result that arrives after a
reset is discarded rather than composited.

Example:
    >>> orchestrator = EditOrchestrator(GeminiGenerationGateway(GatewayConfig.from_env()))
    >>> report = asyncio.run(orchestrator.run(photo, session.export_zones()))
    >>> print(report.summary_message())
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

from PIL import Image

from ZR_Libs.errors import InvalidTransitionError, PipelineCancelledError, PipelineFatalError
from ZR_Libs.GenerationLib.generation_gateway import (
    FailureKind,
    GeneratedImage,
    GenerationFailure,
    GenerationGateway,
    GenerationResult,
)
from ZR_Libs.GenerationLib.prompts import build_refinement_instruction, build_zone_instruction
from ZR_Libs.ImageEditingLib.image_models import Photo
from ZR_Libs.MaskEditingLib.editor_session import EditorSession
from ZR_Libs.MaskEditingLib.mask_models import ZoneSnapshot
from ZR_Libs.PipelineLib.pipeline_config import PipelineConfig
from ZR_Libs.PipelineLib.pipeline_state import (
    PipelinePhase,
    PipelineReport,
    PipelineState,
    apply_base_upgrade,
    apply_refinement_result,
    apply_zone_result,
    await_refinement,
    begin_refinement,
    build_report,
    finish_run,
    reset_state,
    start_run,
)

logger = logging.getLogger(__name__)

PhaseListener = Callable[[PipelineState], None]

RESUMABLE_PHASES = (PipelinePhase.BASE_UPGRADE, PipelinePhase.ZONE_EDIT, PipelinePhase.DONE)


class CancellationToken:
    """Set once by a reset; checked before every write of a run's results."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass(frozen=True)
class RefinementOutcome:
    """Result of one refinement: the image now current and the failure, if any."""
    applied: bool
    image: Image.Image
    failure: Optional[GenerationFailure] = None


class EditOrchestrator:
    """
    Drives PipelineState through a run, refinements and resets.

    Args:
        gateway: Generation service boundary
        config: Pipeline configuration (defaults to PipelineConfig())
        editor: Optional editor session to lock while a step is in flight
                and to clear on reset
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        config: Optional[PipelineConfig] = None,
        editor: Optional[EditorSession] = None,
    ) -> None:
        self._gateway = gateway
        self.config = config or PipelineConfig()
        self._editor = editor

        self._state = reset_state()
        self._token = CancellationToken()
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._run_counter = 0
        self._listeners: List[PhaseListener] = []
        # Guards the token check and the state write against reset() from another thread
        self._lock = threading.Lock()

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_phase_listener(self, listener: PhaseListener) -> None:
        """Register a callback(state) invoked after every state change."""
        if not callable(listener):
            raise ValueError(f"listener must be callable, got {type(listener)}")
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def run(self, photo: Union[Photo, Image.Image, None], zones: Sequence[ZoneSnapshot]) -> PipelineReport:
        """
        Run the base upgrade and every zone edit.

        Args:
            photo: The loaded photo (Photo or full-resolution PIL image)
            zones: Zones exported from the editor

        Returns:
            PipelineReport with the final image and per-zone outcomes

        Raises:
            PipelineFatalError: No photo, malformed base request, or an
                                unexpected error (carries the state to resume)
            PipelineCancelledError: The session was reset during the run
        """
        image = photo.image if isinstance(photo, Photo) else photo
        self._run_counter += 1
        try:
            state = start_run(image, list(zones), self.config, run_id=self._run_counter)
        except PipelineFatalError as e:
            logger.error(f"Run aborted: {e}")
            e.state = self._state
            raise

        token = self._begin(f"run {self._run_counter}")
        try:
            self._commit(state, token)
            return await self._drive(token)
        finally:
            self._release(token)

    async def resume(self, state: PipelineState) -> PipelineReport:
        """Continue a run from a state obtained from PipelineFatalError or a snapshot."""
        if state.phase not in RESUMABLE_PHASES:
            raise InvalidTransitionError(f"Cannot resume from phase {state.phase.value}")

        token = self._begin(f"resume of run {state.run_id}")
        logger.info(f"Resuming run {state.run_id} at {state.describe()}")
        try:
            self._commit(state, token)
            return await self._drive(token)
        finally:
            self._release(token)

    async def refine(self, instruction: str) -> RefinementOutcome:
        """
        Apply one whole-image follow-up edit to a finished run.

        The call is not retried. On failure the working image is rolled back
        and the failure is returned in the outcome.

        Raises:
            InvalidTransitionError: If no finished run is available
            ValueError: If the instruction is empty
        """
        if self._state.phase is not PipelinePhase.DONE:
            raise InvalidTransitionError(
                f"Refinement needs a finished run, pipeline is in {self._state.phase.value}"
            )
        request_text = build_refinement_instruction(instruction)

        token = self._begin("refinement")
        try:
            self._commit(await_refinement(self._state), token)
            editing = begin_refinement(self._state, instruction)
            self._commit(editing, token)

            try:
                result = await self._guarded_call(token, editing.working_image, request_text, None)
                done = apply_refinement_result(editing, result)
            except PipelineCancelledError:
                raise
            except Exception as e:
                logger.error(f"Unexpected error during refinement: {e}", exc_info=True)
                failure = GenerationFailure(FailureKind.TRANSPORT_ERROR, f"{type(e).__name__}: {e}")
                done = apply_refinement_result(editing, failure)
            self._commit(done, token)
        finally:
            self._release(token)

        return RefinementOutcome(
            applied=done.refinement_failure is None,
            image=done.working_image,
            failure=done.refinement_failure,
        )

    def reset(self) -> None:
        """
        Abandon any in-flight call and return to Idle.

        Safe to call from another thread than the one running the pipeline.
        """
        with self._lock:
            self._token.cancel()
            self._token = CancellationToken()
            task, loop = self._task, self._loop
            self._task = None
            self._state = reset_state()

        if task is not None and not task.done():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                if task is not asyncio.current_task():
                    task.cancel()
            elif loop is not None:
                loop.call_soon_threadsafe(task.cancel)

        if self._editor is not None and not self._editor.closed:
            self._editor.reset()
        logger.info("Session reset")
        self._notify(self._state)

    # ------------------------------------------------------------------
    # Driver internals
    # ------------------------------------------------------------------

    def _begin(self, label: str) -> CancellationToken:
        if self.busy:
            raise RuntimeError(f"Cannot start {label}: a pipeline step is already in flight")
        self._task = asyncio.current_task()
        self._loop = asyncio.get_running_loop()
        if self._editor is not None and not self._editor.closed:
            self._editor.lock()
        return self._token

    def _release(self, token: CancellationToken) -> None:
        if self._token is not token:
            # A reset already released the editor
            return
        self._task = None
        if self._editor is not None and not self._editor.closed:
            self._editor.unlock()

    def _commit(self, state: PipelineState, token: CancellationToken) -> None:
        with self._lock:
            if token.cancelled:
                logger.warning(f"Discarding late result of run {state.run_id} ({state.describe()}): session was reset")
                raise PipelineCancelledError("Run abandoned by reset")
            previous = self._state
            self._state = state
        if previous.phase is not state.phase:
            logger.info(f"Phase {previous.phase.value} -> {state.phase.value}")
        self._notify(state)

    def _notify(self, state: PipelineState) -> None:
        for listener in list(self._listeners):
            listener(state)

    async def _call(self, image: Image.Image, instruction: str, mask: Optional[Image.Image]) -> GenerationResult:
        timeout = self.config.call_timeout_s
        try:
            result = await asyncio.wait_for(self._gateway.generate(image, instruction, mask), timeout=timeout)
        except asyncio.TimeoutError:
            return GenerationFailure(FailureKind.TIMEOUT, f"No response within {timeout:g}s")
        except Exception as e:
            logger.warning(f"Generation gateway raised {type(e).__name__}: {e}", exc_info=True)
            return GenerationFailure(FailureKind.TRANSPORT_ERROR, f"{type(e).__name__}: {e}")

        if not isinstance(result, (GeneratedImage, GenerationFailure)):
            logger.warning(f"Generation gateway returned {type(result).__name__} instead of a result")
            return GenerationFailure(FailureKind.NO_IMAGE_PAYLOAD, f"Gateway returned {type(result).__name__}")
        return result

    async def _guarded_call(
        self,
        token: CancellationToken,
        image: Image.Image,
        instruction: str,
        mask: Optional[Image.Image],
    ) -> GenerationResult:
        try:
            return await self._call(image, instruction, mask)
        except asyncio.CancelledError:
            if token.cancelled:
                logger.info("In-flight generation call abandoned by reset")
                raise PipelineCancelledError("Run abandoned by reset") from None
            raise

    async def _drive(self, token: CancellationToken) -> PipelineReport:
        while True:
            state = self._state
            if state.phase is PipelinePhase.DONE:
                return build_report(state)

            try:
                next_state = await self._step(state, token)
            except (PipelineCancelledError, PipelineFatalError, asyncio.CancelledError):
                raise
            except Exception as e:
                logger.error(f"Unexpected error in {state.describe()}: {e}", exc_info=True)
                raise PipelineFatalError(f"Unexpected error in {state.describe()}: {e}", state=state) from e

            self._commit(next_state, token)

    async def _step(self, state: PipelineState, token: CancellationToken) -> PipelineState:
        if state.phase is PipelinePhase.BASE_UPGRADE:
            logger.info("Requesting base quality upgrade")
            result = await self._guarded_call(token, state.photo, self.config.global_instruction, None)
            return apply_base_upgrade(state, result)

        if state.phase is PipelinePhase.ZONE_EDIT:
            zone = state.current_zone
            if zone is None:
                return finish_run(state)

            total = len(state.zones)
            logger.info(
                f"Editing zone '{zone.color}' ({state.zone_index + 1}/{total}), attempt {state.attempt}"
            )
            instruction = build_zone_instruction(zone.instruction, state.attempt, state.zone_index + 1, total)
            mask = zone.mask if self.config.attach_zone_mask else None
            result = await self._guarded_call(token, state.working_image, instruction, mask)
            return apply_zone_result(state, result, self.config)

        raise PipelineFatalError(f"Cannot drive the pipeline from phase {state.phase.value}", state=state)
