"""
Guided Dialogue Engine

Drives a scripted, AI-augmented lesson conversation step by step:
- Routes each step to the narration bubble or the interaction transcript
- Paces narration autoplay by reading time
- Hands learner replies to the AnswerEvaluator and decides advance / retry / loop
- Survives module switches mid-flight through RequestGuard generations

Everything runs as awaited coroutine chains on one event loop. A chain
captures a RequestToken before its first suspension and re-checks it on
every resume; a superseded chain raises StaleGenerationError, which is
caught here at the chain roots and silently dropped.
"""

import random
from enum import Enum
from typing import Optional, Tuple

from guided_lesson_tutor.answer_evaluator import AnswerEvaluator
from guided_lesson_tutor.completion_service import CompletionService
from guided_lesson_tutor.config import EngineConfig
from guided_lesson_tutor.logger import get_logger
from guided_lesson_tutor.narration import (
    NarrationFragment,
    NarrationPresenter,
    NarrationSnapshot,
    fragment_schedule_ms,
    semantic_split,
)
from guided_lesson_tutor.narration_variations import module_completion
from guided_lesson_tutor.progress_store import InMemoryProgressStore, ProgressStore
from guided_lesson_tutor.prompts import OPEN_QA_FOLLOW_UP
from guided_lesson_tutor.request_guard import RequestGuard, RequestToken, StaleGenerationError
from guided_lesson_tutor.script_store import Channel, ScriptStore, Step, StepKind
from guided_lesson_tutor.session_state import (
    LearnerContext,
    Message,
    ModulePhase,
    Role,
    Session,
    SessionSnapshot,
)

logger = get_logger(__name__)


class EngineState(Enum):
    """Session-level state machine."""
    IDLE = "idle"
    STARTING = "starting"
    EXECUTING_NARRATION = "executing_narration"
    EXECUTING_INTERACTION = "executing_interaction"
    WAITING_FOR_USER = "waiting_for_user"
    EVALUATING = "evaluating"
    MODULE_COMPLETE = "module_complete"


class DialogueEngine:
    """
    Owns the lifecycle of one learner's module visits.

    The presentation layer calls start / send_user_message / reset / pause /
    resume and renders session_snapshot() and narration_snapshot().
    """

    def __init__(
        self,
        completion_service: CompletionService,
        progress_store: Optional[ProgressStore] = None,
        script_store: Optional[ScriptStore] = None,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config or EngineConfig()
        self.script_store = script_store or ScriptStore()
        self.progress_store = progress_store or InMemoryProgressStore()
        self.narration = NarrationPresenter()
        self.guard = RequestGuard()
        self.evaluator = AnswerEvaluator(completion_service, self.narration, self.config, rng)
        self.rng = rng

        self.session = Session(generation=self.guard.generation)
        self.state = EngineState.IDLE
        self._script: Tuple[Step, ...] = ()
        # Generation of the start() whose opening chain is still running
        self._starting_generation: Optional[int] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def start(self, module_id: str, context: LearnerContext):
        """
        Enter a module: fresh session, load its script, run until the first wait point.

        Calls made while an earlier start() is still running are ignored;
        reset() releases that hold.
        """
        if self._starting_generation == self.guard.generation:
            logger.debug(f"[Engine] start({module_id}) called while a start is in flight - ignoring duplicate call")
            return

        generation = self.guard.bump()
        token = self.guard.capture()
        self._starting_generation = generation
        logger.info(f"[Engine] Starting module {module_id}", data={"generation": generation})

        try:
            try:
                self.state = EngineState.STARTING
                self.narration.clear()
                self.session = Session(generation=generation, module_id=module_id, context=context)
                self._script = ()

                # Let the presentation layer drop any bubble animation first
                await token.sleep(self.config.seconds(self.config.start_settle_ms))

                self._script = self.script_store.get_script(module_id)
            except StaleGenerationError:
                logger.debug(f"[Engine] Start of {module_id} superseded during setup")
                return

            await self._run_steps(self.session, 0, token)
        finally:
            if self._starting_generation == generation:
                self._starting_generation = None

    async def send_user_message(self, text: str):
        """Handle a learner reply at a wait point."""
        session = self.session
        if session.is_streaming or session.is_checking:
            logger.debug("[Engine] Reply rejected: response still in progress")
            return
        if not session.waiting_for_user:
            logger.debug("[Engine] Reply rejected: not waiting for the learner")
            return

        step = self.current_step
        text = text.strip()
        if step is None or not text:
            return

        index = session.current_step_index
        token = self.guard.capture()
        session.waiting_for_user = False

        try:
            if step.channel is Channel.NARRATION:
                # Acknowledgment gate: history only, never the transcript
                session.record_history(Role.USER, text)
                self.narration.hide_narrative()
                await token.sleep(self.config.seconds(self.config.acknowledgment_pause_ms))
            else:
                session.add_message(Message.user(text))
                session.record_history(Role.USER, text)
                self.state = EngineState.EVALUATING

                if step.is_answerable:
                    result = await self.evaluator.evaluate(
                        session, index, text, step.eval_context, step.resolved_kind, token
                    )
                else:
                    result = await self.evaluator.acknowledge(session, text, token)

                if not result.may_proceed:
                    if step.resolved_kind is StepKind.OPEN_QA:
                        session.add_message(Message.assistant(OPEN_QA_FOLLOW_UP))
                        session.record_history(Role.ASSISTANT, OPEN_QA_FOLLOW_UP)
                    self._wait_for_user(session)
                    return

                session.clear_attempts(index)
                await token.sleep(self.config.seconds(self.config.advance_pause_ms))
        except StaleGenerationError:
            logger.debug("[Engine] Discarding reply handling - module context changed")
            return

        await self._run_steps(session, index + 1, token)

    def reset(self):
        """Drop the session and narration, invalidating every in-flight chain."""
        if self.state is EngineState.IDLE and self.session.module_id is None:
            return
        generation = self.guard.bump()
        self.narration.clear()
        self.session = Session(generation=generation)
        self._script = ()
        self.state = EngineState.IDLE
        logger.debug("[Engine] Reset", data={"generation": generation})

    def pause(self):
        """Hold narration autoplay; in-flight completions keep running."""
        self.narration.pause()

    def resume(self):
        self.narration.resume()

    @property
    def current_step(self) -> Optional[Step]:
        index = self.session.current_step_index
        if index >= len(self._script):
            return None
        return self._script[index]

    def session_snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    def narration_snapshot(self) -> NarrationSnapshot:
        return self.narration.snapshot()

    # -------------------------------------------------------------------------
    # Internal: step execution
    # -------------------------------------------------------------------------

    async def _run_steps(self, session: Session, index: int, token: RequestToken):
        """Execute steps from index until a wait point, completion or staleness."""
        try:
            next_index: Optional[int] = index
            while next_index is not None:
                next_index = await self._execute_step(session, next_index, token)
        except StaleGenerationError:
            logger.debug(f"[Engine] Step chain of generation {token.generation} discarded")

    async def _execute_step(self, session: Session, index: int, token: RequestToken) -> Optional[int]:
        """Run one step; return the index to auto-advance into, or None to halt."""
        token.ensure_current()
        if index >= len(self._script):
            logger.warning(f"[Engine] Script for {session.module_id} ended without a completion step")
            return None

        step = self._script[index]
        if index > session.current_step_index:
            session.clear_attempts(session.current_step_index)
        session.current_step_index = index

        if step.module_complete:
            await self._complete_module(session, step)
            return None

        if not step.messages:
            if step.wait_for_user:
                self._wait_for_user(session)
                return None
            return index + 1

        if step.channel is Channel.NARRATION:
            return await self._execute_narration(session, index, step, token)
        return await self._execute_interaction(session, index, step, token)

    async def _execute_narration(
        self,
        session: Session,
        index: int,
        step: Step,
        token: RequestToken
    ) -> Optional[int]:
        self.state = EngineState.EXECUTING_NARRATION
        fragments = self._present_narration(session, step)

        if step.wait_for_user:
            self._wait_for_user(session)
            return None

        schedule = fragment_schedule_ms(fragments, self.config)
        for position, dwell_ms in enumerate(schedule):
            await token.sleep(self.config.seconds(dwell_ms))
            if self.narration.state.paused:
                await self.narration.wait_until_resumed()
                token.ensure_current()
            if position < len(schedule) - 1:
                self.narration.next_message()

        next_index = index + 1
        if next_index < len(self._script) and self._script[next_index].channel is Channel.INTERACTION:
            self.narration.hide_narrative(instant=True)
            await token.sleep(self.config.seconds(self.config.channel_transition_ms))
        return next_index

    async def _execute_interaction(
        self,
        session: Session,
        index: int,
        step: Step,
        token: RequestToken
    ) -> Optional[int]:
        self.state = EngineState.EXECUTING_INTERACTION
        if self.narration.is_active:
            self.narration.hide_narrative(instant=True)

        for position, content in enumerate(step.messages):
            if position > 0:
                await token.sleep(self.config.seconds(self.config.interaction_gap_ms))
            session.add_message(Message.assistant(content))
            session.record_history(Role.ASSISTANT, content)

        if step.wait_for_user:
            self._wait_for_user(session)
            return None
        return index + 1

    async def _complete_module(self, session: Session, step: Step):
        if step.messages:
            self._present_narration(session, step)
        else:
            module_type = session.context.module_type if session.context else None
            self.narration.show_narrative(
                [NarrationFragment(module_completion(module_type, self.rng), step.pacing)],
                self._subject_id(session),
            )

        session.phase = ModulePhase.COMPLETED
        session.waiting_for_user = False
        self.state = EngineState.MODULE_COMPLETE
        if session.completed:
            return
        session.completed = True

        lesson_id = session.lesson_id or "unknown"
        logger.success(f"[Engine] Module complete: {lesson_id}/{session.module_id}")
        try:
            await self.progress_store.mark_module_complete(lesson_id, session.module_id)
        except Exception as e:
            logger.error("[Engine] Failed to record module completion", error=e)

    def _present_narration(self, session: Session, step: Step):
        fragments = semantic_split(
            [NarrationFragment(message, step.pacing) for message in step.messages],
            max_length=self.config.semantic_split_length,
        )
        self.narration.show_narrative(fragments, self._subject_id(session))
        for message in step.messages:
            session.record_history(Role.ASSISTANT, message)
        return fragments

    def _wait_for_user(self, session: Session):
        session.waiting_for_user = True
        self.state = EngineState.WAITING_FOR_USER

    def _subject_id(self, session: Session) -> str:
        return session.lesson_id or session.module_id or "unknown"
