"""
Answer Evaluation

Two-tier feedback for learner replies:
1. A terse reactive phrase in the speech bubble (tiny completion)
2. A full explanation streamed into the transcript, opening with a
   correctness sentinel

Attempts are counted per step. Hints escalate gentle -> specific -> reveal,
and a graded step is force-advanced once the attempt limit is reached.
"""

import random
from dataclasses import dataclass
from typing import Optional

from guided_lesson_tutor.completion_service import CompletionService
from guided_lesson_tutor.config import EngineConfig
from guided_lesson_tutor.logger import get_logger
from guided_lesson_tutor.narration import NarrationFragment, NarrationPresenter
from guided_lesson_tutor.narration_variations import max_attempts_encouragement
from guided_lesson_tutor.prompts import (
    Correctness,
    build_acknowledgment_prompt,
    build_explanation_prompt,
    build_phrase_prompt,
    classify_correctness,
    has_proceed_sentinel,
)
from guided_lesson_tutor.request_guard import RequestToken, StaleGenerationError
from guided_lesson_tutor.script_store import PacingHint, StepKind
from guided_lesson_tutor.session_state import LearnerContext, Message, Role, Session

logger = get_logger(__name__)

PHRASE_FILLER = "Great effort!"
EXPLANATION_FILLER = "Let's keep exploring this topic together!"
ACKNOWLEDGMENT_FILLER = "Sige! Let's continue."


@dataclass
class EvaluationResult:
    """Outcome of one learner reply."""
    may_proceed: bool
    attempt: int = 0
    correctness: Optional[Correctness] = None
    forced: bool = False
    explanation: str = ""


class AnswerEvaluator:
    """Grades free-text replies through the completion service."""

    def __init__(
        self,
        completion_service: CompletionService,
        narration: NarrationPresenter,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None
    ):
        self.completion_service = completion_service
        self.narration = narration
        self.config = config or EngineConfig()
        self.rng = rng

    async def evaluate(
        self,
        session: Session,
        step_index: int,
        answer_text: str,
        rubric_context: str,
        kind: StepKind,
        token: RequestToken
    ) -> EvaluationResult:
        """
        Evaluate a reply to an answerable step.

        Args:
            session: Session the reply belongs to
            step_index: Step being answered (attempts are counted per step)
            answer_text: The learner's reply
            rubric_context: Rubric text authored on the step
            kind: GRADED or OPEN_QA
            token: Generation captured by the caller

        Returns:
            EvaluationResult with the proceed decision

        Raises:
            StaleGenerationError: the module was switched or reset mid-flight
        """
        attempt = session.increment_attempts(step_index)
        logger.info(
            f"[Evaluator] Step {step_index} attempt {attempt}",
            data={"kind": kind.value, "answer": answer_text[:60]}
        )
        return await self._evaluate_attempt(session, answer_text, rubric_context, attempt, kind, token)

    async def _evaluate_attempt(
        self,
        session: Session,
        answer_text: str,
        rubric_context: str,
        attempt: int,
        kind: StepKind,
        token: RequestToken
    ) -> EvaluationResult:
        config = self.config
        context = self._context(session)

        session.is_checking = True
        self.narration.set_thinking(True)
        try:
            await token.sleep(config.seconds(config.min_checking_ms))

            phrase = await self._collect(
                build_phrase_prompt(config.tutor_name, context, rubric_context, attempt, config.max_attempts, kind),
                answer_text,
                config.phrase_max_tokens,
                token,
                PHRASE_FILLER,
            )
            self.narration.set_thinking(False)
            self.narration.show_narrative(
                [NarrationFragment(phrase, PacingHint.FAST)], session.lesson_id or session.module_id or "unknown"
            )

            await token.sleep(config.seconds(config.phrase_to_explanation_ms))

            explanation = await self._stream_into_transcript(
                session,
                build_explanation_prompt(
                    config.tutor_name, context, rubric_context,
                    session.conversation_history, attempt, config.max_attempts, kind
                ),
                answer_text,
                config.explanation_max_tokens,
                token,
                EXPLANATION_FILLER,
            )
        finally:
            session.is_checking = False
            if token.is_current():
                self.narration.set_thinking(False)

        session.record_history(Role.ASSISTANT, explanation)
        result = self._decide(explanation, attempt, kind)

        if result.forced:
            self.narration.show_narrative(
                [NarrationFragment(max_attempts_encouragement(self.rng), PacingHint.NORMAL)],
                session.lesson_id or session.module_id or "unknown",
            )

        logger.info(
            f"[Evaluator] Decision: {'proceed' if result.may_proceed else 'stay'}",
            data={"attempt": attempt, "correctness": result.correctness, "forced": result.forced}
        )

        await token.sleep(config.seconds(config.post_explanation_ms))
        return result

    def _decide(self, explanation: str, attempt: int, kind: StepKind) -> EvaluationResult:
        if kind is StepKind.OPEN_QA:
            return EvaluationResult(
                may_proceed=has_proceed_sentinel(explanation),
                attempt=attempt,
                explanation=explanation,
            )

        correctness = classify_correctness(explanation)
        if correctness is Correctness.CORRECT:
            return EvaluationResult(True, attempt, correctness, explanation=explanation)
        if attempt >= self.config.max_attempts:
            return EvaluationResult(True, attempt, correctness, forced=True, explanation=explanation)
        return EvaluationResult(False, attempt, correctness, explanation=explanation)

    async def acknowledge(self, session: Session, text: str, token: RequestToken) -> EvaluationResult:
        """General acknowledgment / scope check for replies that carry no rubric."""
        response = await self._stream_into_transcript(
            session,
            build_acknowledgment_prompt(self.config.tutor_name, self._context(session), session.conversation_history),
            text,
            self.config.acknowledgment_max_tokens,
            token,
            ACKNOWLEDGMENT_FILLER,
        )
        session.record_history(Role.ASSISTANT, response)
        return EvaluationResult(may_proceed=True, explanation=response)

    # -------------------------------------------------------------------------
    # Streaming helpers
    # -------------------------------------------------------------------------

    def _context(self, session: Session) -> LearnerContext:
        return session.context or LearnerContext(lesson_id="unknown")

    async def _collect(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int,
        token: RequestToken,
        filler: str
    ) -> str:
        """Gather a whole completion; transport failures yield the filler."""
        text = ""
        try:
            async for chunk in self.completion_service.stream(system_prompt, user_message, max_tokens):
                token.ensure_current()
                text += chunk
        except StaleGenerationError:
            raise
        except Exception as e:
            logger.warning(f"[Evaluator] Completion failed, using filler: {e}")
            text = filler
        token.ensure_current()
        return text.strip() or filler

    async def _stream_into_transcript(
        self,
        session: Session,
        system_prompt: str,
        user_message: str,
        max_tokens: int,
        token: RequestToken,
        filler: str
    ) -> str:
        """Stream a completion into a placeholder message, removing it if stale."""
        placeholder = session.add_message(Message.assistant("", is_streaming=True))
        session.is_streaming = True
        session.is_checking = False
        text = ""
        try:
            try:
                async for chunk in self.completion_service.stream(system_prompt, user_message, max_tokens):
                    token.ensure_current()
                    text += chunk
                    session.update_message(placeholder.id, text, True)
            except StaleGenerationError:
                raise
            except Exception as e:
                logger.warning(f"[Evaluator] Streaming failed, using filler: {e}")
                text = filler
            token.ensure_current()
        except StaleGenerationError:
            logger.debug("[Evaluator] Discarding stale response")
            session.remove_message(placeholder.id)
            raise
        finally:
            session.is_streaming = False

        text = text.strip() or filler
        session.update_message(placeholder.id, text, False)
        return text
