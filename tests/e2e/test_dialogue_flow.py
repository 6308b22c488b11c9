"""
End-to-End Tests for Guided Dialogue Flow

Drives DialogueEngine through whole module visits:
- Narration autoplay → interaction wait points → evaluation → completion
- Retry, forced advance and open Q&A loops
- Module switches and resets while completions are in flight
- Pause / resume of narration autoplay
"""

import pytest
import asyncio
import random
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "guided_lesson_tutor", "src"))

from guided_lesson_tutor.answer_evaluator import EXPLANATION_FILLER, PHRASE_FILLER
from guided_lesson_tutor.completion_service import CompletionError
from guided_lesson_tutor.dialogue_engine import DialogueEngine, EngineState
from guided_lesson_tutor.progress_store import InMemoryProgressStore
from guided_lesson_tutor.prompts import OPEN_QA_FOLLOW_UP
from guided_lesson_tutor.script_store import Channel, ScriptStore, Step, StepKind
from guided_lesson_tutor.session_state import LearnerContext, ModulePhase, Role

RUBRIC = 'Correct answer: blood carries oxygen. Accept "blood" or "red blood cells".'

SCRIPTS = {
    "module_graded": [
        Step(messages=("Welcome to the quiz.",), channel=Channel.NARRATION),
        Step(
            messages=("What carries oxygen?",),
            channel=Channel.INTERACTION,
            wait_for_user=True,
            eval_context=RUBRIC,
            kind=StepKind.GRADED,
        ),
        Step(messages=("All done!",), channel=Channel.NARRATION, module_complete=True),
    ],
    "module_qa": [
        Step(
            messages=("Any questions?",),
            channel=Channel.INTERACTION,
            wait_for_user=True,
            eval_context="Answer questions briefly. When they are ready, tell them to Tap Next.",
        ),
        Step(messages=("See you next time!",), channel=Channel.NARRATION, module_complete=True),
    ],
    "module_gate": [
        Step(
            messages=("Have you noticed your heart beating faster?",),
            channel=Channel.NARRATION,
            wait_for_user=True,
        ),
        Step(messages=("Let's talk about it.",), channel=Channel.INTERACTION),
        Step(messages=("Ready?",), channel=Channel.INTERACTION, wait_for_user=True),
        Step(messages=(), channel=Channel.NARRATION, module_complete=True),
    ],
    "module_pause": [
        Step(messages=("First.", "Second."), channel=Channel.NARRATION),
        Step(messages=("Your turn.",), channel=Channel.INTERACTION, wait_for_user=True),
    ],
}


class CountingProgressStore(InMemoryProgressStore):
    def __init__(self):
        super().__init__()
        self.calls = []

    async def mark_module_complete(self, lesson_id, module_id):
        self.calls.append((lesson_id, module_id))
        await super().mark_module_complete(lesson_id, module_id)


class FailingProgressStore(InMemoryProgressStore):
    async def mark_module_complete(self, lesson_id, module_id):
        raise RuntimeError("database unavailable")


async def _until(predicate, limit=200):
    """Yield to the loop until predicate() holds."""
    for _ in range(limit):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def _contents(engine, role=None):
    return [m.content for m in engine.session.transcript if role is None or m.role is role]


class TestDialogueFlow:
    """Test complete module visits."""

    @pytest.fixture
    def store(self):
        return CountingProgressStore()

    @pytest.fixture
    def engine(self, completion, store, config):
        return DialogueEngine(
            completion,
            progress_store=store,
            script_store=ScriptStore(scripts=SCRIPTS),
            config=config,
            rng=random.Random(3),
        )

    @pytest.fixture
    def context(self):
        return LearnerContext(
            lesson_id="lesson_circ",
            lesson_title="Circulation and Gas Exchange",
            module_title="Fa-SCI-nate",
            module_type="Fa-SCI-nate",
        )

    @pytest.mark.asyncio
    async def test_fascinate_walkthrough(self, completion, store, config, context):
        """
        Walk the authored Fa-SCI-nate module end to end.

        Expected:
        1. Narration never lands in the transcript
        2. Acknowledgment gates record history only
        3. Correct answers and the open Q&A sentinel advance
        4. Completion is recorded once
        """
        engine = DialogueEngine(completion, progress_store=store, config=config, rng=random.Random(3))

        await engine.start("module_circ_fascinate", context)
        assert engine.state is EngineState.WAITING_FOR_USER
        assert engine.session.current_step_index == 1
        assert _contents(engine) == ["Ready to dive in? Let's get **Fa-SCI-nated**!"]
        assert engine.narration_snapshot().hidden_instantly

        await engine.send_user_message("Yes!")
        assert engine.session.current_step_index == 2
        assert engine.narration_snapshot().active
        assert engine.narration_snapshot().subject_id == "lesson_circ"

        await engine.send_user_message("Yes, it beats fast")
        assert "Yes, it beats fast" not in _contents(engine)
        assert {"role": "user", "content": "Yes, it beats fast"} in engine.session.conversation_history
        assert engine.session.current_step_index == 4

        completion.explanations.append("Correct! Your muscles need more oxygen.")
        await engine.send_user_message("Muscles need more oxygen")
        assert engine.session.current_step_index == 6

        completion.explanations.append("Correct! Blood carries oxygen.")
        await engine.send_user_message("Blood")
        assert engine.session.current_step_index == 8

        completion.explanations.append("Great job! Tap Next to continue!")
        await engine.send_user_message("I'm ready")

        assert engine.state is EngineState.MODULE_COMPLETE
        assert engine.session_snapshot().can_proceed
        assert store.calls == [("lesson_circ", "module_circ_fascinate")]
        assert all(m.channel is Channel.INTERACTION for m in engine.session.transcript)
        narration_only = "Today, we'll explore how your body moves blood and exchanges gases."
        assert narration_only not in _contents(engine)
        print(f"✅ Walkthrough: {len(engine.session.transcript)} transcript messages")

    @pytest.mark.asyncio
    async def test_correct_answer_completes_module_once(self, engine, completion, store, context):
        await engine.start("module_graded", context)
        assert engine.session.waiting_for_user
        assert _contents(engine) == ["What carries oxygen?"]

        completion.explanations.append("Correct! Blood carries oxygen to every cell.")
        await engine.send_user_message("Blood")

        assert engine.session.phase is ModulePhase.COMPLETED
        assert engine.narration_snapshot().fragments == ("All done!",)
        assert store.calls == [("lesson_circ", "module_graded")]

        # Nothing is waiting for input once the module is complete
        await engine.send_user_message("Blood again")
        assert store.calls == [("lesson_circ", "module_graded")]
        assert _contents(engine, Role.USER) == ["Blood"]

    @pytest.mark.asyncio
    async def test_partial_answer_stays_on_step(self, engine, completion, context):
        await engine.start("module_graded", context)

        completion.explanations.append("Partially correct! Which part of the blood?")
        await engine.send_user_message("Something in the body")

        assert engine.state is EngineState.WAITING_FOR_USER
        assert engine.session.current_step_index == 1
        assert engine.session.attempts_for(1) == 1

    @pytest.mark.asyncio
    async def test_three_wrong_answers_force_advance(self, engine, completion, store, context):
        await engine.start("module_graded", context)
        completion.explanations.extend(["Not quite, think again."] * 3)

        await engine.send_user_message("Water")
        await engine.send_user_message("Air")
        assert engine.session.attempts_for(1) == 2
        assert engine.session.waiting_for_user

        await engine.send_user_message("Bones")

        assert engine.session.phase is ModulePhase.COMPLETED
        assert engine.session.attempt_counts == {}
        assert len(completion.calls) == 6
        assert store.calls == [("lesson_circ", "module_graded")]

    @pytest.mark.asyncio
    async def test_open_qa_loops_until_ready(self, engine, completion, context):
        await engine.start("module_qa", context)
        completion.explanations.extend([
            "Good question! Hemoglobin makes blood red.",
            "Great job! Tap Next to continue!",
        ])

        await engine.send_user_message("Why is blood red?")
        assert engine.session.waiting_for_user
        assert _contents(engine)[-1] == OPEN_QA_FOLLOW_UP

        await engine.send_user_message("No more questions")
        assert engine.state is EngineState.MODULE_COMPLETE

    @pytest.mark.asyncio
    async def test_acknowledgment_gate_and_default_completion(self, engine, completion, context):
        await engine.start("module_gate", context)
        assert engine.session.current_step_index == 0
        assert engine.session.transcript == []
        assert engine.narration_snapshot().fragments == ("Have you noticed your heart beating faster?",)

        await engine.send_user_message("Yes")

        assert _contents(engine) == ["Let's talk about it.", "Ready?"]
        assert completion.calls == []
        assert engine.session.current_step_index == 2

        completion.acknowledgments.append("Awesome, let's go!")
        await engine.send_user_message("ok")

        assert _contents(engine)[-2:] == ["ok", "Awesome, let's go!"]
        assert engine.state is EngineState.MODULE_COMPLETE
        assert "Fa-SCI-nate" in engine.narration_snapshot().fragments[0]

    @pytest.mark.asyncio
    async def test_module_switch_discards_in_flight_evaluation(self, engine, completion, store, context):
        """Results for module A never reach module B."""
        completion.gate = asyncio.Event()
        await engine.start("module_graded", context)

        reply = asyncio.create_task(engine.send_user_message("Blood"))
        await _until(lambda: completion.calls)

        await engine.start("module_qa", LearnerContext(lesson_id="lesson_other"))
        completion.gate.set()
        await reply

        assert engine.session.module_id == "module_qa"
        assert _contents(engine) == ["Any questions?"]
        assert engine.narration_snapshot().fragments == ()
        assert engine.state is EngineState.WAITING_FOR_USER
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_reset_discards_in_flight_evaluation(self, engine, completion, context):
        completion.gate = asyncio.Event()
        await engine.start("module_graded", context)

        reply = asyncio.create_task(engine.send_user_message("Blood"))
        await _until(lambda: completion.calls)

        engine.reset()
        completion.gate.set()
        await reply

        assert engine.state is EngineState.IDLE
        assert engine.session.module_id is None
        assert engine.session.transcript == []
        assert not engine.narration_snapshot().active

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self, engine, context):
        engine.reset()
        assert engine.guard.generation == 0

        await engine.start("module_graded", context)
        engine.reset()
        generation = engine.guard.generation

        engine.reset()
        assert engine.guard.generation == generation
        assert engine.state is EngineState.IDLE

    @pytest.mark.asyncio
    async def test_reentrant_start_is_ignored(self, engine, context):
        first = asyncio.create_task(engine.start("module_graded", context))
        second = asyncio.create_task(engine.start("module_graded", context))
        await asyncio.gather(first, second)

        assert engine.guard.generation == 1
        assert _contents(engine) == ["What carries oxygen?"]

    @pytest.mark.asyncio
    async def test_start_ignored_during_opening_autoplay(self, engine, context):
        """A second start while step 0's narration is still playing is ignored."""
        first = asyncio.create_task(engine.start("module_pause", context))
        await _until(lambda: engine.narration.is_active)
        assert not first.done()

        await engine.start("module_qa", context)
        await first

        assert engine.guard.generation == 1
        assert engine.session.module_id == "module_pause"
        assert _contents(engine) == ["Your turn."]

        # Once the opening chain has settled, switching modules works again
        await engine.start("module_qa", context)
        assert engine.session.module_id == "module_qa"

    @pytest.mark.asyncio
    async def test_correct_answer_opener_on_wrong_answer_stays(self, engine, completion, store, context):
        await engine.start("module_graded", context)

        completion.explanations.append("Correct answer: blood carries oxygen, not water. Try again!")
        await engine.send_user_message("Water")

        assert engine.state is EngineState.WAITING_FOR_USER
        assert engine.session.current_step_index == 1
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_reset_during_setup_allows_new_start(self, engine, context):
        first = asyncio.create_task(engine.start("module_graded", context))
        await asyncio.sleep(0)

        engine.reset()
        await engine.start("module_qa", context)
        await first

        assert engine.session.module_id == "module_qa"
        assert _contents(engine) == ["Any questions?"]

    @pytest.mark.asyncio
    async def test_replies_rejected_while_evaluating(self, engine, completion, context):
        completion.gate = asyncio.Event()
        await engine.start("module_graded", context)

        reply = asyncio.create_task(engine.send_user_message("Blood"))
        await _until(lambda: completion.calls)
        assert engine.session_snapshot().is_checking

        await engine.send_user_message("Water")
        completion.gate.set()
        await reply

        assert _contents(engine, Role.USER) == ["Blood"]

    @pytest.mark.asyncio
    async def test_replies_rejected_before_start(self, engine):
        await engine.send_user_message("hello")
        assert engine.session.transcript == []
        assert engine.state is EngineState.IDLE

    @pytest.mark.asyncio
    async def test_transport_failure_uses_fillers(self, engine, completion, context):
        await engine.start("module_graded", context)
        completion.phrases.append(CompletionError("connection reset"))
        completion.explanations.append(CompletionError("connection reset"))

        await engine.send_user_message("Blood")

        assert engine.narration_snapshot().fragments == (PHRASE_FILLER,)
        assert _contents(engine)[-1] == EXPLANATION_FILLER
        assert engine.session.waiting_for_user
        assert not engine.session.is_streaming

    @pytest.mark.asyncio
    async def test_pause_holds_narration_autoplay(self, engine, context):
        task = asyncio.create_task(engine.start("module_pause", context))
        await _until(lambda: engine.narration.is_active)

        engine.pause()
        for _ in range(20):
            await asyncio.sleep(0)

        assert not task.done()
        assert engine.state is EngineState.EXECUTING_NARRATION
        assert engine.narration_snapshot().cursor == 0

        engine.resume()
        await task

        assert engine.state is EngineState.WAITING_FOR_USER
        assert _contents(engine) == ["Your turn."]

    @pytest.mark.asyncio
    async def test_unknown_module_completes_with_fallback(self, engine, store, context):
        await engine.start("module_missing", context)

        assert engine.state is EngineState.MODULE_COMPLETE
        assert engine.narration_snapshot().active
        assert store.calls == [("lesson_circ", "module_missing")]

    @pytest.mark.asyncio
    async def test_progress_store_failure_is_not_fatal(self, completion, config, context):
        engine = DialogueEngine(
            completion,
            progress_store=FailingProgressStore(),
            script_store=ScriptStore(scripts=SCRIPTS),
            config=config,
        )
        await engine.start("module_graded", context)
        await engine.send_user_message("Blood")

        assert engine.session.phase is ModulePhase.COMPLETED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
