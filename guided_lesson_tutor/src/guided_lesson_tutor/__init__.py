"""Guided dialogue engine for scripted, AI-augmented lessons."""
from .answer_evaluator import AnswerEvaluator, EvaluationResult
from .completion_service import CompletionError, CompletionService, OpenAICompletionService
from .config import EngineConfig
from .dialogue_engine import DialogueEngine, EngineState
from .logger import get_logger, setup_logging
from .narration import NarrationFragment, NarrationPresenter, NarrationSnapshot, semantic_split
from .progress_store import InMemoryProgressStore, ProgressStore, SupabaseProgressStore
from .request_guard import RequestGuard, RequestToken, StaleGenerationError
from .script_store import Channel, PacingHint, ScriptStore, Step, StepKind
from .session_state import LearnerContext, Message, ModulePhase, Role, Session, SessionSnapshot

__all__ = [
    "AnswerEvaluator",
    "EvaluationResult",
    "CompletionError",
    "CompletionService",
    "OpenAICompletionService",
    "EngineConfig",
    "DialogueEngine",
    "EngineState",
    "get_logger",
    "setup_logging",
    "NarrationFragment",
    "NarrationPresenter",
    "NarrationSnapshot",
    "semantic_split",
    "InMemoryProgressStore",
    "ProgressStore",
    "SupabaseProgressStore",
    "RequestGuard",
    "RequestToken",
    "StaleGenerationError",
    "Channel",
    "PacingHint",
    "ScriptStore",
    "Step",
    "StepKind",
    "LearnerContext",
    "Message",
    "ModulePhase",
    "Role",
    "Session",
    "SessionSnapshot",
]
