"""
Conversation engine - dialogue state, planner, interpreter and prompt generator.
"""
from .state import (
    DialogueState,
    encode_state,
    decode_state,
    decode_params,
    state_from_params,
)
from .planner import (
    DialogueStage,
    NextAction,
    PlannerResult,
    stage_for,
    initialize,
    decide_next_action,
    decide_on_silence,
)
from .extract import (
    build_extraction_prompt,
    interpret_answer,
)
from .prompting import (
    build_question_prompt,
    generate_prompt,
    resolve_field,
)

__all__ = [
    "DialogueState",
    "encode_state",
    "decode_state",
    "decode_params",
    "state_from_params",
    "DialogueStage",
    "NextAction",
    "PlannerResult",
    "stage_for",
    "initialize",
    "decide_next_action",
    "decide_on_silence",
    "build_extraction_prompt",
    "interpret_answer",
    "build_question_prompt",
    "generate_prompt",
    "resolve_field",
]
