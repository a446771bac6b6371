"""
Deterministic dialogue planner.

Decides, from the decoded dialogue state alone, where a survey call stands
and what the controller must do next. NO LLM calls and no I/O are made in
this module.

Fields are always asked in the survey's declared order. The planner never
skips, reorders, or looks past the head of ``remaining_fields``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence
import logging

from .state import DialogueState

logger = logging.getLogger(__name__)

# Number of consecutive silent turns after which the call is ended
MAX_SILENT_RETRIES = 2


class DialogueStage(str, Enum):
    """Where a survey call stands."""
    AWAITING_SURVEY_ID = "AWAITING_SURVEY_ID"
    AWAITING_FIRST_FIELDS = "AWAITING_FIRST_FIELDS"
    COLLECTING = "COLLECTING"
    COMPLETE = "COMPLETE"


class NextAction(str, Enum):
    """What the controller emits at the end of a field-response turn."""
    ASK_QUESTION = "ASK_QUESTION"
    REPROMPT = "REPROMPT"
    COMPLETE = "COMPLETE"
    HANG_UP_SILENT = "HANG_UP_SILENT"


@dataclass
class PlannerResult:
    """Result of the planner decision."""
    next_action: NextAction
    state: DialogueState
    field_name: Optional[str] = None


def stage_for(state: Optional[DialogueState]) -> DialogueStage:
    """
    Stage of a field-response turn given its decoded state.

    None (no remainingFields in the callback) means the survey was just
    opened and the field list has not been fetched yet.
    """
    if state is None:
        return DialogueStage.AWAITING_FIRST_FIELDS
    if state.is_complete:
        return DialogueStage.COMPLETE
    return DialogueStage.COLLECTING


def initialize(field_names: Sequence[str]) -> DialogueState:
    """State for a freshly opened survey; may already be complete (no fields)."""
    return DialogueState.initial(field_names)


def decide_next_action(state: DialogueState) -> PlannerResult:
    """
    Decide what to emit once the current turn's answer (if any) is applied.

    Args:
        state: State after initialization or after advance()

    Returns:
        COMPLETE when nothing remains, otherwise ASK_QUESTION for the head
        of ``remaining_fields``
    """
    if state.is_complete:
        logger.debug(f"Planner: all fields answered ({len(state.last_answers)} answers)")
        return PlannerResult(next_action=NextAction.COMPLETE, state=state)

    logger.debug(
        f"Planner: next field={state.current_field}, "
        f"remaining={len(state.remaining_fields)}"
    )
    return PlannerResult(
        next_action=NextAction.ASK_QUESTION,
        state=state,
        field_name=state.current_field,
    )


def silence_count(retry: int) -> int:
    """Silences seen so far for a turn arriving with the given retry value."""
    return max(retry, 1)


def decide_on_silence(state: DialogueState, retry: int) -> PlannerResult:
    """
    Decide what to do when a collecting turn arrives without speech.

    ``retry`` is the silence count carried by the callback: 0 when Twilio
    posted the gather action with an empty SpeechResult, n >= 1 when the
    fallback redirect after the n-th unanswered prompt fired.

    The state is returned unchanged; nothing is interpreted or written.
    """
    silences = silence_count(retry)
    if silences >= MAX_SILENT_RETRIES:
        return PlannerResult(next_action=NextAction.HANG_UP_SILENT, state=state)
    return PlannerResult(
        next_action=NextAction.REPROMPT,
        state=state,
        field_name=state.current_field,
    )
