"""
Survey dialogue controller.

Drives a survey call across Twilio callbacks:

1. /voice             -> ask for the survey id on the keypad
2. /handle-survey-id  -> open a response row, redirect into the field loop
3. /handle-response   -> interpret the last answer, store it, ask the next
                         field; repeated until no field remains

The controller holds no per-call state. Each field-response turn is a
function of the callback (table, record id, decoded DialogueState, speech)
and the collaborators passed in at construction:

- store:       create_empty_record / update_record / resolve_schema
- completions: async complete(prompt) -> List[str]

Outbound calls within a turn are awaited one after the other:
schema -> interpret -> write -> generate.
"""
import logging
import os
from typing import Any, Optional

from engine.extract import interpret_answer
from engine.planner import (
    DialogueStage,
    NextAction,
    PlannerResult,
    decide_next_action,
    decide_on_silence,
    initialize,
    silence_count,
    stage_for,
)
from engine.prompting import generate_prompt, resolve_field
from engine.state import DialogueState
from survey.errors import SurveyError
from survey.fields import SurveySchema, is_valid_survey_id, table_name_for_survey

from . import twiml

logger = logging.getLogger(__name__)


SURVEY_ID_PROMPT = "Please enter the survey ID."
SURVEY_NOT_FOUND_MESSAGE = "Sorry, survey does not exist."
NO_FIELDS_MESSAGE = "No fields to gather. Thank you. Goodbye."
COMPLETE_MESSAGE = "Thank you for providing your responses. Goodbye."
FAILURE_MESSAGE = "I'm sorry, something went wrong. Goodbye."
NOT_HEARD_PREFIX = "Sorry, I didn't catch that."
SILENCE_GOODBYE_MESSAGE = "I haven't heard anything. Goodbye."

DEFAULT_SURVEY_ID_DIGITS = 4
DEFAULT_SPEECH_TIMEOUT = 2


def _log_turn_summary(
    table_name: str,
    record_id: str,
    stage: DialogueStage,
    next_action: NextAction,
    field_name: Optional[str],
    state: DialogueState,
) -> None:
    """Single-line summary of a field-response turn."""
    logger.info(
        f"METRIC survey_turn table={table_name} record={record_id} "
        f"stage={stage.value} next_action={next_action.value} "
        f"field={field_name or '-'} remaining={len(state.remaining_fields)} "
        f"answers={len(state.last_answers)}"
    )


class SurveyDialogue:
    """Stateless survey call controller producing TwiML for each callback."""

    def __init__(
        self,
        store: Any,
        completions: Any,
        webhook_base_url: str = "",
        voice: Optional[str] = None,
        survey_id_digits: int = DEFAULT_SURVEY_ID_DIGITS,
        speech_timeout: int = DEFAULT_SPEECH_TIMEOUT,
    ):
        self.store = store
        self.completions = completions
        self.webhook_base_url = webhook_base_url.rstrip("/")
        self.voice = voice
        self.survey_id_digits = survey_id_digits
        self.speech_timeout = speech_timeout

    @classmethod
    def from_env(cls, store: Any, completions: Any) -> "SurveyDialogue":
        """Build a controller with telephony settings from the environment."""
        return cls(
            store=store,
            completions=completions,
            webhook_base_url=os.getenv("WEBHOOK_BASE_URL", ""),
            voice=os.getenv("TWILIO_VOICE") or None,
            survey_id_digits=int(os.getenv("SURVEY_ID_DIGITS", str(DEFAULT_SURVEY_ID_DIGITS))),
            speech_timeout=int(os.getenv("SPEECH_TIMEOUT", str(DEFAULT_SPEECH_TIMEOUT))),
        )

    # ------------------------------------------------------------
    # Call start and survey id
    # ------------------------------------------------------------

    def start_call(self) -> str:
        """TwiML asking the caller to key in the survey id."""
        logger.info(f"Call started, stage={DialogueStage.AWAITING_SURVEY_ID.value}")
        return twiml.gather_digits(
            SURVEY_ID_PROMPT,
            action=f"{self.webhook_base_url}/handle-survey-id",
            num_digits=self.survey_id_digits,
            voice=self.voice,
        )

    async def handle_survey_id(self, digits: Optional[str]) -> str:
        """
        Open a response record for the keyed-in survey.

        Any failure to create the record ends the call with a fixed message;
        it is never retried.
        """
        if not is_valid_survey_id(digits):
            logger.warning(f"Invalid survey id input: {digits!r}")
            return twiml.say_and_hang_up(SURVEY_NOT_FOUND_MESSAGE, voice=self.voice)

        table_name = table_name_for_survey(digits)
        try:
            record_id = await self.store.create_empty_record(table_name)
        except SurveyError as e:
            logger.warning(f"Survey {digits} unavailable: {e}")
            return twiml.say_and_hang_up(SURVEY_NOT_FOUND_MESSAGE, voice=self.voice)

        logger.info(
            f"Survey {digits} opened: table={table_name} record={record_id} "
            f"stage={DialogueStage.AWAITING_FIRST_FIELDS.value}"
        )
        return twiml.redirect(
            twiml.handle_response_url(self.webhook_base_url, table_name, record_id)
        )

    # ------------------------------------------------------------
    # Field loop
    # ------------------------------------------------------------

    async def best_effort_field_write(
        self,
        table_name: str,
        record_id: str,
        field_name: str,
        value: str,
    ) -> bool:
        """
        Store one answer, preferring forward progress over consistency.

        Failures are logged and swallowed: the call moves on to the next
        question whether or not the write landed.

        Returns:
            True if the write succeeded
        """
        try:
            await self.store.update_record(table_name, record_id, {field_name: value})
            return True
        except SurveyError as e:
            logger.warning(
                f"METRIC field_write_failed table={table_name} record={record_id} "
                f"field={field_name} error={e}"
            )
            return False

    async def handle_response(
        self,
        table_name: str,
        record_id: str,
        state: Optional[DialogueState],
        utterance: Optional[str],
        retry: int = 0,
    ) -> str:
        """
        Run one field-response turn.

        Args:
            table_name: Survey table from the callback path
            record_id: Response record from the callback path
            state: Decoded dialogue state, None when not initialized yet
            utterance: Speech transcript of the caller's answer
            retry: Silence count carried by the callback

        Returns:
            TwiML for Twilio

        Raises:
            SchemaNotFound: If the survey table disappeared
            NoCompletionProduced: If interpretation or generation got nothing back
            UpstreamUnavailable: If the schema lookup or a completion failed
        """
        stage = stage_for(state)
        schema = await self.store.resolve_schema(table_name)

        if state is None:
            state = initialize(schema.field_names)
            if state.is_complete:
                _log_turn_summary(table_name, record_id, stage, NextAction.COMPLETE, None, state)
                return twiml.say_and_hang_up(NO_FIELDS_MESSAGE, voice=self.voice)
            result = decide_next_action(state)

        elif state.is_complete:
            # Nothing left to answer; a replayed final callback lands here
            result = decide_next_action(state)

        elif not utterance or not utterance.strip():
            result = decide_on_silence(state, retry)

        else:
            field_name = state.current_field
            value = await interpret_answer(self.completions, schema, field_name, utterance.strip())
            await self.best_effort_field_write(table_name, record_id, field_name, value)
            result = decide_next_action(state.advance(value))

        _log_turn_summary(table_name, record_id, stage, result.next_action, result.field_name, result.state)
        return await self._render(table_name, record_id, schema, result, retry)

    async def _render(
        self,
        table_name: str,
        record_id: str,
        schema: SurveySchema,
        result: PlannerResult,
        retry: int,
    ) -> str:
        if result.next_action == NextAction.COMPLETE:
            return twiml.say_and_hang_up(COMPLETE_MESSAGE, voice=self.voice)

        if result.next_action == NextAction.HANG_UP_SILENT:
            return twiml.say_and_hang_up(SILENCE_GOODBYE_MESSAGE, voice=self.voice)

        field = resolve_field(schema, result.field_name)
        message = await generate_prompt(
            self.completions, schema, field, list(result.state.last_answers)
        )

        silences = 0
        if result.next_action == NextAction.REPROMPT:
            silences = silence_count(retry)
            message = f"{NOT_HEARD_PREFIX} {message}"

        action = twiml.handle_response_url(
            self.webhook_base_url, table_name, record_id, result.state
        )
        fallback = twiml.handle_response_url(
            self.webhook_base_url, table_name, record_id, result.state, retry=silences + 1
        )
        return twiml.gather_speech(
            message,
            action=action,
            fallback_url=fallback,
            speech_timeout=self.speech_timeout,
            voice=self.voice,
        )
