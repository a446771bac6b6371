"""
Tests for the conversation engine: planner, answer interpreter and prompt
generator.

These tests verify that:
1. The planner always asks the head of remainingFields and never reorders
2. Silence is re-prompted once, then the call ends
3. The extraction prompt embeds schema, field and utterance
4. The question prompt reacts to the last answer, reads choices in order
   and names the expected type
5. Zero candidates raise NoCompletionProduced
"""
from unittest.mock import AsyncMock

import pytest

from engine.extract import build_extraction_prompt, interpret_answer
from engine.planner import (
    DialogueStage,
    NextAction,
    decide_next_action,
    decide_on_silence,
    initialize,
    stage_for,
)
from engine.prompting import build_question_prompt, generate_prompt, resolve_field
from engine.state import DialogueState
from survey.errors import NoCompletionProduced
from survey.fields import FieldType, SurveySchema

from conftest import email_field, select_field, text_field


@pytest.fixture
def schema() -> SurveySchema:
    return SurveySchema.from_store({
        "id": "tbl1",
        "name": "Survey_4242",
        "fields": [
            text_field("name"),
            email_field("email"),
            select_field("color", "Red", "Green", "Blue"),
        ],
    })


class TestPlanner:
    """Deterministic stage and next-action decisions."""

    def test_stage_for_uninitialized(self):
        assert stage_for(None) == DialogueStage.AWAITING_FIRST_FIELDS

    def test_stage_for_collecting(self):
        assert stage_for(DialogueState(("name",))) == DialogueStage.COLLECTING

    def test_stage_for_complete(self):
        assert stage_for(DialogueState(())) == DialogueStage.COMPLETE

    def test_ask_head_of_remaining_fields(self):
        result = decide_next_action(initialize(["name", "email", "color"]))
        assert result.next_action == NextAction.ASK_QUESTION
        assert result.field_name == "name"

    def test_declared_order_is_kept(self):
        state = initialize(["name", "email", "color"])
        asked = []
        while True:
            result = decide_next_action(state)
            if result.next_action == NextAction.COMPLETE:
                break
            asked.append(result.field_name)
            state = state.advance(f"answer for {result.field_name}")
        assert asked == ["name", "email", "color"]

    def test_zero_fields_complete_immediately(self):
        result = decide_next_action(initialize([]))
        assert result.next_action == NextAction.COMPLETE
        assert result.field_name is None

    def test_first_silence_reprompts_same_field(self):
        state = DialogueState(("email",), ("Alice",))
        result = decide_on_silence(state, retry=0)
        assert result.next_action == NextAction.REPROMPT
        assert result.field_name == "email"
        assert result.state == state

    def test_fallback_redirect_counts_as_first_silence(self):
        result = decide_on_silence(DialogueState(("email",)), retry=1)
        assert result.next_action == NextAction.REPROMPT

    def test_second_silence_hangs_up(self):
        result = decide_on_silence(DialogueState(("email",)), retry=2)
        assert result.next_action == NextAction.HANG_UP_SILENT


class TestAnswerInterpreter:
    """Utterance -> normalized value via the completion service."""

    def test_prompt_embeds_schema_field_and_utterance(self, schema):
        prompt = build_extraction_prompt(schema, "email", "alice at example dot com")
        assert "Current Field: email" in prompt
        assert "User Response: alice at example dot com" in prompt
        assert schema.to_prompt_json() in prompt
        assert "selecting the second option" in prompt

    @pytest.mark.asyncio
    async def test_returns_first_candidate_stripped(self, schema):
        completions = AsyncMock()
        completions.complete.return_value = ["  alice@example.com \n", "other"]

        value = await interpret_answer(completions, schema, "email", "alice at example dot com")

        assert value == "alice@example.com"
        completions.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_zero_candidates_raise(self, schema):
        completions = AsyncMock()
        completions.complete.return_value = []

        with pytest.raises(NoCompletionProduced):
            await interpret_answer(completions, schema, "name", "Alice")

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, schema):
        completions = AsyncMock()
        completions.complete.return_value = []

        with pytest.raises(NoCompletionProduced):
            await interpret_answer(completions, schema, "name", "Alice")
        assert completions.complete.await_count == 1


class TestPromptGenerator:
    """Question phrasing rules."""

    def test_first_question_introduces(self, schema):
        prompt = build_question_prompt(schema, schema.get_field("name"), [])
        assert "Introduce yourself" in prompt
        assert "DO NOT INTRODUCE YOURSELF" not in prompt
        assert "Current field that you must fill in the form: name" in prompt

    def test_follow_up_reacts_to_last_answer(self, schema):
        prompt = build_question_prompt(schema, schema.get_field("color"), ["Alice", "alice@example.com"])
        assert "REACT TO THE LAST RESPONSE (alice@example.com)" in prompt
        assert "DO NOT INTRODUCE YOURSELF" in prompt
        assert "Last responses: Alice, alice@example.com" in prompt

    def test_choices_listed_in_order(self, schema):
        prompt = build_question_prompt(schema, schema.get_field("color"), [])
        assert '"Red", "Green", "Blue"' in prompt
        assert "not a number corresponding to the value" in prompt

    def test_no_choice_rule_for_free_fields(self, schema):
        prompt = build_question_prompt(schema, schema.get_field("name"), [])
        assert "has no options" in prompt

    @pytest.mark.parametrize("field_name,wording", [
        ("name", "free text"),
        ("email", "an email address"),
        ("color", "one of the listed options"),
    ])
    def test_expected_type_is_named(self, schema, field_name, wording):
        prompt = build_question_prompt(schema, schema.get_field(field_name), [])
        assert f"TYPE: {wording}" in prompt

    def test_unknown_field_is_asked_as_text(self, schema):
        field = resolve_field(schema, "nickname")
        assert field.name == "nickname"
        assert field.field_type == FieldType.TEXT

    @pytest.mark.asyncio
    async def test_generate_strips_quotes(self, schema):
        completions = AsyncMock()
        completions.complete.return_value = ['"Great! What is your email address?"']

        message = await generate_prompt(completions, schema, schema.get_field("email"), ["Alice"])

        assert message == "Great! What is your email address?"

    @pytest.mark.asyncio
    async def test_zero_candidates_raise(self, schema):
        completions = AsyncMock()
        completions.complete.return_value = []

        with pytest.raises(NoCompletionProduced):
            await generate_prompt(completions, schema, schema.get_field("name"), [])
