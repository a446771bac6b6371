"""
Question prompt generation.

Builds the instruction sent to the completion service to phrase the next
question. The rules that depend on the field's kind (naming the expected
type, reading out options) are plain templating over FieldType.
"""
import logging
from typing import Any, List, Optional, Sequence

from survey.fields import FieldSpec, FieldType, SurveySchema

from .extract import first_candidate

logger = logging.getLogger(__name__)


QUESTION_PROMPT = """You are a surveyor. Your job is to ask questions to people over the phone.

Last responses: {last_responses}

Form Schema: {schema}

Current field that you must fill in the form: {field_name}

{opening_rule}

{choice_rule}

EXPLAIN THE EXPECTED FIELD ({field_name}) TYPE: {type_description}.

Short prompt to say to user: """

OPENING_FIRST_QUESTION = (
    'There are NO (0) last responses. Introduce yourself briefly, then ask the question.\n'
    'For example, if the field is "name", say: "Hello, I am conducting a short survey. Please, what is your name?"'
)

OPENING_FOLLOW_UP = (
    "ALWAYS REACT TO THE LAST RESPONSE ({last_answer}) BEFORE ASKING THE QUESTION, "
    'for example "Great answer!", then transition to the current question.\n'
    "DO NOT INTRODUCE YOURSELF. ASK THE QUESTION DIRECTLY."
)

CHOICE_RULE = (
    'The "{field_name}" field has options. List them out to the user one by one, in this order: {choices}.\n'
    "Ask the user to give you the value, not a number corresponding to the value."
)

NO_CHOICE_RULE = 'The "{field_name}" field has no options; the user answers freely.'


def opening_rule(prior_answers: Sequence[str]) -> str:
    """First question introduces the surveyor; later ones react to the last answer."""
    if not prior_answers:
        return OPENING_FIRST_QUESTION
    return OPENING_FOLLOW_UP.format(last_answer=prior_answers[-1])


def choice_rule(field: FieldSpec) -> str:
    if field.has_choices:
        choices = ", ".join(f'"{c}"' for c in field.choices)
        return CHOICE_RULE.format(field_name=field.name, choices=choices)
    return NO_CHOICE_RULE.format(field_name=field.name)


def build_question_prompt(
    schema: SurveySchema,
    field: FieldSpec,
    prior_answers: Sequence[str],
) -> str:
    """
    Build the prompt asking the completion service to phrase a question.

    Args:
        schema: Survey schema, embedded verbatim
        field: Field to ask about
        prior_answers: Normalized answers so far, oldest first

    Returns:
        Prompt string for the completion service
    """
    return QUESTION_PROMPT.format(
        last_responses=", ".join(prior_answers) if prior_answers else "(none)",
        schema=schema.to_prompt_json(),
        field_name=field.name,
        opening_rule=opening_rule(prior_answers),
        choice_rule=choice_rule(field),
        type_description=field.describe_type(),
    )


def resolve_field(schema: SurveySchema, field_name: str) -> FieldSpec:
    """Field definition by name; a name missing from the schema is asked as free text."""
    field: Optional[FieldSpec] = schema.get_field(field_name)
    if field is None:
        logger.warning(f"Field {field_name!r} not in schema of {schema.table_name}, asking as free text")
        return FieldSpec(name=field_name, field_type=FieldType.TEXT)
    return field


async def generate_prompt(
    completions: Any,
    schema: SurveySchema,
    field: FieldSpec,
    prior_answers: List[str],
) -> str:
    """
    Generate the text spoken to the caller for the next question.

    Raises:
        NoCompletionProduced: If the service returned no candidates
        UpstreamUnavailable: If the service call failed
    """
    prompt = build_question_prompt(schema, field, prior_answers)
    candidates = await completions.complete(prompt)
    message = first_candidate(candidates, f"question for {field.name}")
    # Remove quotes if present
    message = message.strip('"').strip("'")
    logger.info(f"Generated prompt for {field.name}: {message[:100]}")
    return message
