"""
Answer interpretation.

Maps what the caller said onto the value stored for the current field. The
LLM is used ONLY as a parser here: it gets the survey schema, the field
being answered and the raw utterance, and returns the extracted value.
It never decides which field comes next.
"""
import logging
from typing import Any, List

from survey.errors import NoCompletionProduced
from survey.fields import SurveySchema

logger = logging.getLogger(__name__)


EXTRACTION_PROMPT = """Your job is to extract the value from the user's response to a form survey.

For example, if the user says "My phone number is 01 23 45 67 89", you should process it as "01 23 45 67 89".
If the user spells out an email address, for example "alice at example dot com", write it as "alice@example.com".
Sometimes, the user might input a digit, like 1. This should mean that they are selecting the second option in the list of options corresponding to the field.
Reply with the extracted value only, without quotes or any other text.

Form Schema: {schema}

Current Field: {field_name}

User Response: {utterance}

Extracted Information: """


def build_extraction_prompt(schema: SurveySchema, field_name: str, utterance: str) -> str:
    """
    Build the prompt for answer extraction.

    Args:
        schema: Survey schema, embedded verbatim
        field_name: The field the caller was asked about
        utterance: Raw speech transcript

    Returns:
        Prompt string for the completion service
    """
    return EXTRACTION_PROMPT.format(
        schema=schema.to_prompt_json(),
        field_name=field_name,
        utterance=utterance,
    )


def first_candidate(candidates: List[str], purpose: str) -> str:
    """First candidate text, stripped. Raises NoCompletionProduced if none."""
    if not candidates:
        logger.error(f"METRIC completion_empty purpose={purpose}")
        raise NoCompletionProduced(purpose)
    return (candidates[0] or "").strip()


async def interpret_answer(
    completions: Any,
    schema: SurveySchema,
    field_name: str,
    utterance: str,
) -> str:
    """
    Normalize a spoken answer for one field.

    Args:
        completions: Completion client with ``async complete(prompt) -> List[str]``
        schema: Survey schema
        field_name: The field being answered
        utterance: Raw speech transcript

    Returns:
        The normalized value to store

    Raises:
        NoCompletionProduced: If the service returned no candidates
        UpstreamUnavailable: If the service call failed
    """
    prompt = build_extraction_prompt(schema, field_name, utterance)
    candidates = await completions.complete(prompt)
    value = first_candidate(candidates, f"extraction of {field_name}")
    logger.info(f"Interpreted answer: {field_name}={value!r}")
    return value
