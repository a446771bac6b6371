"""
Dialogue state and its callback-URL codec.

The server keeps nothing between Twilio callbacks. Everything needed to
continue a survey (which fields are still to be asked, which answers were
given) travels inside the callback address of the next <Gather>:

    /handle-response/Survey_4242/recXXX?remainingFields=%5B%22email%22%5D&lastAnswers=%5B%22Alice%22%5D

Both values are JSON arrays of strings, percent-encoded. A missing (or
empty) ``remainingFields`` means the dialogue has not been initialized yet,
which is different from ``[]`` (every field answered).
"""
import json
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple
from urllib.parse import parse_qs, quote, urlencode

from survey.errors import InvalidDialogueState

REMAINING_FIELDS_PARAM = "remainingFields"
LAST_ANSWERS_PARAM = "lastAnswers"


@dataclass(frozen=True)
class DialogueState:
    """
    Survey progress carried from one callback to the next.

    Attributes:
        remaining_fields: Field names not answered yet, in survey order
        last_answers: Normalized answers collected so far, in answer order
    """
    remaining_fields: Tuple[str, ...]
    last_answers: Tuple[str, ...] = ()

    @classmethod
    def initial(cls, field_names: Sequence[str]) -> "DialogueState":
        """State at the start of a survey: every field remaining, no answers."""
        return cls(remaining_fields=tuple(field_names), last_answers=())

    @property
    def current_field(self) -> Optional[str]:
        """The field being asked (or just answered), None once complete."""
        if not self.remaining_fields:
            return None
        return self.remaining_fields[0]

    @property
    def is_complete(self) -> bool:
        return not self.remaining_fields

    def advance(self, answer: str) -> "DialogueState":
        """
        Record the answer to the current field and move to the next one.

        Raises:
            ValueError: If there is no field left to answer
        """
        if self.is_complete:
            raise ValueError("No remaining field to answer")
        return DialogueState(
            remaining_fields=self.remaining_fields[1:],
            last_answers=self.last_answers + (answer,),
        )


def _dump(values: Sequence[str]) -> str:
    return json.dumps(list(values), ensure_ascii=False, separators=(",", ":"))


def _load(param: str, raw: str) -> Tuple[str, ...]:
    try:
        values = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidDialogueState(f"{param} is not valid JSON: {e}") from e

    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise InvalidDialogueState(f"{param} must be a JSON array of strings")
    return tuple(values)


def state_to_params(state: DialogueState) -> List[Tuple[str, str]]:
    """Query parameters (unencoded) for a state, in a stable order."""
    return [
        (REMAINING_FIELDS_PARAM, _dump(state.remaining_fields)),
        (LAST_ANSWERS_PARAM, _dump(state.last_answers)),
    ]


def encode_state(state: DialogueState) -> str:
    """
    Encode a state as a URL query string (without the leading "?").

    Uses %20 rather than "+" for spaces, like encodeURIComponent, so the
    result is safe in any part of a URL.
    """
    return urlencode(state_to_params(state), quote_via=quote)


def state_from_params(
    remaining_fields: Optional[str],
    last_answers: Optional[str] = None,
) -> Optional[DialogueState]:
    """
    Build a state from already-unquoted query values.

    Args:
        remaining_fields: Raw ``remainingFields`` value, None if absent
        last_answers: Raw ``lastAnswers`` value, None if absent

    Returns:
        The decoded state, or None when the dialogue is uninitialized

    Raises:
        InvalidDialogueState: If either value is not a JSON array of strings
    """
    if not remaining_fields:
        return None

    answers: Tuple[str, ...] = ()
    if last_answers:
        answers = _load(LAST_ANSWERS_PARAM, last_answers)

    return DialogueState(
        remaining_fields=_load(REMAINING_FIELDS_PARAM, remaining_fields),
        last_answers=answers,
    )


def decode_params(params: Mapping[str, str]) -> Optional[DialogueState]:
    """Decode a state from a mapping of query parameters."""
    return state_from_params(
        params.get(REMAINING_FIELDS_PARAM),
        params.get(LAST_ANSWERS_PARAM),
    )


def decode_state(query_string: str) -> Optional[DialogueState]:
    """
    Decode a state from a URL query string; inverse of encode_state.

    Unrelated parameters are ignored. Returns None when the query string
    carries no ``remainingFields``.
    """
    parsed = parse_qs(query_string.lstrip("?"), keep_blank_values=True)
    params = {key: values[0] for key, values in parsed.items() if values}
    return decode_params(params)
