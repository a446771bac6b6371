"""
Survey field and schema definitions.

A survey is a table in the record store. Its columns are the fields we ask
the caller about, in declared order. The store's column types are folded
into a small tagged variant (FieldType) so prompt templates can branch on
the kind of value expected without knowing anything about the store.
"""
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


SURVEY_TABLE_PREFIX = "Survey_"

SURVEY_ID_PATTERN = re.compile(r"^[0-9]+$")


class FieldType(str, Enum):
    """Kinds of value a survey field can hold."""
    TEXT = "TEXT"
    PHONE = "PHONE"
    EMAIL = "EMAIL"
    CHOICE = "CHOICE"
    NUMBER = "NUMBER"
    DATE = "DATE"


# Airtable column type -> FieldType. Anything not listed is treated as TEXT.
STORE_TYPE_MAP: Dict[str, FieldType] = {
    "singleLineText": FieldType.TEXT,
    "multilineText": FieldType.TEXT,
    "richText": FieldType.TEXT,
    "phoneNumber": FieldType.PHONE,
    "email": FieldType.EMAIL,
    "singleSelect": FieldType.CHOICE,
    "multipleSelects": FieldType.CHOICE,
    "number": FieldType.NUMBER,
    "currency": FieldType.NUMBER,
    "percent": FieldType.NUMBER,
    "rating": FieldType.NUMBER,
    "date": FieldType.DATE,
    "dateTime": FieldType.DATE,
}

# How each type is named to the caller
TYPE_DESCRIPTIONS: Dict[FieldType, str] = {
    FieldType.TEXT: "free text",
    FieldType.PHONE: "a phone number",
    FieldType.EMAIL: "an email address",
    FieldType.CHOICE: "one of the listed options",
    FieldType.NUMBER: "a number",
    FieldType.DATE: "a date",
}


@dataclass(frozen=True)
class FieldSpec:
    """
    A single survey field.

    Attributes:
        name: Column name, unique within the survey
        field_type: Kind of value expected
        choices: Option labels in declared order (CHOICE fields only)
        description: Column description from the store, if any
    """
    name: str
    field_type: FieldType = FieldType.TEXT
    choices: List[str] = field(default_factory=list)
    description: Optional[str] = None

    @property
    def has_choices(self) -> bool:
        return self.field_type == FieldType.CHOICE and bool(self.choices)

    def describe_type(self) -> str:
        """Human wording for the value type, e.g. "an email address"."""
        return TYPE_DESCRIPTIONS[self.field_type]


def field_from_store(raw: Dict[str, Any]) -> FieldSpec:
    """
    Build a FieldSpec from an Airtable field definition.

    Args:
        raw: Field JSON as returned by the metadata API
            (``{"name": ..., "type": ..., "options": {...}}``)

    Returns:
        The matching FieldSpec
    """
    store_type = raw.get("type") or ""
    field_type = STORE_TYPE_MAP.get(store_type, FieldType.TEXT)

    choices: List[str] = []
    if field_type == FieldType.CHOICE:
        options = raw.get("options") or {}
        choices = [c["name"] for c in options.get("choices", []) if c.get("name")]

    return FieldSpec(
        name=raw["name"],
        field_type=field_type,
        choices=choices,
        description=raw.get("description"),
    )


@dataclass(frozen=True)
class SurveySchema:
    """
    Ordered field definitions of one survey table.

    ``raw`` keeps the table definition exactly as the store returned it; it
    is what the completion prompts embed.
    """
    table_name: str
    fields: List[FieldSpec]
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FieldSpec]:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_prompt_json(self) -> str:
        """Pretty-printed table definition for prompt templates."""
        return json.dumps(self.raw, indent=2, ensure_ascii=False)

    @classmethod
    def from_store(cls, table: Dict[str, Any]) -> "SurveySchema":
        """Build a schema from an Airtable table definition."""
        return cls(
            table_name=table["name"],
            fields=[field_from_store(f) for f in table.get("fields", [])],
            raw=table,
        )


def is_valid_survey_id(digits: Optional[str]) -> bool:
    """Check that keypad input is a non-empty run of digits."""
    if not digits:
        return False
    return SURVEY_ID_PATTERN.match(digits) is not None


def table_name_for_survey(survey_id: str) -> str:
    """Survey 4242 lives in table "Survey_4242"."""
    return f"{SURVEY_TABLE_PREFIX}{survey_id}"
