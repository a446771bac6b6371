"""
Survey field model and error taxonomy.
"""
from .errors import (
    SurveyError,
    SchemaNotFound,
    UpstreamUnavailable,
    NoCompletionProduced,
    InvalidDialogueState,
)
from .fields import (
    FieldType,
    FieldSpec,
    SurveySchema,
    field_from_store,
    is_valid_survey_id,
    table_name_for_survey,
)

__all__ = [
    "SurveyError",
    "SchemaNotFound",
    "UpstreamUnavailable",
    "NoCompletionProduced",
    "InvalidDialogueState",
    "FieldType",
    "FieldSpec",
    "SurveySchema",
    "field_from_store",
    "is_valid_survey_id",
    "table_name_for_survey",
]
