"""
Errors raised while running a survey call.

Every error is a SurveyError so the web layer can turn any failed turn into
a spoken apology with a single handler.
"""
from typing import Optional


class SurveyError(Exception):
    """Base class for survey call failures."""


class SchemaNotFound(SurveyError):
    """The survey table does not exist in the record store."""

    def __init__(self, table_name: str):
        super().__init__(f'Table "{table_name}" not found.')
        self.table_name = table_name


class UpstreamUnavailable(SurveyError):
    """The record store or completion service failed or answered non-success."""

    def __init__(self, service: str, detail: str, status_code: Optional[int] = None):
        message = f"{service} unavailable: {detail}"
        if status_code is not None:
            message = f"{message} (status {status_code})"
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class NoCompletionProduced(SurveyError):
    """The completion service returned zero candidates."""

    def __init__(self, purpose: str):
        super().__init__(f"No completion produced for {purpose}")
        self.purpose = purpose


class InvalidDialogueState(SurveyError):
    """Dialogue state carried in a callback URL could not be decoded."""
