"""
Shared fakes for the record store and the completion service.
"""
import os
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional
from urllib.parse import urlsplit

import pytest

# Set test credentials before importing the app
os.environ.setdefault("AIRTABLE_API_KEY", "test-airtable-key")
os.environ.setdefault("AIRTABLE_BASE_ID", "appTestBase")
os.environ.setdefault("OPENAI_API_KEY", "test-key-for-testing")

from engine.state import DialogueState, decode_state
from survey.errors import SchemaNotFound, UpstreamUnavailable
from survey.fields import SurveySchema


def text_field(name: str) -> dict:
    return {"id": f"fld_{name}", "name": name, "type": "singleLineText"}


def email_field(name: str) -> dict:
    return {"id": f"fld_{name}", "name": name, "type": "email"}


def select_field(name: str, *labels: str) -> dict:
    return {
        "id": f"fld_{name}",
        "name": name,
        "type": "singleSelect",
        "options": {"choices": [{"id": f"sel{i}", "name": label} for i, label in enumerate(labels)]},
    }


class FakeStore:
    """In-memory record store with the AirtableService interface."""

    def __init__(self, tables: Dict[str, List[dict]], fail_writes: bool = False):
        self.tables = {
            name: {"id": f"tbl{i}", "name": name, "fields": fields}
            for i, (name, fields) in enumerate(tables.items())
        }
        self.records: Dict[str, Dict[str, str]] = {}
        self.fail_writes = fail_writes
        self.schema_lookups: List[str] = []
        self.write_attempts: List[Dict[str, str]] = []

    async def create_empty_record(self, table_name: str) -> str:
        if table_name not in self.tables:
            raise SchemaNotFound(table_name)
        record_id = f"rec{len(self.records) + 1}"
        self.records[record_id] = {}
        return record_id

    async def update_record(self, table_name: str, record_id: str, fields: Dict[str, str]) -> None:
        self.write_attempts.append(dict(fields))
        if self.fail_writes:
            raise UpstreamUnavailable("Airtable", "write refused", status_code=503)
        self.records[record_id].update(fields)

    async def resolve_schema(self, table_name: str) -> SurveySchema:
        self.schema_lookups.append(table_name)
        if table_name not in self.tables:
            raise SchemaNotFound(table_name)
        return SurveySchema.from_store(self.tables[table_name])


class FakeCompletions:
    """
    Completion service that answers extraction and question prompts.

    Extraction prompts return ``normalized[utterance]`` (or the utterance
    itself); question prompts return "What is your <field>?".
    """

    def __init__(self, normalized: Optional[Dict[str, str]] = None):
        self.normalized = normalized or {}
        self.prompts: List[str] = []
        self.extractions: List[str] = []
        self.questions: List[str] = []

    async def complete(self, prompt: str) -> List[str]:
        self.prompts.append(prompt)
        if prompt.startswith("Your job is to extract"):
            utterance = prompt.split("User Response: ", 1)[1].split("\n", 1)[0]
            self.extractions.append(utterance)
            return [self.normalized.get(utterance, utterance)]

        field_name = prompt.split("Current field that you must fill in the form: ", 1)[1].split("\n", 1)[0]
        self.questions.append(field_name)
        return [f"What is your {field_name}?"]


class EmptyCompletions:
    """Completion service that never produces a candidate."""

    async def complete(self, prompt: str) -> List[str]:
        return []


def parse_twiml(content: str) -> ET.Element:
    return ET.fromstring(content.encode("utf-8"))


def gather_action(content: str) -> str:
    gather = parse_twiml(content).find("Gather")
    assert gather is not None, content
    return gather.get("action")


def spoken_text(content: str) -> List[str]:
    return [say.text for say in parse_twiml(content).iter("Say")]


def state_in_url(url: str) -> Optional[DialogueState]:
    return decode_state(urlsplit(url).query)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def survey_store() -> FakeStore:
    """Survey_4242 with fields [name, email] plus an empty Survey_1000."""
    return FakeStore({
        "Survey_4242": [text_field("name"), email_field("email")],
        "Survey_1000": [],
    })


@pytest.fixture
def completions() -> FakeCompletions:
    return FakeCompletions({"alice at example dot com": "alice@example.com"})
