"""
Airtable service - the survey record store and schema resolver.

Each survey is one Airtable table; each call creates one row in it and
fills one column per answered question. The table's column list, read from
the metadata API, is the survey definition.

This service is DETERMINISTIC - NO OpenAI calls.

Python 3.9 compatible - uses typing.Dict, typing.List, typing.Optional
"""

import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from survey.errors import SchemaNotFound, UpstreamUnavailable
from survey.fields import SurveySchema

from .models import AirtableRecord, AirtableTable, AirtableTablesResponse

logger = logging.getLogger(__name__)

SERVICE_NAME = "Airtable"

# Error types Airtable uses when a table (model) does not exist
NOT_FOUND_ERROR_TYPES = {
    "NOT_FOUND",
    "TABLE_NOT_FOUND",
    "MODEL_ID_NOT_FOUND",
    "INVALID_PERMISSIONS_OR_MODEL_NOT_FOUND",
}


def _error_type(response: httpx.Response) -> Optional[str]:
    """Airtable error type from a JSON error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("type")
    if isinstance(error, str):
        return error
    return None


class AirtableService:
    """Service for Airtable schema and record operations."""

    API_URL = "https://api.airtable.com/v0"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or os.getenv("AIRTABLE_API_KEY")
        self.base_id = base_id or os.getenv("AIRTABLE_BASE_ID")
        if not self.api_key:
            raise RuntimeError("AIRTABLE_API_KEY is required for Airtable service")
        if not self.base_id:
            raise RuntimeError("AIRTABLE_BASE_ID is required for Airtable service")

        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)
        logger.info(f"Airtable service initialized for base {self.base_id}")

    async def close(self):
        """Close the HTTP client."""
        await self.http_client.aclose()
        logger.info("Airtable service closed")

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _table_url(self, table_name: str) -> str:
        return f"{self.API_URL}/{self.base_id}/{quote(table_name, safe='')}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request; transport failures become UpstreamUnavailable."""
        try:
            return await self.http_client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Airtable {method} {url} failed: {e}")
            raise UpstreamUnavailable(SERVICE_NAME, str(e)) from e

    # ------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------

    async def get_tables(self) -> List[Dict[str, Any]]:
        """
        Fetch every table definition of the base.

        Returns:
            Table definitions as plain dicts, in the order Airtable lists them

        Raises:
            UpstreamUnavailable: On transport error, non-200 status or a body
                that is not a table list
        """
        url = f"{self.API_URL}/meta/bases/{self.base_id}/tables"
        response = await self._request("GET", url)

        if response.status_code != 200:
            logger.error(f"Failed to fetch base schema: status={response.status_code}")
            raise UpstreamUnavailable(
                SERVICE_NAME, "failed to fetch base schema", status_code=response.status_code
            )

        try:
            parsed = AirtableTablesResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Unexpected base schema payload: {e}")
            raise UpstreamUnavailable(SERVICE_NAME, "unexpected base schema payload") from e

        return [table.model_dump(mode="json", exclude_unset=True) for table in parsed.tables]

    async def resolve_schema(self, table_name: str) -> SurveySchema:
        """
        Resolve a survey table's ordered fields and full definition.

        Args:
            table_name: Table name, e.g. "Survey_4242"

        Returns:
            SurveySchema with field_names in table column order

        Raises:
            SchemaNotFound: If the base has no table with that name
            UpstreamUnavailable: If the metadata API failed
        """
        tables = await self.get_tables()
        for table in tables:
            if table.get("name") == table_name:
                schema = SurveySchema.from_store(table)
                logger.debug(f"Resolved schema for {table_name}: fields={schema.field_names}")
                return schema

        logger.warning(f"Table {table_name!r} not found in base {self.base_id}")
        raise SchemaNotFound(table_name)

    # ------------------------------------------------------------
    # Records
    # ------------------------------------------------------------

    async def create_empty_record(self, table_name: str) -> str:
        """
        Create an empty row for a new call.

        Returns:
            The Airtable record id

        Raises:
            SchemaNotFound: If the table does not exist
            UpstreamUnavailable: On any other failure
        """
        response = await self._request(
            "POST", self._table_url(table_name), json={"fields": {}}
        )

        if response.status_code in (403, 404) and (
            response.status_code == 404 or _error_type(response) in NOT_FOUND_ERROR_TYPES
        ):
            logger.warning(f"create_empty_record: table {table_name!r} not found")
            raise SchemaNotFound(table_name)

        if response.status_code != 200:
            logger.error(
                f"create_empty_record failed for {table_name}: status={response.status_code}"
            )
            raise UpstreamUnavailable(
                SERVICE_NAME, f"could not create record in {table_name}",
                status_code=response.status_code,
            )

        try:
            record = AirtableRecord.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UpstreamUnavailable(SERVICE_NAME, "unexpected record payload") from e

        logger.info(f"Created record {record.id} in {table_name}")
        return record.id

    async def update_record(self, table_name: str, record_id: str, fields: Dict[str, Any]) -> None:
        """
        Write field values onto an existing record.

        ``typecast`` lets Airtable coerce spoken strings into number, date
        and select columns.

        Raises:
            UpstreamUnavailable: On transport error or non-200 status
        """
        url = f"{self._table_url(table_name)}/{quote(record_id, safe='')}"
        response = await self._request(
            "PATCH", url, json={"fields": fields, "typecast": True}
        )

        if response.status_code != 200:
            raise UpstreamUnavailable(
                SERVICE_NAME, f"could not update record {record_id} in {table_name}",
                status_code=response.status_code,
            )

        logger.debug(f"Updated record {record_id} in {table_name}: {list(fields.keys())}")


# Singleton instance (created lazily)
_airtable_service: Optional[AirtableService] = None


def get_airtable_service() -> AirtableService:
    """Get or create the AirtableService singleton."""
    global _airtable_service
    if _airtable_service is None:
        _airtable_service = AirtableService()
    return _airtable_service
