"""
Pydantic models for the Airtable API payloads and the service's JSON endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================
# Airtable metadata API
# ============================================================

class AirtableField(BaseModel):
    """A column definition from the metadata API."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str
    type: str = "singleLineText"
    description: Optional[str] = None
    options: Optional[Dict[str, Any]] = None


class AirtableTable(BaseModel):
    """A table definition from the metadata API."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str
    primaryFieldId: Optional[str] = None
    fields: List[AirtableField] = Field(default_factory=list)


class AirtableTablesResponse(BaseModel):
    """Response of GET /v0/meta/bases/{baseId}/tables."""
    model_config = ConfigDict(extra="allow")

    tables: List[AirtableTable] = Field(default_factory=list)


# ============================================================
# Airtable records API
# ============================================================

class AirtableRecord(BaseModel):
    """A record as returned by create/update."""
    model_config = ConfigDict(extra="allow")

    id: str
    createdTime: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict)


# ============================================================
# Service endpoints
# ============================================================

class HealthResponse(BaseModel):
    status: str
    version: str
