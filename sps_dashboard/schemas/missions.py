import uuid
from datetime import date
from typing import Optional
from pydantic import BaseModel, field_validator, model_validator


def _strip_or_none(v):
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class MissionCreate(BaseModel):
    client_name: str
    site_name: str
    site_address: str
    city: str
    start_date: date
    end_date: date
    postal_code: Optional[str] = None
    internal_reference: Optional[str] = None
    instructions: Optional[str] = None
    coordinator_id: Optional[uuid.UUID] = None

    @field_validator("client_name", "site_name", "site_address", "city")
    @classmethod
    def required_text(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("postal_code", "internal_reference", "instructions", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return _strip_or_none(v)

    @field_validator("coordinator_id", mode="before")
    @classmethod
    def blank_coordinator(cls, v):
        # the form sends "" when no coordinator is picked
        return v or None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class MissionUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    instructions: Optional[str] = None
    admin_remarks: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v


class AssignRequest(BaseModel):
    coordinator_id: uuid.UUID


class MissionImportResult(BaseModel):
    imported: int
    total_rows: int
    failed_row: Optional[int] = None
    error: Optional[str] = None
