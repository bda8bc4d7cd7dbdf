import uuid
from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, field_validator


class ReportCreate(BaseModel):
    mission_id: uuid.UUID
    visit_id: Optional[str] = None
    header: Optional[str] = None
    content: str = ""
    footer: Optional[str] = None
    observations: Optional[str] = None
    conformity_percentage: Optional[int] = Field(default=None, ge=0, le=100)


class ReportUpdate(BaseModel):
    header: Optional[str] = None
    content: Optional[str] = None
    footer: Optional[str] = None
    observations: Optional[str] = None
    admin_remarks: Optional[str] = None

    @field_validator("content")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v


# Same editable fields; validation persists them before switching status
ReportValidate = ReportUpdate


RiskLevel = Literal["low", "medium", "high"]


class AiAnalysis(BaseModel):
    observations: List[str] = []
    recommendations: List[str] = []
    risk_level: RiskLevel = "low"
    confidence: int = 0  # percent


class PdfPhoto(BaseModel):
    id: str
    uri: Optional[str] = None
    timestamp: datetime
    ai_analysis: Optional[AiAnalysis] = None
    comment: str = ""
    validated: bool = True


class ReportPdfPayload(BaseModel):
    title: str
    mission: str
    client: str
    date: datetime
    conformity: Optional[int] = None
    header: str = ""
    content: str = ""
    footer: str = ""
    photos: List[PdfPhoto] = []
