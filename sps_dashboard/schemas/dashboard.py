from typing import List
from pydantic import BaseModel


class MonthlyCount(BaseModel):
    key: str
    month: str
    count: int


class StatusCount(BaseModel):
    status: str
    count: int


class CoordinatorCount(BaseModel):
    coordinator_id: str
    name: str
    count: int


class DashboardStats(BaseModel):
    total_missions: int = 0
    pending_missions: int = 0
    completed_missions: int = 0
    total_reports: int = 0
    submitted_reports: int = 0
    validated_reports: int = 0
    sent_reports: int = 0
    total_coordinators: int = 0
    avg_processing_days: int = 0
    monthly_missions: List[MonthlyCount] = []
    status_breakdown: List[StatusCount] = []
    coordinator_stats: List[CoordinatorCount] = []
