"""Schemas for the administrator dashboard."""
from pydantic import BaseModel


class DashboardStats(BaseModel):
    total_reports: int
    pending_verification: int
    verified_reports: int
    rejected_reports: int
    average_response_time_seconds: float | None
    reports_by_category: dict[str, int]
    reports_by_priority: dict[str, int]
    rewards_by_status: dict[str, int]
