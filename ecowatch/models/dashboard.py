"""
Read models derived from the live report feed.
"""

from pydantic import BaseModel, Field
from typing import Dict, List

from ecowatch.models.report import Report


class ReportStats(BaseModel):
    """
    Counts over one snapshot.

    `by_status` only contains statuses present in the snapshot, so the sum of
    its values always equals `total`.
    """
    total: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict, alias="byStatus")
    by_category: Dict[str, int] = Field(default_factory=dict, alias="byCategory")
    by_severity: Dict[int, int] = Field(default_factory=dict, alias="bySeverity")

    class Config:
        populate_by_name = True

    def count(self, status: str) -> int:
        key = getattr(status, "value", status)
        return self.by_status.get(key, 0)


class ReportFeedMessage(BaseModel):
    """One message on a live report feed (council or citizen)."""
    reports: List[Report]
    stats: ReportStats
