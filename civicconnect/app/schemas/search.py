"""
Admin advanced search schemas.
"""

from pydantic import BaseModel
from typing import Any, Dict, List
from civicconnect.app.schemas.common import PaginationMeta
from civicconnect.app.schemas.report import ReportResponse


class SearchStatistics(BaseModel):
    """Facet counts over the filtered set (not just the current page)."""
    total_reports: int
    status_counts: Dict[str, int]
    category_counts: Dict[str, int]
    priority_counts: Dict[str, int]
    avg_resolution_time: int = 0


class AdvancedSearchResponse(BaseModel):
    success: bool = True
    reports: List[ReportResponse]
    pagination: PaginationMeta
    statistics: SearchStatistics
    filters: Dict[str, Any]
