"""
Admin dashboard and statistics schemas.
"""

from pydantic import BaseModel
from typing import List


class CountBucket(BaseModel):
    """A (key, count) breakdown row."""
    key: str
    count: int


class DailyCount(BaseModel):
    date: str
    count: int


class DailyStatisticsRow(BaseModel):
    date: str
    reports: int
    resolved: int


class CityBreakdown(BaseModel):
    city: str
    count: int
    categories: List[str]
    avg_priority: float


class OverviewMetrics(BaseModel):
    total_users: int
    total_reports: int
    total_notifications: int
    active_users: int
    recent_reports: int
    user_growth_rate: float
    resolution_rate: float
    avg_resolution_time: int = 0


class DashboardAnalytics(BaseModel):
    timeframe: str
    overview: OverviewMetrics
    status_breakdown: List[CountBucket]
    category_breakdown: List[CountBucket]
    priority_breakdown: List[CountBucket]
    user_role_breakdown: List[CountBucket]
    daily_reports: List[DailyCount]
    generated_at: str


class DashboardAnalyticsResponse(BaseModel):
    success: bool = True
    data: DashboardAnalytics


class UserStatistics(BaseModel):
    total: int
    active: int
    by_role: List[CountBucket]
    recent_registrations: int
    recent_logins: int


class ReportStatistics(BaseModel):
    total: int
    by_status: List[CountBucket]
    by_category: List[CountBucket]
    by_priority: List[CountBucket]
    recent: int
    assigned: int


class PerformanceStatistics(BaseModel):
    avg_resolution_time: int = 0
    min_resolution_time: int = 0
    max_resolution_time: int = 0
    total_resolved: int


class SystemStatistics(BaseModel):
    period: str
    users: UserStatistics
    reports: ReportStatistics
    performance: PerformanceStatistics
    geographic: List[CityBreakdown]
    timeline: List[DailyStatisticsRow]
    generated_at: str


class SystemStatisticsResponse(BaseModel):
    success: bool = True
    data: SystemStatistics
