"""
Bulk report operation schemas.

Report ids accept integers or digit strings; anything else is rejected
by the coordinator before any report is touched.
"""

from pydantic import BaseModel, Field, StrictInt, StrictStr
from typing import List, Optional, Union

ReportIdInput = Union[StrictInt, StrictStr]


class BulkStatusUpdateRequest(BaseModel):
    report_ids: List[ReportIdInput]
    status: str
    comment: Optional[str] = Field(default=None, max_length=500)


class BulkAssignRequest(BaseModel):
    report_ids: List[ReportIdInput]
    assigned_to: int
    comment: Optional[str] = Field(default=None, max_length=500)


class BulkDeleteRequest(BaseModel):
    report_ids: List[ReportIdInput]
    reason: Optional[str] = Field(default=None, max_length=500)


class BulkOperationResponse(BaseModel):
    success: bool = True
    updated_count: int
    status: Optional[str] = None
    assigned_to: Optional[int] = None
    report_ids: List[int]
    failed_ids: List[int] = []
