"""
Shared response building blocks.
"""

from pydantic import BaseModel


class PaginationMeta(BaseModel):
    """Pagination block attached to every list response."""
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool
    limit: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str
