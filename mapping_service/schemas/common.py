"""Response envelope, error and paging schemas shared by every endpoint."""

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ResponseMeta(BaseModel):
    timestamp: datetime = Field(..., description="Response creation time (UTC)")
    request_id: str = Field(..., description="Request correlation id")
    api_version: str = Field("v1", description="API version that served the request")


class ApiResponse(BaseModel):
    """Standard success envelope."""

    status: bool = Field(True, description="Whether the operation succeeded")
    message: str = Field(..., description="Human readable outcome")
    data: Dict[str, Any] = Field(default_factory=dict, description="Operation payload")
    meta: ResponseMeta


class ErrorDetail(BaseModel):
    """RFC 7807 problem detail."""

    type: str = Field("about:blank", description="Problem type URI")
    title: str = Field(..., description="Short summary of the problem")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Explanation specific to this occurrence")
    instance: Optional[str] = Field(None, description="Request path that failed")
    request_id: Optional[str] = None
    timestamp: datetime
    error_code: Optional[int] = Field(None, description="Service specific error code")
    more_info: Optional[Dict[str, Any]] = Field(
        None, description="Extra diagnostic payload, e.g. the existing and duplicate mappings"
    )
    conflict_level: Optional[str] = Field(
        None, description="Collection of a composite request that held the duplicate"
    )


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int = Field(..., description="Total number of matching items")
    page: int = Field(..., description="Zero based page number")
    size: int = Field(..., description="Requested page size")
    total_pages: int


class GroupCount(BaseModel):
    """Number of mappings a migration run created for one group."""

    group_key: str = Field(..., description="Group (prisoner number) the mappings belong to")
    count: int
    earliest_when_created: Optional[datetime] = None
