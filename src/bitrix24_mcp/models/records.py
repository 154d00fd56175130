"""Typed records passed between the client layers."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class APIConfiguration(BaseModel):
    """Connection settings for one Bitrix24 portal webhook."""

    webhook_url: SecretStr = Field(..., description="Incoming webhook URL (contains the token)")
    timeout: float = Field(30.0, gt=0, description="Per-request timeout in seconds")
    max_retries: int = Field(5, ge=1, description="Attempts per request on transient errors")
    rate_limit_delay: float = Field(0.5, ge=0, description="Base backoff delay in seconds")

    @property
    def base_url(self) -> str:
        """Webhook URL with exactly one trailing slash."""
        return self.webhook_url.get_secret_value().strip().rstrip("/") + "/"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Any) -> "SortDirection":
        """Permissive parse: anything that is not DESC sorts ascending."""
        if isinstance(value, SortDirection):
            return value
        if isinstance(value, str) and value.strip().upper() == "DESC":
            return cls.DESC
        return cls.ASC


class Command(BaseModel):
    """One sub-command of a batch submission."""

    key: str
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("key", "method")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value


class Cursor(BaseModel):
    """Boundary of an ID-cursor walk.

    ``last_key`` is None before the first page has been read.
    """

    last_key: int | None = None
    direction: SortDirection = SortDirection.DESC

    def advances_to(self, boundary: int) -> bool:
        if self.last_key is None:
            return True
        if self.direction is SortDirection.DESC:
            return boundary < self.last_key
        return boundary > self.last_key

    @property
    def operator(self) -> str:
        """Strict filter operator that selects records past the boundary."""
        return "<" if self.direction is SortDirection.DESC else ">"


class ListResponse(BaseModel):
    items: list[dict[str, Any]] = Field(default_factory=list)
    next: int | None = None
    total: int | None = None


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int | None = None
    total_pages: int | None = None
    has_next: bool = False


class ListPage(BaseModel):
    """One page of a paginated list, as returned by ``list()`` operations."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination


class TreeNode(BaseModel):
    """Source node of a tree replication (parent_id 0 means root)."""

    model_config = ConfigDict(frozen=True)

    source_id: int = Field(..., gt=0)
    parent_id: int = Field(0, ge=0)
    title: str = Field(..., min_length=1)
    sort_index: int = 0


class CreatedNode(BaseModel):
    """Audit record of one node created by a tree replication."""

    source_id: int
    created_id: int
    parent_id: int
    title: str
