# tracesdk/core/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from tracesdk.core.errors import PaginationArgumentError

if TYPE_CHECKING:
    from tracesdk.chain.link import TraceLink


class TraceLinkType(str, Enum):
    """Ownership / transfer phase of a trace (the link process state)."""
    OWNED = "OWNED"
    PUSHING = "PUSHING"
    PULLING = "PULLING"


class TraceActionType(str, Enum):
    ATTESTATION = "_ATTESTATION_"
    PUSH_OWNERSHIP = "_PUSH_OWNERSHIP_"
    PULL_OWNERSHIP = "_PULL_OWNERSHIP_"
    ACCEPT_TRANSFER = "_ACCEPT_TRANSFER_"
    CANCEL_TRANSFER = "_CANCEL_TRANSFER_"
    REJECT_TRANSFER = "_REJECT_TRANSFER_"


class TraceStageType(str, Enum):
    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"
    BACKLOG = "BACKLOG"
    ATTESTATION = "ATTESTATION"


@dataclass(frozen=True)
class FileInfo:
    """What a file wrapper knows about itself before upload."""
    mimetype: str
    size: int
    name: str
    key: Optional[str] = None               # base64 AES key when encrypted
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class PaginationInfo:
    """
    Cursor arguments for paginated reads. Use either the forward pair
    (first / after) or the backward pair (last / before), never both.
    """
    first: Optional[int] = None
    after: Optional[str] = None
    last: Optional[int] = None
    before: Optional[str] = None

    def validate(self) -> "PaginationInfo":
        forward = self.first is not None or self.after is not None
        backward = self.last is not None or self.before is not None
        if forward and backward:
            raise PaginationArgumentError(
                "Pagination arguments first/after cannot be mixed with last/before"
            )
        for name in ("first", "last"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise PaginationArgumentError(f"'{name}' must be a positive integer")
        return self

    def to_variables(self) -> Dict[str, Any]:
        return {k: v for k, v in (
            ("first", self.first),
            ("after", self.after),
            ("last", self.last),
            ("before", self.before),
        ) if v is not None}


@dataclass(frozen=True)
class PageInfo:
    has_next: bool = False
    has_previous: bool = False
    start_cursor: Optional[str] = None
    end_cursor: Optional[str] = None

    @classmethod
    def from_response(cls, info: Optional[Dict[str, Any]]) -> "PageInfo":
        info = info or {}
        return cls(
            has_next=bool(info.get("hasNext", False)),
            has_previous=bool(info.get("hasPrevious", False)),
            start_cursor=info.get("startCursor"),
            end_cursor=info.get("endCursor"),
        )


@dataclass(frozen=True)
class TraceState:
    """
    Derived, read-only view of a trace. ``head_link`` is the canonical
    stored form returned by the service and can be passed back as
    ``prev_link`` to chain the next write without a head lookup.
    """
    trace_id: str
    head_link: "TraceLink"
    updated_at: Optional[datetime]
    updated_by: Optional[str]
    updated_by_group: Optional[str]
    data: Any = None
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TraceDetails:
    links: List["TraceLink"]
    total_count: int
    info: PageInfo


@dataclass(frozen=True)
class TracesState:
    traces: List[TraceState]
    total_count: int
    info: PageInfo
