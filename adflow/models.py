"""
Pydantic Models - caller identity, API payloads and status vocabularies
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .errors import ValidationError

GroupStatus = Literal[
    "new", "blocked", "briefed", "designed", "reviewed",
    "pending", "ready", "archived", "locked", "done",
]
AssetStatus = Literal["pending", "ready", "approved", "rejected", "edit_requested", "archived"]
KanbanColumn = Literal["blocked", "briefed", "reviewed", "designed", "done", "new"]

GROUP_STATUSES = (
    "new", "blocked", "briefed", "designed", "reviewed",
    "pending", "ready", "archived", "locked", "done",
)
ASSET_STATUSES = ("pending", "ready", "approved", "rejected", "edit_requested", "archived")
KANBAN_COLUMNS = ("new", "blocked", "briefed", "designed", "reviewed", "done")


class CurrentUser(BaseModel):
    """Caller identity, passed explicitly into every service that writes."""
    id: str
    role: str = ""
    brandCodes: List[str] = Field(default_factory=list)
    agencyId: Optional[str] = None
    displayName: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "CurrentUser":
        brand_codes = claims.get("brandCodes") or []
        if isinstance(brand_codes, str):
            brand_codes = [brand_codes]
        return cls(
            id=claims.get("uid") or claims.get("user_id") or "",
            role=(claims.get("role") or "").lower(),
            brandCodes=list(brand_codes),
            agencyId=claims.get("agencyId"),
            displayName=claims.get("name") or claims.get("email"),
        )


# === Request / Response Models ===

class ConfirmRequest(BaseModel):
    confirmed: bool = False


class StatusSummary(BaseModel):
    groupId: str
    storedStatus: str
    resolvedStatus: str
    kanbanColumn: str
    unitCount: int
    statusCounts: Dict[str, int]
    recipeStatuses: Dict[str, str] = Field(default_factory=dict)
    reviewVersion: str
    reviewType: str


# === Utility Functions ===

def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def validate_group_status(value: Any) -> str:
    if value not in GROUP_STATUSES:
        raise ValidationError(f"Unknown ad group status: {value!r}")
    return value


def validate_asset_status(value: Any) -> str:
    if value not in ASSET_STATUSES:
        raise ValidationError(f"Unknown asset status: {value!r}")
    return value
