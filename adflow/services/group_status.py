from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..models import KANBAN_COLUMNS, GroupStatus, KanbanColumn
from .status_counts import iter_assets, asset_status

REVIEWED_ASSET_STATUSES = {"approved", "rejected", "edit_requested", "archived"}
DONE_ELIGIBLE_STATUSES = {"approved", "rejected", "archived"}
KANBAN_PASSTHROUGH = ("blocked", "briefed", "reviewed", "designed", "done")


def resolve_group_status(
    assets: Optional[Iterable[Any]],
    has_recipes: bool = False,
    was_designed: bool = False,
    current_status: Optional[str] = None,
) -> GroupStatus:
    """
    Next lifecycle status of an ad group from its assets.

    ``archived`` and ``locked`` are terminal and returned unchanged. Otherwise
    any ``ready`` asset makes the group ``ready``; a non-empty group whose
    assets have all been reviewed is ``reviewed``; anything else is ``pending``.

    ``has_recipes`` and ``was_designed`` do not affect the result.
    """
    if current_status == "archived":
        return "archived"
    if current_status == "locked":
        return "locked"

    statuses = [asset_status(asset) for asset in iter_assets(assets)]
    if "ready" in statuses:
        return "ready"
    if statuses and all(status in REVIEWED_ASSET_STATUSES for status in statuses):
        return "reviewed"
    return "pending"


def resolve_finalize_status(assets: Optional[Iterable[Any]]) -> GroupStatus:
    """Status a group moves to when a reviewer finalizes the review."""
    statuses = [(asset.get("status") or "").strip().lower() for asset in iter_assets(assets)]
    if not statuses:
        return "reviewed"
    if "edit_requested" in statuses:
        return "designed"
    if all(status in DONE_ELIGIBLE_STATUSES for status in statuses):
        return "done"
    return "reviewed"


def _count(counts: Mapping[str, Any], key: str) -> int:
    try:
        return int(counts.get(key) or 0)
    except (TypeError, ValueError):
        return 0


def resolve_kanban_column(group: Optional[Mapping[str, Any]]) -> KanbanColumn:
    """
    Kanban column for a group summary ``{status, assetCount, counts}``.

    Outstanding edit requests do not move a group out of ``designed``.
    """
    group = group or {}
    status = group.get("status")
    if status in KANBAN_PASSTHROUGH:
        return status

    asset_count = _count(group, "assetCount")
    if asset_count == 0:
        return "new"

    counts = group.get("counts") or {}
    if not isinstance(counts, Mapping):
        counts = {}
    finished = _count(counts, "approved") + _count(counts, "archived") + _count(counts, "rejected")
    if finished >= asset_count:
        return "done"
    return "designed"


def kanban_summary(group: Mapping[str, Any]) -> Dict[str, Any]:
    """Shape a stored group document into the input of ``resolve_kanban_column``."""
    return {
        "status": group.get("status"),
        "assetCount": _count(group, "assetCount"),
        "counts": {
            "approved": _count(group, "approvedCount"),
            "archived": _count(group, "archivedCount"),
            "rejected": _count(group, "rejectedCount"),
            "edit": _count(group, "editCount"),
        },
    }


def build_kanban_board(groups: Iterable[Mapping[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    board: Dict[str, List[Dict[str, Any]]] = {column: [] for column in KANBAN_COLUMNS}
    for group in groups:
        column = resolve_kanban_column(kanban_summary(group))
        board[column].append(dict(group))
    return board
