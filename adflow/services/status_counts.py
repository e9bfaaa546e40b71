from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..models import ASSET_STATUSES, AssetStatus
from .filenames import parse_ad_filename

UNKNOWN_RECIPE = "unknown"

# Higher wins when several assets share a recipe.
RECIPE_STATUS_PRIORITY = {
    "approved": 3,
    "edit_requested": 2,
    "rejected": 1,
}


@dataclass
class StatusAggregate:
    unit_count: int
    status_counts: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {'unitCount': self.unit_count, 'statusCounts': dict(self.status_counts)}


@dataclass
class CounterSummary:
    reviewed: int = 0
    approved: int = 0
    edit: int = 0
    rejected: int = 0
    archived: int = 0
    thumbnail: str = ""

    def to_group_fields(self) -> Dict[str, int]:
        return {
            'reviewedCount': self.reviewed,
            'approvedCount': self.approved,
            'editCount': self.edit,
            'rejectedCount': self.rejected,
            'archivedCount': self.archived,
        }


@dataclass
class _RecipeEntry:
    statuses: set = field(default_factory=set)
    active: set = field(default_factory=set)


def as_asset_dict(raw: Any) -> Optional[Dict[str, Any]]:
    """Accept plain dicts or Firestore snapshots."""
    if not raw:
        return None
    if hasattr(raw, "to_dict") and not isinstance(raw, Mapping):
        data = dict(raw.to_dict() or {})
        data.setdefault("id", getattr(raw, "id", None))
        return data
    if isinstance(raw, Mapping):
        return dict(raw)
    return None


def iter_assets(assets: Optional[Iterable[Any]]) -> Iterable[Dict[str, Any]]:
    for raw in assets or []:
        asset = as_asset_dict(raw)
        if asset is not None:
            yield asset


def asset_status(asset: Mapping[str, Any]) -> AssetStatus:
    status = asset.get("status")
    return status if status in ASSET_STATUSES else "pending"


def recipe_code_for(asset: Mapping[str, Any]) -> str:
    code = asset.get("recipeCode")
    if code:
        return str(code)
    parsed = parse_ad_filename(asset.get("filename") or "").recipe_code
    return parsed or UNKNOWN_RECIPE


def empty_status_counts() -> Dict[str, int]:
    return {status: 0 for status in ASSET_STATUSES}


def aggregate_status_counts(assets: Optional[Iterable[Any]], recipe_ids: Optional[List[str]] = None) -> StatusAggregate:
    """
    Tally assets by status and count ad units.

    ``unit_count`` is the number of explicit recipes when any exist, else the
    number of distinct recipe codes seen on the assets (``unknown`` included).
    """
    counts = empty_status_counts()
    codes = set()

    for asset in iter_assets(assets):
        counts[asset_status(asset)] += 1
        codes.add(recipe_code_for(asset))

    recipe_ids = [r for r in (recipe_ids or []) if r is not None]
    unit_count = len(recipe_ids) if recipe_ids else len(codes)
    return StatusAggregate(unit_count=unit_count, status_counts=counts)


def _fold_recipe(entry: _RecipeEntry) -> str:
    if entry.statuses and entry.statuses == {"archived"}:
        return "archived"
    if "edit_requested" in entry.statuses:
        return "edit_requested"
    if "rejected" in entry.statuses:
        return "rejected"
    if not entry.active:
        return "pending"
    if entry.active == {"approved"}:
        return "approved"
    return "pending"


def recipe_status_map(assets: Optional[Iterable[Any]]) -> Dict[str, str]:
    """Roll every recipe's assets up into a single status."""
    entries: Dict[str, _RecipeEntry] = {}
    for asset in iter_assets(assets):
        status = asset_status(asset)
        if status == "ready":
            status = "pending"
        entry = entries.setdefault(recipe_code_for(asset), _RecipeEntry())
        entry.statuses.add(status)
        if status != "archived":
            entry.active.add(status)
    return {code: _fold_recipe(entry) for code, entry in entries.items()}


def _thumbnail_of(asset: Mapping[str, Any]) -> str:
    return asset.get("thumbnailUrl") or asset.get("firebaseUrl") or ""


def summarize_ad_units(assets: Optional[Iterable[Any]]) -> CounterSummary:
    summary = CounterSummary()
    for asset in iter_assets(assets):
        if not summary.thumbnail:
            summary.thumbnail = _thumbnail_of(asset)
        status = asset.get("status")
        if status == "archived":
            summary.archived += 1
            continue
        if status != "ready":
            summary.reviewed += 1
        if status == "approved":
            summary.approved += 1
        elif status == "edit_requested":
            summary.edit += 1
        elif status == "rejected":
            summary.rejected += 1
    return summary


def summarize_by_recipe(assets: Optional[Iterable[Any]]) -> CounterSummary:
    """Counters per recipe; each recipe reports its highest-priority status."""
    summary = CounterSummary()
    best: Dict[str, str] = {}
    for asset in iter_assets(assets):
        if not summary.thumbnail:
            summary.thumbnail = _thumbnail_of(asset)
        status = asset.get("status") or ""
        if status == "archived":
            summary.archived += 1
        code = recipe_code_for(asset)
        if code == UNKNOWN_RECIPE:
            continue
        previous = best.get(code)
        if previous is None or RECIPE_STATUS_PRIORITY.get(status, 0) > RECIPE_STATUS_PRIORITY.get(previous, 0):
            best[code] = status

    for status in best.values():
        if status != "ready":
            summary.reviewed += 1
        if status == "approved":
            summary.approved += 1
        elif status == "edit_requested":
            summary.edit += 1
        elif status == "rejected":
            summary.rejected += 1
    return summary
