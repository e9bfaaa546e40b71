import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..errors import NotFoundError, PartialStateError, StoreError
from ..firebase_client import Collections
from ..models import utc_now
from ..store import DocumentStore
from .group_status import resolve_group_status
from .persistence import update_after_commit
from .status_counts import summarize_by_recipe

logger = logging.getLogger(__name__)

# Statuses reconcile may overwrite; every other status was set by a person or
# a workflow action and stays until one of those changes it.
DERIVED_GROUP_STATUSES = {None, "", "pending", "ready", "reviewed"}


@dataclass
class ReconcileResult:
    group_id: str
    status: str
    changed: bool
    update: Dict[str, Any] = field(default_factory=dict)
    project_synced: bool = False


def build_group_update(group: Dict[str, Any], assets: List[Dict[str, Any]], has_recipes: bool) -> Dict[str, Any]:
    """Fields of ``group`` that no longer match what its assets imply."""
    summary = summarize_by_recipe(assets)
    desired: Dict[str, Any] = summary.to_group_fields()
    desired["assetCount"] = len(assets)
    if not group.get("thumbnailUrl") and summary.thumbnail:
        desired["thumbnailUrl"] = summary.thumbnail

    current_status = group.get("status")
    new_status = resolve_group_status(
        assets,
        has_recipes,
        current_status == "designed",
        current_status,
    )
    if current_status in DERIVED_GROUP_STATUSES and new_status != current_status:
        desired["status"] = new_status

    return {key: value for key, value in desired.items() if group.get(key) != value}


async def reconcile_group(store: DocumentStore, group_id: str) -> ReconcileResult:
    """
    Persist the counters and status derived from a group's assets.

    Writes only the fields that changed. A status change is mirrored to the
    linked project document as a second write.
    """
    group_path = Collections.ad_group(group_id)
    group = store.get_document(group_path)
    if group is None:
        raise NotFoundError(f"Ad group {group_id} not found")

    assets = store.list_children(Collections.assets(group_id))
    recipes = store.list_children(Collections.recipes(group_id))

    update = build_group_update(group, assets, bool(recipes))
    status = update.get("status", group.get("status"))
    if not update:
        return ReconcileResult(group_id=group_id, status=status, changed=False)

    update["lastUpdated"] = utc_now()
    store.update_document(group_path, update)
    logger.info(f"[reconcile] group {group_id} updated: {sorted(k for k in update if k != 'lastUpdated')}")

    project_synced = False
    project_id = group.get("projectId")
    if "status" in update and project_id:
        await update_after_commit(
            store,
            group_id,
            Collections.project(project_id),
            {"status": update["status"]},
            max_attempts=1,
        )
        project_synced = True

    return ReconcileResult(
        group_id=group_id,
        status=status,
        changed=True,
        update=update,
        project_synced=project_synced,
    )


def watch_group(
    store: DocumentStore,
    group_id: str,
    on_change: Optional[Callable[[ReconcileResult], None]] = None,
) -> Callable[[], None]:
    """
    Reconcile ``group_id`` whenever its assets change.

    Returns the unsubscribe callable. The callback runs on the listener's
    thread, so each reconcile gets its own event loop.
    """
    def _handle(_assets: List[Dict[str, Any]]) -> None:
        try:
            result = asyncio.run(reconcile_group(store, group_id))
        except (StoreError, NotFoundError, PartialStateError) as exc:
            logger.error(f"[reconcile] live update for group {group_id} failed: {exc}")
            return
        if on_change is not None:
            on_change(result)

    return store.subscribe(Collections.assets(group_id), _handle)
