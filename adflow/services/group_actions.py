import logging
from typing import Any, Dict

from ..errors import ConfirmationRequired, NotFoundError
from ..firebase_client import Collections
from ..models import CurrentUser, utc_now, validate_asset_status, validate_group_status
from ..store import DocumentStore, WriteOp
from .group_status import resolve_finalize_status
from .persistence import update_after_commit

logger = logging.getLogger(__name__)


def _require_group(store: DocumentStore, group_id: str) -> Dict[str, Any]:
    group = store.get_document(Collections.ad_group(group_id))
    if group is None:
        raise NotFoundError(f"Ad group {group_id} not found")
    return group


async def _mirror_to_project(store: DocumentStore, group_id: str, group: Dict[str, Any], status: str):
    project_id = group.get("projectId")
    if not project_id:
        return
    await update_after_commit(
        store,
        group_id,
        Collections.project(project_id),
        {"status": status},
        max_attempts=1,
    )


async def archive_group(store: DocumentStore, group_id: str, actor: CurrentUser, *, confirmed: bool = False) -> Dict[str, Any]:
    if not confirmed:
        raise ConfirmationRequired("Archive this group?")
    _require_group(store, group_id)

    update = {
        "status": validate_group_status("archived"),
        "archivedAt": utc_now(),
        "archivedBy": actor.id or None,
    }
    store.update_document(Collections.ad_group(group_id), update)
    logger.info(f"[group] {group_id} archived by {actor.id}")
    return update


async def restore_group(store: DocumentStore, group_id: str, actor: CurrentUser, *, confirmed: bool = False) -> Dict[str, Any]:
    if not confirmed:
        raise ConfirmationRequired("Restore this group?")
    _require_group(store, group_id)

    update = {
        "status": validate_group_status("new"),
        "archivedAt": None,
        "archivedBy": None,
    }
    store.update_document(Collections.ad_group(group_id), update)
    logger.info(f"[group] {group_id} restored by {actor.id}")
    return update


async def reset_group(store: DocumentStore, group_id: str, actor: CurrentUser, *, confirmed: bool = False) -> Dict[str, Any]:
    """Send every asset back to pending and the group back to new, atomically."""
    if not confirmed:
        raise ConfirmationRequired("Reset this group to New?")
    _require_group(store, group_id)

    assets = store.list_children(Collections.assets(group_id))
    now = utc_now()
    ops = [
        WriteOp.update(
            Collections.asset(group_id, asset["id"]),
            {
                "status": validate_asset_status("pending"),
                "lastUpdatedBy": None,
                "lastUpdatedAt": now,
            },
        )
        for asset in assets
    ]
    group_update = {"status": validate_group_status("new")}
    ops.append(WriteOp.update(Collections.ad_group(group_id), group_update))
    store.batch_write(ops)
    logger.info(f"[group] {group_id} reset by {actor.id} ({len(assets)} assets)")
    return {**group_update, "assetCount": len(assets)}


async def set_group_status(store: DocumentStore, group_id: str, status: Any, actor: CurrentUser) -> Dict[str, Any]:
    """Manual status change; rejects values outside the workflow enum."""
    status = validate_group_status(status)
    group = _require_group(store, group_id)

    update = {"status": status, "lastUpdated": utc_now()}
    store.update_document(Collections.ad_group(group_id), update)
    logger.info(f"[group] {group_id} status {group.get('status')} -> {status} by {actor.id}")
    await _mirror_to_project(store, group_id, group, status)
    return update


async def finalize_review(store: DocumentStore, group_id: str, actor: CurrentUser) -> Dict[str, Any]:
    """Close a review round; the group moves on according to what reviewers decided."""
    group = _require_group(store, group_id)
    assets = store.list_children(Collections.assets(group_id))
    status = resolve_finalize_status(assets)

    update = {
        "status": status,
        "reviewedBy": actor.id or None,
        "lastUpdated": utc_now(),
    }
    store.update_document(Collections.ad_group(group_id), update)
    logger.info(f"[group] {group_id} review finalized by {actor.id}: {status}")
    await _mirror_to_project(store, group_id, group, status)
    return update
