import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..dependencies import EDITING_ROLES, get_current_user, get_store, require_role
from ..errors import (
    AdflowError,
    ConfirmationRequired,
    NotFoundError,
    PartialStateError,
    StoreError,
    ValidationError,
)
from ..firebase_client import Collections
from ..models import ConfirmRequest, CurrentUser, StatusSummary
from ..redis_client import board_cache
from ..services import group_actions
from ..services.group_status import build_kanban_board, kanban_summary, resolve_group_status, resolve_kanban_column
from ..services.reconcile import reconcile_group
from ..services.review_version import normalize_review_version, review_type_label
from ..services.scrubber import scrub_review_history, undo_scrub_review_history
from ..services.status_counts import aggregate_status_counts, recipe_status_map, summarize_by_recipe
from ..store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/ad-groups",
    tags=["Ad Groups"],
)


class StatusChange(BaseModel):
    status: str


# --- Helper Functions ---
def _raise_http(exc: AdflowError, action: str):
    """Translate service errors into HTTP responses."""
    if isinstance(exc, ConfirmationRequired):
        raise HTTPException(status_code=409, detail={"confirmationRequired": True, "prompt": exc.prompt})
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PartialStateError):
        # the batch is committed, so cached boards are already stale
        _invalidate_board()
        logger.error(f"{action} left group {exc.group_id} partially updated: {exc}")
        raise HTTPException(
            status_code=502,
            detail={"message": str(exc), "pendingUpdate": {"path": exc.path, **{k: str(v) for k, v in exc.pending_update.items()}}},
        )
    if isinstance(exc, StoreError):
        logger.error(f"{action} failed: {exc}")
        raise HTTPException(status_code=503, detail=f"Failed to {action}: {exc}")
    raise HTTPException(status_code=500, detail=f"Failed to {action}: {exc}")


def _check_brand_access(current_user: CurrentUser, brand_code: Optional[str]):
    """Admins see every brand; everyone else only the brands on their token."""
    if current_user.role == "admin":
        return
    if not brand_code or brand_code not in current_user.brandCodes:
        raise HTTPException(status_code=403, detail="No access to this brand")


def _invalidate_board():
    board_cache.invalidate()


def _load_group(store: DocumentStore, group_id: str, current_user: CurrentUser) -> Dict[str, Any]:
    group = store.get_document(Collections.ad_group(group_id))
    if group is None:
        raise HTTPException(status_code=404, detail="Ad group not found")
    _check_brand_access(current_user, group.get("brandCode"))
    return group


# --- Endpoints ---

@router.get("/review-version")
async def get_review_version(value: Optional[str] = Query(None, description="Stored review type")):
    """Normalize a stored review type."""
    return {"reviewVersion": normalize_review_version(value), "label": review_type_label(value)}


@router.get("/board")
async def get_board(
    brandCode: Optional[str] = Query(None, description="Restrict the board to one brand"),
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """Ad groups bucketed into kanban columns."""
    if brandCode:
        _check_brand_access(current_user, brandCode)
    elif current_user.role != "admin":
        raise HTTPException(status_code=400, detail="brandCode is required")

    cached = board_cache.get_board(brandCode)
    if cached is not None:
        logger.debug(f"Board cache HIT: {brandCode or 'all brands'}")
        return cached

    try:
        groups = store.list_children(Collections.ad_groups())
    except StoreError as e:
        _raise_http(e, "load board")

    if brandCode:
        groups = [g for g in groups if g.get("brandCode") == brandCode]
    board = build_kanban_board(groups)
    payload = {
        "columns": {column: [g["id"] for g in items] for column, items in board.items()},
        "total": len(groups),
    }
    board_cache.put_board(brandCode, payload)
    return payload


@router.get("/{group_id}/status", response_model=StatusSummary)
async def get_group_status(
    group_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """Derived status of a group next to what is stored."""
    try:
        group = _load_group(store, group_id, current_user)
        assets = store.list_children(Collections.assets(group_id))
        recipes = store.list_children(Collections.recipes(group_id))
    except StoreError as e:
        _raise_http(e, "load ad group")

    stored_status = group.get("status") or "new"
    aggregate = aggregate_status_counts(assets, [r["id"] for r in recipes])
    summary = summarize_by_recipe(assets)
    column = resolve_kanban_column(kanban_summary({
        **group,
        **summary.to_group_fields(),
        "assetCount": len(assets),
    }))

    return StatusSummary(
        groupId=group_id,
        storedStatus=stored_status,
        resolvedStatus=resolve_group_status(
            assets,
            bool(recipes),
            stored_status == "designed",
            stored_status,
        ),
        kanbanColumn=column,
        unitCount=aggregate.unit_count,
        statusCounts=aggregate.status_counts,
        recipeStatuses=recipe_status_map(assets),
        reviewVersion=normalize_review_version(group.get("reviewVersion")),
        reviewType=review_type_label(group.get("reviewVersion")),
    )


@router.post("/{group_id}/reconcile")
async def reconcile(
    group_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """Write derived counters and status back to the group."""
    try:
        _load_group(store, group_id, current_user)
        result = await reconcile_group(store, group_id)
    except AdflowError as e:
        _raise_http(e, "reconcile ad group")

    if result.changed:
        _invalidate_board()
    return {
        "success": True,
        "status": result.status,
        "changed": result.changed,
        "updatedFields": sorted(k for k in result.update if k != "lastUpdated"),
        "projectSynced": result.project_synced,
    }


@router.post("/{group_id}/scrub")
async def scrub(
    group_id: str,
    body: ConfirmRequest,
    current_user: CurrentUser = Depends(require_role(EDITING_ROLES)),
    store: DocumentStore = Depends(get_store),
):
    """Collapse the group's review history into one version per recipe."""
    try:
        _load_group(store, group_id, current_user)
        result = await scrub_review_history(store, group_id, confirmed=body.confirmed, actor=current_user)
    except AdflowError as e:
        _raise_http(e, "scrub review history")

    _invalidate_board()
    return {
        "success": True,
        "status": result.status,
        "representatives": result.representatives,
        "deletedAssetIds": result.deleted_asset_ids,
        "historyEntriesDeleted": result.history_entries_deleted,
    }


@router.post("/{group_id}/undo-scrub")
async def undo_scrub(
    group_id: str,
    current_user: CurrentUser = Depends(require_role(EDITING_ROLES)),
    store: DocumentStore = Depends(get_store),
):
    """Restore revision chains archived by earlier scrubs."""
    try:
        _load_group(store, group_id, current_user)
        result = await undo_scrub_review_history(store, group_id)
    except AdflowError as e:
        _raise_http(e, "undo scrub")

    _invalidate_board()
    return {"success": True, **asdict(result)}


@router.post("/{group_id}/archive")
async def archive(
    group_id: str,
    body: ConfirmRequest,
    current_user: CurrentUser = Depends(require_role(EDITING_ROLES)),
    store: DocumentStore = Depends(get_store),
):
    try:
        _load_group(store, group_id, current_user)
        update = await group_actions.archive_group(store, group_id, current_user, confirmed=body.confirmed)
    except AdflowError as e:
        _raise_http(e, "archive ad group")

    _invalidate_board()
    return {"success": True, "status": update["status"]}


@router.post("/{group_id}/restore")
async def restore(
    group_id: str,
    body: ConfirmRequest,
    current_user: CurrentUser = Depends(require_role(EDITING_ROLES)),
    store: DocumentStore = Depends(get_store),
):
    try:
        _load_group(store, group_id, current_user)
        update = await group_actions.restore_group(store, group_id, current_user, confirmed=body.confirmed)
    except AdflowError as e:
        _raise_http(e, "restore ad group")

    _invalidate_board()
    return {"success": True, "status": update["status"]}


@router.post("/{group_id}/reset")
async def reset(
    group_id: str,
    body: ConfirmRequest,
    current_user: CurrentUser = Depends(require_role(EDITING_ROLES)),
    store: DocumentStore = Depends(get_store),
):
    try:
        _load_group(store, group_id, current_user)
        update = await group_actions.reset_group(store, group_id, current_user, confirmed=body.confirmed)
    except AdflowError as e:
        _raise_http(e, "reset ad group")

    _invalidate_board()
    return {"success": True, **update}


@router.post("/{group_id}/finalize")
async def finalize(
    group_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    """Close the current review round."""
    try:
        _load_group(store, group_id, current_user)
        update = await group_actions.finalize_review(store, group_id, current_user)
    except AdflowError as e:
        _raise_http(e, "finalize review")

    _invalidate_board()
    return {"success": True, "status": update["status"]}


@router.patch("/{group_id}/status")
async def change_status(
    group_id: str,
    body: StatusChange,
    current_user: CurrentUser = Depends(require_role(EDITING_ROLES)),
    store: DocumentStore = Depends(get_store),
):
    try:
        _load_group(store, group_id, current_user)
        await group_actions.set_group_status(store, group_id, body.status, current_user)
    except AdflowError as e:
        _raise_http(e, "change ad group status")

    _invalidate_board()
    return {"success": True, "status": body.status}
