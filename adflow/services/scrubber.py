"""
Review-history scrub for an ad group.

A scrub collapses every chain of asset revisions (linked through
``parentAdId``) into a single live asset, snapshots each member under
``scrubbedHistory/{rootId}/assets`` and clears the per-asset review history.
All of it is one atomic batch; the group status follows as a separate write.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..errors import NotFoundError, ScrubConfirmationRequired
from ..firebase_client import Collections
from ..models import AssetStatus, CurrentUser, utc_now
from ..store import DocumentStore, WriteOp
from .filenames import get_version, strip_version
from .group_status import resolve_group_status
from .persistence import update_after_commit
from .status_counts import asset_status

logger = logging.getLogger(__name__)

SCRUB_CONFIRM_PROMPT = (
    "One or more ads are pending or have an active edit request. "
    "Would you still like to scrub them?"
)
UNRESOLVED_STATUSES = {"pending", "edit_requested"}


@dataclass
class AssetChain:
    root_id: str
    members: List[Dict[str, Any]]
    terminal: Dict[str, Any]

    @property
    def superseded(self) -> List[Dict[str, Any]]:
        return [a for a in self.members if a["id"] != self.terminal["id"]]


@dataclass
class ScrubResult:
    group_id: str
    status: Optional[str]
    representatives: Dict[str, str] = field(default_factory=dict)
    deleted_asset_ids: List[str] = field(default_factory=list)
    history_entries_deleted: int = 0
    assets: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class UndoScrubResult:
    group_id: str
    status: Optional[str]
    restored_asset_ids: List[str] = field(default_factory=list)
    roots: List[str] = field(default_factory=list)


def has_unresolved_work(assets: Iterable[Dict[str, Any]]) -> bool:
    return any(a.get("status") in UNRESOLVED_STATUSES for a in assets)


def scrubbed_asset_status(status: Any) -> AssetStatus:
    """Status the surviving asset of a chain carries after a scrub."""
    if status in ("rejected", "archived"):
        return "archived"
    return "ready"


def _chain_root(asset: Dict[str, Any], by_id: Dict[str, Dict[str, Any]]) -> str:
    path = [asset["id"]]
    current = asset
    while True:
        parent_id = current.get("parentAdId")
        if not parent_id:
            return current["id"]
        if parent_id in path:
            # cycle: pick a root every member agrees on
            return min(path[path.index(parent_id):])
        parent = by_id.get(parent_id)
        if parent is None:
            return parent_id
        path.append(parent_id)
        current = parent


def _pick_terminal(members: List[Dict[str, Any]]) -> Dict[str, Any]:
    member_ids = {a["id"] for a in members}
    referenced = {
        a.get("parentAdId") for a in members
        if a.get("parentAdId") in member_ids and a.get("parentAdId") != a["id"]
    }
    candidates = [a for a in members if a["id"] not in referenced] or members
    return sorted(candidates, key=lambda a: (-get_version(a), a["id"]))[0]


def _archive_root(root_id: str, members: List[Dict[str, Any]]) -> str:
    root = next((a for a in members if a["id"] == root_id), None)
    if root is not None and root.get("scrubbedFrom"):
        return root["scrubbedFrom"]
    return root_id


def build_chains(assets: Iterable[Dict[str, Any]]) -> List[AssetChain]:
    """
    Group assets into revision chains.

    A chain is keyed by its root asset id, or by the root it was scrubbed from
    when that root is the survivor of an earlier scrub, so repeated scrubs of
    one lineage share a single archive entry.
    """
    assets = [a for a in assets if a and a.get("id")]
    by_id = {a["id"]: a for a in assets}
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for asset in assets:
        grouped.setdefault(_chain_root(asset, by_id), []).append(asset)

    keyed: Dict[str, List[Dict[str, Any]]] = {}
    for root_id in sorted(grouped):
        members = grouped[root_id]
        key = _archive_root(root_id, members)
        if key in keyed or (key != root_id and key in grouped):
            key = root_id
        keyed[key] = members

    chains = []
    for key in sorted(keyed):
        members = sorted(keyed[key], key=lambda a: (get_version(a), a["id"]))
        chains.append(AssetChain(root_id=key, members=members, terminal=_pick_terminal(members)))
    return chains


def _snapshot_payload(asset: Dict[str, Any], scrubbed_at) -> Dict[str, Any]:
    payload = {k: v for k, v in asset.items() if k != "id"}
    payload["scrubbedAt"] = scrubbed_at
    return payload


def representative_update(chain: AssetChain) -> Dict[str, Any]:
    terminal = chain.terminal
    update: Dict[str, Any] = {
        "version": 1,
        "parentAdId": None,
        "scrubbedFrom": chain.root_id,
        "status": scrubbed_asset_status(asset_status(terminal)),
    }
    filename = terminal.get("filename")
    if filename:
        stripped = strip_version(filename)
        if stripped != filename:
            update["filename"] = stripped
    return update


def plan_scrub(
    group_id: str,
    chains: List[AssetChain],
    history_ids: Dict[str, List[str]],
    *,
    scrubbed_at=None,
    actor: Optional[CurrentUser] = None,
    archived: Optional[Dict[str, Dict[str, Any]]] = None,
):
    """
    Build the batch for a scrub.

    ``archived`` maps chain roots that already have an archive entry to that
    entry's ``assetIds`` and the ids of its stored snapshots. Those snapshots
    hold the state before the first scrub and are never overwritten.

    Returns ``(ops, live_assets)`` where ``live_assets`` is what the group's
    assets collection will contain once the batch commits.
    """
    scrubbed_at = scrubbed_at or utc_now()
    ops: List[WriteOp] = []
    live_assets: List[Dict[str, Any]] = []
    archived = archived or {}

    for chain in chains:
        previous = archived.get(chain.root_id, {})
        kept_snapshots = previous.get("snapshots", set())
        asset_ids = list(previous.get("assetIds", []))
        asset_ids += [a["id"] for a in chain.members if a["id"] not in asset_ids]
        ops.append(WriteOp.set(
            Collections.scrubbed_root(group_id, chain.root_id),
            {
                "representativeId": chain.terminal["id"],
                "assetIds": asset_ids,
                "scrubbedAt": scrubbed_at,
                "scrubbedBy": actor.id if actor else None,
            },
        ))
        for asset in chain.members:
            if asset["id"] not in kept_snapshots:
                ops.append(WriteOp.set(
                    Collections.scrubbed_asset(group_id, chain.root_id, asset["id"]),
                    _snapshot_payload(asset, scrubbed_at),
                ))
            for entry_id in history_ids.get(asset["id"], []):
                ops.append(WriteOp.delete(f"{Collections.asset_history(group_id, asset['id'])}/{entry_id}"))

        for asset in chain.superseded:
            ops.append(WriteOp.delete(Collections.asset(group_id, asset["id"])))

        update = representative_update(chain)
        ops.append(WriteOp.update(Collections.asset(group_id, chain.terminal["id"]), update))
        live_assets.append({**chain.terminal, **update})

    return ops, live_assets


def _existing_archives(store: DocumentStore, group_id: str, chains: List[AssetChain]) -> Dict[str, Dict[str, Any]]:
    """Archive entries left by earlier scrubs for the roots about to be scrubbed again."""
    roots = {chain.root_id for chain in chains}
    archived: Dict[str, Dict[str, Any]] = {}
    for marker in store.list_children(Collections.scrubbed_history(group_id)):
        if marker["id"] not in roots:
            continue
        snapshots = store.list_children(Collections.scrubbed_assets(group_id, marker["id"]))
        archived[marker["id"]] = {
            "assetIds": list(marker.get("assetIds") or []),
            "snapshots": {snap["id"] for snap in snapshots},
        }
    return archived


def scrubbed_group_status(live_assets: List[Dict[str, Any]]) -> str:
    if all(a.get("status") == "archived" for a in live_assets):
        return "done"
    return "ready"


async def scrub_review_history(
    store: DocumentStore,
    group_id: str,
    *,
    confirmed: bool = False,
    actor: Optional[CurrentUser] = None,
    max_update_attempts: Optional[int] = None,
    base_delay: float = 0.05,
) -> ScrubResult:
    """
    Collapse the review history of ``group_id``.

    Raises ``ScrubConfirmationRequired`` when unresolved work would be
    scrubbed without ``confirmed``; ``StoreError`` when a read or the batch
    fails (nothing is written); ``PartialStateError`` when the batch committed
    but the group status could not be updated.
    """
    group_path = Collections.ad_group(group_id)
    group = store.get_document(group_path)
    if group is None:
        raise NotFoundError(f"Ad group {group_id} not found")

    assets = store.list_children(Collections.assets(group_id))
    if not assets:
        logger.info(f"[scrub] group {group_id} has no assets, nothing to scrub")
        return ScrubResult(group_id=group_id, status=group.get("status"))

    if has_unresolved_work(assets) and not confirmed:
        raise ScrubConfirmationRequired(SCRUB_CONFIRM_PROMPT)

    chains = build_chains(assets)

    # All history listings happen before the batch is built.
    history_ids: Dict[str, List[str]] = {}
    for asset in assets:
        entries = store.list_children(Collections.asset_history(group_id, asset["id"]))
        history_ids[asset["id"]] = [entry["id"] for entry in entries]
    archived = _existing_archives(store, group_id, chains)

    now = utc_now()
    ops, live_assets = plan_scrub(
        group_id, chains, history_ids, scrubbed_at=now, actor=actor, archived=archived,
    )
    store.batch_write(ops)

    deleted = [a["id"] for chain in chains for a in chain.superseded]
    history_count = sum(len(ids) for ids in history_ids.values())
    logger.info(
        f"[scrub] group {group_id}: {len(chains)} chains, "
        f"{len(deleted)} superseded assets removed, {history_count} history entries cleared"
    )

    new_status = scrubbed_group_status(live_assets)
    await update_after_commit(
        store,
        group_id,
        group_path,
        {"status": new_status, "lastUpdated": now},
        max_attempts=max_update_attempts,
        base_delay=base_delay,
    )

    return ScrubResult(
        group_id=group_id,
        status=new_status,
        representatives={chain.root_id: chain.terminal["id"] for chain in chains},
        deleted_asset_ids=deleted,
        history_entries_deleted=history_count,
        assets=live_assets,
    )


async def undo_scrub_review_history(
    store: DocumentStore,
    group_id: str,
    *,
    max_update_attempts: Optional[int] = None,
    base_delay: float = 0.05,
) -> UndoScrubResult:
    """Restore the revision chains archived by earlier scrubs of ``group_id``."""
    group_path = Collections.ad_group(group_id)
    group = store.get_document(group_path)
    if group is None:
        raise NotFoundError(f"Ad group {group_id} not found")

    markers = store.list_children(Collections.scrubbed_history(group_id))
    if not markers:
        return UndoScrubResult(group_id=group_id, status=group.get("status"))

    live = {a["id"]: a for a in store.list_children(Collections.assets(group_id))}
    ops: List[WriteOp] = []
    restored: List[str] = []

    for marker in markers:
        root_id = marker["id"]
        snapshots = store.list_children(Collections.scrubbed_assets(group_id, root_id))
        rep_id = marker.get("representativeId")
        if not rep_id:
            rep_id = next((a["id"] for a in live.values() if a.get("scrubbedFrom") == root_id), None)
        representative = live.get(rep_id) if rep_id else None

        for snap in snapshots:
            asset_id = snap["id"]
            data = {k: v for k, v in snap.items() if k not in ("id", "scrubbedAt", "scrubbedFrom")}
            ops.append(WriteOp.delete(Collections.scrubbed_asset(group_id, root_id, asset_id)))

            if representative is not None and asset_id == representative["id"]:
                # Keep whatever review happened since the scrub.
                update = {
                    "version": data.get("version", 1),
                    "parentAdId": data.get("parentAdId"),
                    "scrubbedFrom": None,
                }
                if data.get("filename"):
                    update["filename"] = data["filename"]
                ops.append(WriteOp.update(Collections.asset(group_id, asset_id), update))
                live[asset_id] = {**representative, **update}
                continue

            if asset_id in live:
                logger.warning(f"[undo-scrub] asset {asset_id} already live in group {group_id}, keeping it")
                continue
            ops.append(WriteOp.set(Collections.asset(group_id, asset_id), data))
            live[asset_id] = {**data, "id": asset_id}
            restored.append(asset_id)

        ops.append(WriteOp.delete(Collections.scrubbed_root(group_id, root_id)))

    store.batch_write(ops)
    logger.info(f"[undo-scrub] group {group_id}: restored {len(restored)} assets from {len(markers)} chains")

    recipes = store.list_children(Collections.recipes(group_id))
    current_status = group.get("status")
    new_status = resolve_group_status(
        list(live.values()),
        bool(recipes),
        current_status == "designed",
        current_status,
    )
    await update_after_commit(
        store,
        group_id,
        group_path,
        {"status": new_status, "lastUpdated": utc_now()},
        max_attempts=max_update_attempts,
        base_delay=base_delay,
    )

    return UndoScrubResult(
        group_id=group_id,
        status=new_status,
        restored_asset_ids=restored,
        roots=[m["id"] for m in markers],
    )
