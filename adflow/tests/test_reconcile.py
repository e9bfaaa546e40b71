import pytest

from adflow.errors import PartialStateError
from adflow.models import CurrentUser
from adflow.services.group_actions import set_group_status
from adflow.services.reconcile import build_group_update, reconcile_group, watch_group


def _seed(fake_db, group, assets, recipes=()):
    fake_db.seed("adGroups/g1", group)
    for asset in assets:
        fake_db.seed(f"adGroups/g1/assets/{asset['id']}", {k: v for k, v in asset.items() if k != "id"})
    for recipe_id in recipes:
        fake_db.seed(f"adGroups/g1/recipes/{recipe_id}", {})


@pytest.mark.asyncio
async def test_reconcile_writes_counters_status_and_project(fake_db, store):
    fake_db.seed("projects/p1", {"status": "new", "groupId": "g1"})
    _seed(
        fake_db,
        {"status": "pending", "projectId": "p1"},
        [
            {"id": "a1", "recipeCode": "1", "status": "ready", "firebaseUrl": "https://cdn/a1.png"},
            {"id": "a2", "recipeCode": "2", "status": "approved"},
        ],
        recipes=["1", "2"],
    )

    result = await reconcile_group(store, "g1")

    group = fake_db.get("adGroups/g1")
    assert group["status"] == "ready"
    assert group["approvedCount"] == 1
    assert group["reviewedCount"] == 1
    assert group["assetCount"] == 2
    assert group["thumbnailUrl"] == "https://cdn/a1.png"
    assert fake_db.get("projects/p1")["status"] == "ready"
    assert result.changed is True
    assert result.project_synced is True


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(fake_db, store):
    _seed(fake_db, {}, [{"id": "a1", "recipeCode": "1", "status": "approved"}])

    first = await reconcile_group(store, "g1")
    second = await reconcile_group(store, "g1")

    assert first.changed is True
    assert first.status == "reviewed"
    assert second.changed is False
    assert second.update == {}


@pytest.mark.asyncio
async def test_reconcile_leaves_terminal_groups_alone(fake_db, store):
    _seed(fake_db, {"status": "archived"}, [{"id": "a1", "recipeCode": "1", "status": "ready"}])

    result = await reconcile_group(store, "g1")

    assert fake_db.get("adGroups/g1")["status"] == "archived"
    assert "status" not in result.update


def test_briefed_group_without_assets_keeps_status():
    update = build_group_update({"status": "briefed"}, [], has_recipes=True)
    assert "status" not in update
    assert update["assetCount"] == 0


@pytest.mark.asyncio
async def test_project_sync_failure_is_partial_state(fake_db, store):
    fake_db.seed("projects/p1", {"status": "new"})
    _seed(fake_db, {"status": "pending", "projectId": "p1"}, [{"id": "a1", "recipeCode": "1", "status": "ready"}])
    fake_db.fail("update", "projects/p1")

    with pytest.raises(PartialStateError) as excinfo:
        await reconcile_group(store, "g1")

    assert excinfo.value.path == "projects/p1"
    assert fake_db.get("adGroups/g1")["status"] == "ready"
    assert fake_db.get("projects/p1")["status"] == "new"


def test_watch_group_reconciles_on_asset_changes(fake_db, store):
    _seed(fake_db, {"status": "reviewed"}, [{"id": "a1", "recipeCode": "1", "status": "pending"}])
    seen = []

    unsubscribe = watch_group(store, "g1", seen.append)
    # the initial snapshot already reconciles
    assert fake_db.get("adGroups/g1")["status"] == "pending"

    fake_db.document("adGroups/g1/assets/a1").update({"status": "ready"})
    assert fake_db.get("adGroups/g1")["status"] == "ready"

    unsubscribe()
    fake_db.document("adGroups/g1/assets/a1").update({"status": "approved"})
    assert fake_db.get("adGroups/g1")["status"] == "ready"
    assert [r.status for r in seen] == ["pending", "ready"]


@pytest.mark.asyncio
async def test_reconcile_keeps_a_manually_set_status(fake_db, store):
    _seed(fake_db, {"status": "new"}, [{"id": "a1", "recipeCode": "1", "status": "approved"}])
    await set_group_status(store, "g1", "blocked", CurrentUser(id="pm-1", role="editor"))

    result = await reconcile_group(store, "g1")

    assert fake_db.get("adGroups/g1")["status"] == "blocked"
    assert result.status == "blocked"
    assert "status" not in result.update
    assert fake_db.get("adGroups/g1")["approvedCount"] == 1


@pytest.mark.parametrize("status", ["new", "blocked", "briefed", "designed", "done", "archived", "locked"])
def test_workflow_statuses_are_not_overwritten(status):
    assets = [{"id": "a1", "recipeCode": "1", "status": "ready"}]
    assert "status" not in build_group_update({"status": status}, assets, has_recipes=True)


@pytest.mark.parametrize("status", [None, "pending", "ready"])
def test_derived_statuses_follow_the_assets(status):
    group = {"status": status} if status else {}
    update = build_group_update(group, [{"id": "a1", "recipeCode": "1", "status": "approved"}], has_recipes=False)
    assert update["status"] == "reviewed"
