import pytest

from adflow.services.group_status import (
    build_kanban_board,
    resolve_finalize_status,
    resolve_group_status,
    resolve_kanban_column,
)

ALL_ASSET_SHAPES = [
    [],
    [{"status": "ready"}],
    [{"status": "pending"}],
    [{"status": "approved"}, {"status": "rejected"}],
    [{"status": "edit_requested"}, {"status": "ready"}],
]


@pytest.mark.parametrize("assets", ALL_ASSET_SHAPES)
@pytest.mark.parametrize("terminal", ["archived", "locked"])
def test_terminal_statuses_win(assets, terminal):
    for has_recipes in (True, False):
        for was_designed in (True, False):
            assert resolve_group_status(assets, has_recipes, was_designed, terminal) == terminal


def test_ready_takes_precedence_over_pending():
    assets = [{"status": "pending"}, {"status": "ready"}, {"status": "approved"}]
    assert resolve_group_status(assets, False, False, "pending") == "ready"


def test_all_reviewed_assets_resolve_to_reviewed():
    assets = [
        {"status": "approved"},
        {"status": "rejected"},
        {"status": "edit_requested"},
        {"status": "archived"},
    ]
    assert resolve_group_status(assets, False, False, "designed") == "reviewed"


def test_empty_or_pending_groups_resolve_to_pending():
    assert resolve_group_status([], True, True, "new") == "pending"
    assert resolve_group_status([{"status": "pending"}, {"status": "approved"}], False, False, None) == "pending"
    # missing status is pending work
    assert resolve_group_status([{"id": "x"}], False, False, "reviewed") == "pending"


def test_flags_do_not_change_the_result():
    assets = [{"status": "approved"}]
    results = {
        resolve_group_status(assets, has_recipes, was_designed, "pending")
        for has_recipes in (True, False)
        for was_designed in (True, False)
    }
    assert results == {"reviewed"}


@pytest.mark.parametrize("status", ["blocked", "briefed", "reviewed", "designed", "done"])
def test_kanban_passes_explicit_statuses_through(status):
    assert resolve_kanban_column({"status": status, "assetCount": 0, "counts": {}}) == status
    assert resolve_kanban_column({"status": status, "assetCount": 3, "counts": {"approved": 3}}) == status


def test_kanban_new_when_no_assets():
    assert resolve_kanban_column({"assetCount": 0, "counts": {}}) == "new"
    assert resolve_kanban_column({"status": "pending"}) == "new"
    assert resolve_kanban_column(None) == "new"


def test_kanban_done_when_everything_finished():
    assert resolve_kanban_column({"assetCount": 3, "counts": {"approved": 1, "archived": 1, "rejected": 1}}) == "done"
    assert resolve_kanban_column({"assetCount": 2, "counts": {"approved": 1, "archived": 1, "rejected": 1}}) == "done"


def test_kanban_ignores_edit_requests():
    assert resolve_kanban_column({"assetCount": 2, "counts": {"edit": 1}}) == "designed"
    assert resolve_kanban_column({"status": "ready", "assetCount": 2, "counts": {"approved": 1, "edit": 1}}) == "designed"


def test_kanban_agrees_with_group_resolver_on_finished_groups():
    assets = [{"status": "approved"}, {"status": "rejected"}, {"status": "archived"}]
    assert resolve_group_status(assets, False, False, "pending") == "reviewed"
    counts = {"approved": 1, "rejected": 1, "archived": 1}
    assert resolve_kanban_column({"status": "pending", "assetCount": len(assets), "counts": counts}) == "done"
    # once persisted as reviewed the board keeps it there
    assert resolve_kanban_column({"status": "reviewed", "assetCount": len(assets), "counts": counts}) == "reviewed"


def test_build_kanban_board_buckets_groups():
    groups = [
        {"id": "g1", "status": "blocked"},
        {"id": "g2", "status": "pending", "assetCount": 0},
        {"id": "g3", "status": "ready", "assetCount": 2, "approvedCount": 1, "rejectedCount": 1},
        {"id": "g4", "status": "ready", "assetCount": 2, "approvedCount": 1, "editCount": 1},
    ]
    board = build_kanban_board(groups)
    assert [g["id"] for g in board["blocked"]] == ["g1"]
    assert [g["id"] for g in board["new"]] == ["g2"]
    assert [g["id"] for g in board["done"]] == ["g3"]
    assert [g["id"] for g in board["designed"]] == ["g4"]
    assert board["briefed"] == []


def test_finalize_status():
    assert resolve_finalize_status([]) == "reviewed"
    assert resolve_finalize_status([{"status": "approved"}, {"status": "edit_requested"}]) == "designed"
    assert resolve_finalize_status([{"status": "approved"}, {"status": "Rejected "}]) == "done"
    assert resolve_finalize_status([{"status": "approved"}, {"status": "ready"}]) == "reviewed"
