# Status derivation and the write paths built on it
from .review_version import normalize_review_version, review_type_label
from .status_counts import (
    aggregate_status_counts,
    recipe_status_map,
    summarize_ad_units,
    summarize_by_recipe,
)
from .group_status import (
    build_kanban_board,
    resolve_finalize_status,
    resolve_group_status,
    resolve_kanban_column,
)
from .scrubber import scrub_review_history, undo_scrub_review_history
from .reconcile import reconcile_group, watch_group

__all__ = [
    'normalize_review_version',
    'review_type_label',
    'aggregate_status_counts',
    'recipe_status_map',
    'summarize_ad_units',
    'summarize_by_recipe',
    'build_kanban_board',
    'resolve_finalize_status',
    'resolve_group_status',
    'resolve_kanban_column',
    'scrub_review_history',
    'undo_scrub_review_history',
    'reconcile_group',
    'watch_group',
]
