import asyncio
import logging
import os
import random
from typing import Any, Dict, Optional

from ..errors import PartialStateError, StoreError
from ..store import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_ATTEMPTS = 3


def update_attempts_from_env() -> int:
    try:
        return max(1, int(os.getenv("SCRUB_GROUP_UPDATE_ATTEMPTS", DEFAULT_UPDATE_ATTEMPTS)))
    except ValueError:
        return DEFAULT_UPDATE_ATTEMPTS


async def update_after_commit(
    store: DocumentStore,
    group_id: str,
    path: str,
    update: Dict[str, Any],
    *,
    max_attempts: Optional[int] = None,
    base_delay: float = 0.05,
) -> None:
    """
    Write a follow-up update whose batch has already been committed.

    The update must be idempotent. Retries with exponential backoff and raises
    ``PartialStateError`` once the attempts are exhausted.
    """
    max_attempts = max_attempts or update_attempts_from_env()
    attempt = 0
    last_error: Optional[StoreError] = None

    while attempt < max_attempts:
        attempt += 1
        try:
            store.update_document(path, update)
            return
        except StoreError as exc:
            last_error = exc
            if attempt >= max_attempts:
                break
            delay = base_delay * (2 ** (attempt - 1))
            jitter = random.uniform(0, delay * 0.1)
            logger.warning(
                "ad_group.followup_update_failed",
                extra={
                    "groupId": group_id,
                    "path": path,
                    "attempt": attempt,
                    "delaySeconds": round(delay + jitter, 4),
                },
            )
            await asyncio.sleep(delay + jitter)

    logger.error(
        "ad_group.followup_update_exhausted",
        extra={"groupId": group_id, "path": path, "attempts": attempt},
    )
    raise PartialStateError(group_id, path, update, cause=last_error)
