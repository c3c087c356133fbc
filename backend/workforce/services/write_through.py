"""Primary-first write coordination.

Every state-changing action commits to the primary store first. Only a
committed result is mirrored to the broadcast store; a failed mirror is
logged and counted but never undoes the primary write or fails the request.
Missed mirrors are not replayed: live nodes are overwritten on the next
successful action.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from workforce.core.observability import broadcast_write_failures_total
from workforce.services.broadcast import BroadcastStore

logger = logging.getLogger("workforce.broadcast")

T = TypeVar("T")

PrimaryWrite = Callable[[Session], T]
MirrorWrite = Callable[[BroadcastStore, T], None]


class WriteThrough:
    def __init__(self, db: Session, broadcast: BroadcastStore) -> None:
        self.db = db
        self.broadcast = broadcast

    def execute(self, primary: PrimaryWrite, *mirrors: MirrorWrite, operation: str) -> T:
        """Commit ``primary`` then run each mirror independently.

        Any exception from ``primary`` or from the commit rolls the session
        back and propagates; no mirror runs in that case.
        """
        try:
            result = primary(self.db)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        for mirror in mirrors:
            self.mirror(operation, mirror, result)
        return result

    def mirror(self, operation: str, mirror: MirrorWrite, result: T) -> bool:
        try:
            mirror(self.broadcast, result)
        except Exception as exc:  # mirror failures never reach the caller
            broadcast_write_failures_total.labels(operation=operation).inc()
            logger.warning(
                "broadcast mirror failed: %s",
                exc,
                extra={"operation": operation},
            )
            return False
        return True
