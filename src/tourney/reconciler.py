"""
Attribution of tournament deletions seen on the change feed.

When the feed reports that a tournament disappeared, the viewer is told it was
deleted by another administrator unless this client deleted it itself.

Several views may watch the same tournament, so a removal event only reads
the marker. The marker lives while the delete call runs and for a short grace
period after it succeeds, to cover feed events that arrive late.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Optional

logger = logging.getLogger(__name__)

EXTERNAL_DELETION_NOTICE = 'This tournament was deleted by another administrator.'

DEFAULT_GRACE_SECONDS = 30


class DeletionReconciler:
    def __init__(self, grace_seconds=DEFAULT_GRACE_SECONDS, clock=time.monotonic):
        self.grace_seconds = grace_seconds
        self.clock = clock
        self._markers = {}  # tournament_id: expiry time, None while the delete call runs
        self._lock = threading.Lock()

    def mark_self_deletion(self, tournament_id):
        with self._lock:
            self._markers[tournament_id] = None

    def finish_self_deletion(self, tournament_id):
        """Start the grace period once the delete call has returned."""
        with self._lock:
            self._markers[tournament_id] = self.clock() + self.grace_seconds

    def clear(self, tournament_id):
        with self._lock:
            self._markers.pop(tournament_id, None)

    def is_self_deleting(self, tournament_id) -> bool:
        with self._lock:
            if tournament_id not in self._markers:
                return False
            expires_at = self._markers[tournament_id]
            if expires_at is not None and self.clock() >= expires_at:
                del self._markers[tournament_id]
                return False
            return True

    @contextmanager
    def self_deletion(self, tournament_id):
        """Mark before the delete call is issued; drop the mark if the call fails."""
        self.mark_self_deletion(tournament_id)
        try:
            yield
        except Exception:
            self.clear(tournament_id)
            raise
        self.finish_self_deletion(tournament_id)

    def on_tournament_removed(self, tournament_id) -> Optional[str]:
        """Returns the notice to show, or None when this client deleted the tournament."""
        if self.is_self_deleting(tournament_id):
            logger.info(f"Tournament {tournament_id} removal matches a local delete")
            return None
        logger.warning(f"Tournament {tournament_id} was removed by another client")
        return EXTERNAL_DELETION_NOTICE
