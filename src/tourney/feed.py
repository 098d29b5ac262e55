"""
Change-feed subscriptions for one view.

A TournamentFeed keeps the latest tournament and match list per watched
tournament, passes tournament states through the lifecycle controller for
reconciliation and turns removal events into deletion notices.
"""
import logging
import threading

from tourney.backend import DELETED

logger = logging.getLogger(__name__)


class TournamentFeed:
    def __init__(self, backend, controller, advisor=None, on_tournament=None, on_matches=None,
                 on_removed=None):
        self.backend = backend
        self.controller = controller
        self.advisor = advisor
        self.on_tournament = on_tournament
        self.on_matches = on_matches
        self.on_removed = on_removed
        self.tournaments = {}
        self.matches = {}
        self.notices = []
        self._subscriptions = {}  # tournament_id: [unsubscribe callables]
        self._lock = threading.Lock()

    def watch(self, tournament_id):
        with self._lock:
            if tournament_id in self._subscriptions:
                return
            self._subscriptions[tournament_id] = []
        unsubscribers = [
            self.backend.subscribe_tournament(
                tournament_id, lambda payload: self._handle_tournament(tournament_id, payload)),
            self.backend.subscribe_matches(
                tournament_id, lambda matches: self._handle_matches(tournament_id, matches)),
        ]
        with self._lock:
            if tournament_id in self._subscriptions:
                self._subscriptions[tournament_id] = unsubscribers
                return
        # Removed while subscribing
        for unsubscribe in unsubscribers:
            unsubscribe()

    def is_watching(self, tournament_id) -> bool:
        with self._lock:
            return tournament_id in self._subscriptions

    def unwatch(self, tournament_id):
        with self._lock:
            unsubscribers = self._subscriptions.pop(tournament_id, [])
        for unsubscribe in unsubscribers:
            unsubscribe()

    def close(self):
        """Tear down every subscription owned by this view."""
        with self._lock:
            tournament_ids = list(self._subscriptions)
        for tournament_id in tournament_ids:
            self.unwatch(tournament_id)

    def _handle_tournament(self, tournament_id, payload):
        if payload is None or payload == DELETED:
            known = self.tournaments.pop(tournament_id, None) is not None
            self.matches.pop(tournament_id, None)
            self.unwatch(tournament_id)
            if not known:
                # Never delivered to this view, so there is nothing to announce
                return
            notice = self.controller.reconciler.on_tournament_removed(tournament_id)
            if notice:
                self.notices.append((tournament_id, notice))
            if self.on_removed:
                self.on_removed(tournament_id, notice)
            return

        tournament = self.controller.reconcile(payload)
        self.tournaments[tournament_id] = tournament
        if self.on_tournament:
            self.on_tournament(tournament)

    def _handle_matches(self, tournament_id, matches):
        self.matches[tournament_id] = list(matches)
        if self.advisor is not None:
            self.advisor.invalidate(tournament_id)
        if self.on_matches:
            self.on_matches(tournament_id, self.matches[tournament_id])
