"""
Next-round generation advice, guarding and score-submission fallback.
"""
import logging
import threading
from typing import List, Optional

from tourney.config import Settings
from tourney.errors import BackendError, GenerationInProgressError, RoundGenerationError
from tourney.models import RoundGenerationStatus, TournamentStatus

logger = logging.getLogger(__name__)


def compute_round_generation_status(tournament, matches: List) -> RoundGenerationStatus:
    """
    Decide whether the next round can be generated from the stored matches.

    The current round is the highest round number present. It must be fully
    played (every match completed or confirmed) and must not be the final.
    """
    if tournament is None:
        return RoundGenerationStatus(False, reason='Tournament not found')
    if tournament.status != TournamentStatus.IN_PROGRESS:
        return RoundGenerationStatus(False, reason='Tournament must be in progress')

    numbered = [m for m in matches if m.round_number is not None]
    if not numbered:
        return RoundGenerationStatus(False, reason='No bracket matches found')

    current_round = max(m.round_number for m in numbered)
    round_matches = [m for m in numbered if m.round_number == current_round]
    done = sum(1 for m in round_matches if m.is_terminal)

    if done != len(round_matches):
        return RoundGenerationStatus(
            False,
            reason=f"Current round {current_round} incomplete ({done}/{len(round_matches)})",
            current_round=current_round,
        )

    if tournament.total_rounds:
        is_final = current_round >= tournament.total_rounds
    else:
        is_final = len(round_matches) == 1
    if is_final:
        return RoundGenerationStatus(False, reason='Tournament is already complete', current_round=current_round)

    return RoundGenerationStatus(True, current_round=current_round, next_round=current_round + 1)


def _timer_scheduler(delay_seconds, callback):
    timer = threading.Timer(delay_seconds, callback)
    timer.daemon = True
    timer.start()
    return timer


class RoundGenerationAdvisor:
    """
    Caches the last known RoundGenerationStatus per tournament and owns the
    "generate next round" action.

    ``scheduler(delay_seconds, callback)`` runs delayed re-checks; it defaults
    to a daemon threading.Timer.
    """

    def __init__(self, backend, scheduler=None, settings=None):
        self.backend = backend
        self.scheduler = scheduler or _timer_scheduler
        self.settings = settings or Settings()
        self._cache = {}
        self._in_flight = set()
        self._lock = threading.Lock()

    def is_generating(self, tournament_id) -> bool:
        with self._lock:
            return tournament_id in self._in_flight

    def invalidate(self, tournament_id):
        with self._lock:
            self._cache.pop(tournament_id, None)

    def _fetch(self, tournament_id) -> RoundGenerationStatus:
        try:
            status = self.backend.can_generate_next_round(tournament_id)
        except BackendError as e:
            logger.error(f"Round status check failed for {tournament_id}: {e.message}")
            status = RoundGenerationStatus(False, reason=e.message)
        with self._lock:
            self._cache[tournament_id] = status
        return status

    def get_status(self, tournament_id, refresh=False) -> RoundGenerationStatus:
        """Cached status; while a generation call is outstanding generation is reported unavailable."""
        with self._lock:
            cached = self._cache.get(tournament_id)
            generating = tournament_id in self._in_flight
        if generating:
            return RoundGenerationStatus(
                False,
                reason='Next round generation is already in progress',
                current_round=cached.current_round if cached else None,
            )
        if cached is not None and not refresh:
            return cached
        return self._fetch(tournament_id)

    def generate_next_round(self, tournament_id) -> RoundGenerationStatus:
        """
        Ask the backend to generate the next round.

        A call made while another one for the same tournament is outstanding is
        rejected with GenerationInProgressError and never reaches the backend.
        Returns the recomputed status.
        """
        with self._lock:
            if tournament_id in self._in_flight:
                logger.warning(f"Ignoring duplicate round generation request for {tournament_id}")
                raise GenerationInProgressError('Next round generation is already in progress',
                                                code='generation_in_progress')
            self._in_flight.add(tournament_id)

        try:
            logger.info(f"Generating next round for {tournament_id}")
            try:
                self.backend.generate_next_round(tournament_id)
            except RoundGenerationError:
                raise
            except BackendError as e:
                raise RoundGenerationError(e.message) from e
            self.invalidate(tournament_id)
            return self._fetch(tournament_id)
        finally:
            with self._lock:
                self._in_flight.discard(tournament_id)

    def on_score_submitted(self, tournament_id, observed_round: Optional[int] = None):
        """
        Schedule the delayed re-check that follows a score submission.

        The backend normally advances rounds by itself. If after the delay the
        next round is still generatable and the round has not moved past
        ``observed_round``, generation is triggered once, followed by one more
        delayed refresh.
        """
        if observed_round is None:
            with self._lock:
                cached = self._cache.get(tournament_id)
            observed_round = cached.current_round if cached else None

        def recheck():
            self.run_fallback_check(tournament_id, observed_round)

        return self.scheduler(self.settings.recheck_delay_seconds, recheck)

    def run_fallback_check(self, tournament_id, observed_round=None) -> bool:
        """Returns True when a fallback generation was performed."""
        status = self.get_status(tournament_id, refresh=True)
        if not status.can_generate:
            logger.debug(f"No fallback needed for {tournament_id}: {status.reason}")
            return False
        if (observed_round is not None and status.current_round is not None
                and status.current_round > observed_round):
            return False

        logger.info(f"Round {status.current_round} of {tournament_id} finished without advancing; "
                    f"generating round {status.next_round}")
        try:
            self.generate_next_round(tournament_id)
        except GenerationInProgressError:
            return False
        except RoundGenerationError as e:
            logger.error(f"Fallback round generation failed for {tournament_id}: {e.message}")
            return False

        def refresh():
            self.get_status(tournament_id, refresh=True)

        self.scheduler(self.settings.post_generation_delay_seconds, refresh)
        return True
