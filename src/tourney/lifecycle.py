"""
Tournament lifecycle state machine.

Status moves forward only:
    draft -> registration -> bracket_generation -> in_progress -> completed
and any non-terminal status may be cancelled or deleted. With automatic
seeding, closing registration generates the bracket and goes straight to
in_progress.

The controller never changes a tournament's status locally. It issues backend
calls and waits for the change feed to deliver the new state (see reconcile).
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from tourney.bracket import build_bracket, is_terminal_match_status
from tourney.config import Settings
from tourney.errors import (
    BackendError,
    BracketGenerationError,
    ReconciliationConflict,
    TeamPairingError,
    TransitionError,
    ValidationError,
)
from tourney.models import TournamentStatus
from tourney.reconciler import DeletionReconciler
from tourney.seeding import assign_seed as validate_seed_assignment
from tourney.seeding import get_seed_summary, is_seeding_complete
from tourney.teams import group_into_teams

logger = logging.getLogger(__name__)

MAX_PARTICIPANTS_LIMIT = 256

VALID_TRANSITIONS = {
    TournamentStatus.DRAFT: (TournamentStatus.REGISTRATION, TournamentStatus.CANCELLED),
    TournamentStatus.REGISTRATION: (TournamentStatus.BRACKET_GENERATION, TournamentStatus.IN_PROGRESS,
                                    TournamentStatus.CANCELLED),
    TournamentStatus.BRACKET_GENERATION: (TournamentStatus.IN_PROGRESS, TournamentStatus.CANCELLED),
    TournamentStatus.IN_PROGRESS: (TournamentStatus.COMPLETED, TournamentStatus.CANCELLED),
    TournamentStatus.COMPLETED: (),
    TournamentStatus.CANCELLED: (),
}

ACTIONS = (
    'open_registration',
    'close_registration',
    'add_participants',
    'remove_participant',
    'assign_seed',
    'start',
    'generate_next_round',
    'complete',
    'cancel',
    'delete',
)

ACTIONS_BY_STATUS = {
    TournamentStatus.DRAFT: ('open_registration', 'cancel', 'delete'),
    TournamentStatus.REGISTRATION: ('close_registration', 'add_participants', 'remove_participant', 'cancel',
                                    'delete'),
    TournamentStatus.BRACKET_GENERATION: ('add_participants', 'remove_participant', 'assign_seed', 'start', 'cancel',
                                          'delete'),
    TournamentStatus.IN_PROGRESS: ('generate_next_round', 'complete', 'cancel', 'delete'),
    TournamentStatus.COMPLETED: (),
    TournamentStatus.CANCELLED: (),
}

for _table in (VALID_TRANSITIONS, ACTIONS_BY_STATUS):
    _uncovered = set(TournamentStatus.ALL) ^ set(_table)
    if _uncovered:
        raise RuntimeError(f"Lifecycle tables out of sync with TournamentStatus: {sorted(_uncovered)}")


def get_valid_next_statuses(status: str) -> tuple:
    return VALID_TRANSITIONS[status]


def is_valid_transition(from_status: str, to_status: str) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, ())


def validate_participant_settings(min_participants: int, max_participants: int):
    if min_participants < 2:
        raise ValidationError('Minimum participants must be at least 2', code='invalid_settings')
    if max_participants < min_participants:
        raise ValidationError('Maximum participants cannot be less than minimum participants',
                              code='invalid_settings')
    if max_participants > MAX_PARTICIPANTS_LIMIT:
        raise ValidationError(f'Maximum participants cannot exceed {MAX_PARTICIPANTS_LIMIT}',
                              code='invalid_settings')


def validate_can_register(status: str, participant_count: int, max_participants: Optional[int]):
    if status != TournamentStatus.REGISTRATION:
        raise ValidationError(f'Tournament is not accepting registrations (current status: {status})',
                              code='registration_closed')
    if max_participants and participant_count >= max_participants:
        raise ValidationError('Tournament is full', code='tournament_full')


def _status_rank(status):
    return TournamentStatus.ALL.index(status) if status in TournamentStatus.ALL else -1


class TournamentLifecycleController:
    def __init__(self, backend, reconciler=None, advisor=None, settings=None):
        self.backend = backend
        self.reconciler = reconciler or DeletionReconciler()
        self.advisor = advisor
        self.settings = settings or Settings()
        self._busy = {}  # tournament_id: action name
        self._changing = {}  # tournament_id: participant additions or removals in flight
        self._deleting = set()
        self._expected = {}  # tournament_id: status awaiting feed confirmation
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self, tournament_id, action):
        with self._lock:
            running = self._busy.get(tournament_id)
            if running:
                raise ValidationError(f'Another action ({running}) is already running for this tournament',
                                      code='operation_in_progress')
            self._busy[tournament_id] = action
        try:
            yield
        finally:
            with self._lock:
                self._busy.pop(tournament_id, None)

    def is_busy(self, tournament_id) -> bool:
        with self._lock:
            return tournament_id in self._busy

    @contextmanager
    def participant_change(self, tournament_id):
        """Marks a participant addition or removal as in flight for the duration of the block."""
        with self._lock:
            self._changing[tournament_id] = self._changing.get(tournament_id, 0) + 1
        try:
            yield
        finally:
            with self._lock:
                remaining = self._changing.get(tournament_id, 1) - 1
                if remaining > 0:
                    self._changing[tournament_id] = remaining
                else:
                    self._changing.pop(tournament_id, None)

    def is_changing_participants(self, tournament_id) -> bool:
        with self._lock:
            return tournament_id in self._changing

    def minimum_units(self, tournament) -> int:
        floor = self.settings.min_doubles_teams if tournament.is_doubles else self.settings.min_singles_participants
        return max(floor, tournament.settings.min_participants or 0)

    def validate_participant_count(self, tournament):
        """Unit count and doubles parity checks shared by closing registration and starting."""
        count = len(tournament.participants)
        minimum = self.minimum_units(tournament)

        if tournament.is_doubles:
            if count < minimum * 2:
                raise ValidationError(
                    f'At least {minimum} teams ({minimum * 2} players) are required; '
                    f'{count} players are registered',
                    code='insufficient_participants')
            if count % 2 != 0:
                raise ValidationError(
                    f'Doubles needs an even number of players; {count} are registered. '
                    f'Add or remove a player to make it even.',
                    code='odd_doubles_count')
            try:
                teams = group_into_teams(tournament.participants)
            except TeamPairingError as e:
                raise ValidationError(e.message, code='pairing_error')
            if len(teams) * 2 != count:
                raise ValidationError(
                    f'{count - len(teams) * 2} players have no partner; every player needs a partner',
                    code='unpaired_participants')
        elif count < minimum:
            raise ValidationError(
                f'At least {minimum} participants are required; {count} are registered',
                code='insufficient_participants')

    def _require_status(self, tournament, *statuses):
        if tournament.status not in statuses:
            raise TransitionError(
                f'Not allowed while the tournament is {tournament.status.replace("_", " ")}',
                code='invalid_status')

    # ------------------------------------------------------------------
    # Backend calls
    # ------------------------------------------------------------------

    def _transition(self, tournament, new_status, reason=None):
        if not is_valid_transition(tournament.status, new_status):
            raise TransitionError(f'Cannot move tournament from {tournament.status} to {new_status}',
                                  code='invalid_transition')
        # Recorded first: a feed may deliver the new state before update_status returns
        with self._lock:
            self._expected[tournament.id] = new_status
        try:
            self.backend.update_status(tournament.id, new_status, reason)
        except Exception:
            with self._lock:
                if self._expected.get(tournament.id) == new_status:
                    del self._expected[tournament.id]
            raise
        logger.info(f"Tournament {tournament.id}: requested {tournament.status} -> {new_status}")

    def _generate_initial_bracket(self, tournament_id):
        try:
            self.backend.generate_initial_bracket(tournament_id)
        except BracketGenerationError:
            raise
        except BackendError as e:
            raise BracketGenerationError(e.message) from e

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def open_registration(self, tournament):
        self._require_status(tournament, TournamentStatus.DRAFT)
        self._transition(tournament, TournamentStatus.REGISTRATION)
        return TournamentStatus.REGISTRATION

    def validate_close_registration(self, tournament):
        self._require_status(tournament, TournamentStatus.REGISTRATION)
        self.validate_participant_count(tournament)

    def close_registration(self, tournament):
        """
        Close registration.

        Manual seeding stops at bracket_generation so the admin can seed. Any
        automatic seeding generates the bracket now and, only if that
        succeeds, moves to in_progress. Returns the requested status.
        """
        self.validate_close_registration(tournament)

        with self._exclusive(tournament.id, 'close_registration'):
            if tournament.settings.is_manual_seeding:
                self._transition(tournament, TournamentStatus.BRACKET_GENERATION)
                return TournamentStatus.BRACKET_GENERATION
            self._generate_initial_bracket(tournament.id)
            self._transition(tournament, TournamentStatus.IN_PROGRESS)
        return TournamentStatus.IN_PROGRESS

    def validate_start(self, tournament):
        self._require_status(tournament, TournamentStatus.BRACKET_GENERATION)
        if self.is_changing_participants(tournament.id):
            raise ValidationError('Participant changes are still being saved. Start the tournament once they are done.',
                                  code='participants_changing')
        self.validate_participant_count(tournament)
        if not is_seeding_complete(tournament):
            summary = get_seed_summary(tournament)
            missing = ', '.join(str(s) for s in summary['missing'])
            message = 'Every team or player needs a unique seed before the tournament can start'
            if missing:
                message += f' (missing: {missing})'
            raise ValidationError(message, code='seeding_incomplete')

    def start_tournament(self, tournament):
        """Generate the bracket for a seeded tournament and move it to in_progress."""
        self.validate_start(tournament)
        with self._exclusive(tournament.id, 'start'):
            self._generate_initial_bracket(tournament.id)
            self._transition(tournament, TournamentStatus.IN_PROGRESS)
        return TournamentStatus.IN_PROGRESS

    def validate_completion(self, tournament, matches: List) -> Dict:
        """Returns the final match view when the tournament can be completed."""
        self._require_status(tournament, TournamentStatus.IN_PROGRESS)
        bracket = build_bracket(matches, tournament.total_rounds)
        if not bracket['rounds']:
            raise ValidationError('No bracket matches found', code='final_not_reached')

        final_round = bracket['rounds'][-1]
        if len(final_round['matches']) != 1 or (
                tournament.total_rounds and final_round['round_number'] < tournament.total_rounds):
            raise ValidationError('The final round has not been reached yet', code='final_not_reached')

        final_match = final_round['matches'][0]
        if not is_terminal_match_status(final_match['status']):
            raise ValidationError('The final match has not been played yet', code='final_not_played')
        if final_match['winner'] is None:
            raise ValidationError('The final match has no recorded winner', code='no_winner')
        return final_match

    def complete_tournament(self, tournament, matches: List):
        """Mark the tournament completed. Returns the champion slot."""
        final_match = self.validate_completion(tournament, matches)
        self._transition(tournament, TournamentStatus.COMPLETED)
        return final_match['winner']

    def cancel_tournament(self, tournament, reason=None):
        if tournament.is_terminal:
            raise TransitionError('This tournament has already finished', code='invalid_status')
        self._transition(tournament, TournamentStatus.CANCELLED, reason)
        return TournamentStatus.CANCELLED

    def delete_tournament(self, tournament):
        """
        Delete a tournament that has not finished.

        The self-deletion marker is set before the backend call so the feed's
        removal event is attributed to this client. Deletion does not wait for
        other running actions; it only refuses to run twice at once.
        """
        if tournament.is_terminal:
            raise TransitionError('Finished tournaments cannot be deleted', code='invalid_status')
        with self._lock:
            if tournament.id in self._deleting:
                raise ValidationError('This tournament is already being deleted', code='operation_in_progress')
            self._deleting.add(tournament.id)
        try:
            with self.reconciler.self_deletion(tournament.id):
                logger.info(f"Deleting tournament {tournament.id}")
                self.backend.delete_tournament(tournament.id)
        finally:
            with self._lock:
                self._deleting.discard(tournament.id)
        with self._lock:
            self._expected.pop(tournament.id, None)

    def is_deleting(self, tournament_id) -> bool:
        with self._lock:
            return tournament_id in self._deleting

    # ------------------------------------------------------------------
    # Participants and seeds
    # ------------------------------------------------------------------

    def validate_add_participants(self, tournament, new_count=1):
        self._require_status(tournament, TournamentStatus.REGISTRATION, TournamentStatus.BRACKET_GENERATION)
        limit = tournament.settings.max_participants
        if limit and len(tournament.participants) + new_count > limit:
            raise ValidationError(f'Tournament is full ({limit} participants maximum)', code='tournament_full')

    def add_participants(self, tournament, participants: List):
        self.validate_add_participants(tournament, len(participants))
        with self.participant_change(tournament.id):
            self.backend.add_participants(tournament.id, participants)

    def participants_to_remove(self, tournament, player_id) -> List[str]:
        """
        Player ids leaving the tournament when ``player_id`` withdraws.

        In doubles the partner leaves too, so the remaining list stays paired.
        """
        self._require_status(tournament, TournamentStatus.REGISTRATION, TournamentStatus.BRACKET_GENERATION)
        participant = tournament.find_participant(player_id)
        if participant is None:
            raise ValidationError(f'Participant {player_id} is not part of this tournament',
                                  code='unknown_participant')
        player_ids = [participant.player_id]
        if tournament.is_doubles and participant.partner_id:
            partner = tournament.find_participant(participant.partner_id)
            if partner is not None:
                player_ids.append(partner.player_id)
        return player_ids

    def remove_participant(self, tournament, player_id) -> List[str]:
        """Withdraw a participant (and their doubles partner). Returns the removed player ids."""
        player_ids = self.participants_to_remove(tournament, player_id)
        with self.participant_change(tournament.id):
            logger.info(f"Removing {', '.join(player_ids)} from tournament {tournament.id}")
            self.backend.remove_participants(tournament.id, player_ids)
        return player_ids

    def validate_seed_assignment(self, tournament):
        self._require_status(tournament, TournamentStatus.BRACKET_GENERATION)
        if not tournament.settings.is_manual_seeding:
            raise ValidationError('Seeds are assigned automatically for this tournament', code='auto_seeding')

    def assign_seed(self, tournament, player_id, seed):
        """Validate and persist one seed change. Returns the persisted (player_id, seed) pairs."""
        self.validate_seed_assignment(tournament)
        assignments = validate_seed_assignment(tournament, player_id, seed)
        if not assignments:
            logger.debug(f"Seed for {player_id} unchanged; nothing to save")
            return assignments
        self.backend.assign_seeds(tournament.id, assignments)
        return assignments

    # ------------------------------------------------------------------
    # Feed reconciliation
    # ------------------------------------------------------------------

    def pending_transition(self, tournament_id) -> Optional[str]:
        with self._lock:
            return self._expected.get(tournament_id)

    def reconcile(self, tournament):
        """
        Take a tournament state delivered by the change feed.

        A state behind the requested status means the write is not visible
        yet. Any other mismatch means someone else moved the tournament; the
        feed wins and the expectation is dropped.
        """
        with self._lock:
            expected = self._expected.get(tournament.id)
            if expected is None:
                return tournament
            if tournament.status == expected:
                del self._expected[tournament.id]
                logger.info(f"Tournament {tournament.id}: {expected} confirmed by feed")
                return tournament
            if not tournament.is_terminal and _status_rank(tournament.status) < _status_rank(expected):
                return tournament
            del self._expected[tournament.id]

        conflict = ReconciliationConflict(tournament.id, expected, tournament.status)
        logger.warning(f"Feed overrides local transition: {conflict!r}")
        return tournament

    # ------------------------------------------------------------------
    # Availability view
    # ------------------------------------------------------------------

    def available_actions(self, tournament, matches: Optional[List] = None) -> Dict:
        """Map every lifecycle action to {'enabled': bool, 'reason': str | None}."""
        allowed = ACTIONS_BY_STATUS[tournament.status]
        busy = self.is_busy(tournament.id)
        checks = {
            'open_registration': lambda: None,
            'close_registration': lambda: self.validate_close_registration(tournament),
            'add_participants': lambda: self.validate_add_participants(tournament),
            'assign_seed': lambda: self.validate_seed_assignment(tournament),
            'start': lambda: self.validate_start(tournament),
            'generate_next_round': lambda: self._check_round_generation(tournament),
            'complete': lambda: self.validate_completion(tournament, matches or []),
            'cancel': lambda: None,
            'delete': lambda: self._check_not_deleting(tournament),
            'remove_participant': lambda: self._check_has_participants(tournament),
        }

        actions = {}
        for action in ACTIONS:
            if action not in allowed:
                actions[action] = {'enabled': False,
                                   'reason': f'Not available while {tournament.status.replace("_", " ")}'}
                continue
            if busy and action not in ('add_participants', 'remove_participant', 'delete'):
                actions[action] = {'enabled': False, 'reason': 'Another action is in progress'}
                continue
            try:
                checks[action]()
            except ValidationError as e:
                actions[action] = {'enabled': False, 'reason': e.message}
            else:
                actions[action] = {'enabled': True, 'reason': None}
        return actions

    def _check_not_deleting(self, tournament):
        if self.is_deleting(tournament.id):
            raise ValidationError('This tournament is already being deleted', code='operation_in_progress')

    def _check_has_participants(self, tournament):
        if not tournament.participants:
            raise ValidationError('No participants are registered', code='unknown_participant')

    def _check_round_generation(self, tournament):
        if self.advisor is None:
            return
        status = self.advisor.get_status(tournament.id)
        if not status.can_generate:
            raise ValidationError(status.reason or 'The next round cannot be generated yet',
                                  code='round_not_ready')
