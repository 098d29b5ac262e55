"""
Shared pytest fixtures for tournament engine tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.backend import DELETED, TournamentBackend
from tourney.models import (
    BracketMatch,
    EventType,
    Participant,
    RoundGenerationStatus,
    SeedingMethod,
    Tournament,
    TournamentSettings,
    TournamentStatus,
)


class RecordingBackend(TournamentBackend):
    """In-memory backend that records every call and can be told to fail."""

    def __init__(self):
        self.tournaments = {}
        self.matches = {}
        self.calls = []
        self.failures = {}  # method name: exception to raise
        self.hooks = {}  # method name: callable run before the call returns
        self.round_status = {}
        self.tournament_listeners = {}
        self.match_listeners = {}

    def _record(self, method, *args):
        self.calls.append((method,) + args)
        hook = self.hooks.get(method)
        if hook:
            hook(*args)
        if method in self.failures:
            raise self.failures[method]

    def calls_to(self, method):
        return [c for c in self.calls if c[0] == method]

    def emit(self, tournament_id, payload):
        for callback in list(self.tournament_listeners.get(tournament_id, [])):
            callback(payload)

    def emit_matches(self, tournament_id, matches):
        for callback in list(self.match_listeners.get(tournament_id, [])):
            callback(matches)

    def get_tournament(self, tournament_id):
        return self.tournaments[tournament_id]

    def get_matches(self, tournament_id):
        return self.matches.get(tournament_id, [])

    def subscribe_tournament(self, tournament_id, callback):
        self.tournament_listeners.setdefault(tournament_id, []).append(callback)
        return lambda: self.tournament_listeners[tournament_id].remove(callback)

    def subscribe_matches(self, tournament_id, callback):
        self.match_listeners.setdefault(tournament_id, []).append(callback)
        return lambda: self.match_listeners[tournament_id].remove(callback)

    def generate_initial_bracket(self, tournament_id):
        self._record('generate_initial_bracket', tournament_id)

    def generate_next_round(self, tournament_id):
        self._record('generate_next_round', tournament_id)

    def can_generate_next_round(self, tournament_id):
        self._record('can_generate_next_round', tournament_id)
        status = self.round_status.get(tournament_id)
        if callable(status):
            return status()
        return status or RoundGenerationStatus(False, reason='Current round 1 incomplete (0/2)', current_round=1)

    def assign_seeds(self, tournament_id, assignments):
        self._record('assign_seeds', tournament_id, list(assignments))

    def update_status(self, tournament_id, new_status, reason=None):
        self._record('update_status', tournament_id, new_status)

    def delete_tournament(self, tournament_id):
        self._record('delete_tournament', tournament_id)

    def add_participants(self, tournament_id, participants):
        self._record('add_participants', tournament_id, list(participants))

    def remove_participants(self, tournament_id, player_ids):
        self._record('remove_participants', tournament_id, list(player_ids))


class RecordingScheduler:
    """Collects delayed callbacks so tests decide when they run."""

    def __init__(self):
        self.pending = []
        self.delays = []

    def __call__(self, delay_seconds, callback):
        self.delays.append(delay_seconds)
        self.pending.append(callback)

    def run_next(self):
        callback = self.pending.pop(0)
        return callback()

    def run_all(self):
        while self.pending:
            self.run_next()


def _singles(count, seeds=None):
    seeds = seeds or [None] * count
    return [Participant(f'p{i}', f'Player {i}', seed=seeds[i - 1]) for i in range(1, count + 1)]


def _doubles(team_count, seeds=None):
    seeds = seeds or [None] * team_count
    participants = []
    for i in range(1, team_count + 1):
        a, b = f'a{i}', f'b{i}'
        participants.append(Participant(a, f'Alex {i}', seed=seeds[i - 1], partner_id=b, partner_name=f'Blake {i}'))
        participants.append(Participant(b, f'Blake {i}', seed=seeds[i - 1], partner_id=a, partner_name=f'Alex {i}'))
    return participants


@pytest.fixture
def make_singles():
    """Factory for singles participants p1..pN with optional seeds."""
    return _singles


@pytest.fixture
def make_doubles():
    """Factory for N mutually partnered doubles teams (aI / bI)."""
    return _doubles


@pytest.fixture
def make_tournament():
    """Factory for tournaments with sensible defaults."""
    def factory(participants=None, status=TournamentStatus.REGISTRATION, event_type=EventType.MENS_SINGLES,
                seeding_method=SeedingMethod.MANUAL, tournament_id='t1', **kwargs):
        settings = TournamentSettings(seeding_method=seeding_method,
                                      max_participants=kwargs.pop('max_participants', None),
                                      min_participants=kwargs.pop('min_participants', None))
        return Tournament(tournament_id, name='Club Open', status=status, event_type=event_type,
                          settings=settings, participants=participants or [], **kwargs)
    return factory


@pytest.fixture
def make_match():
    """Factory for bracket matches with slots built from player ids."""
    def factory(match_id, round_number, match_number=None, player1=None, player2=None,
                status='scheduled', **kwargs):
        def slot(player_id):
            if player_id is None:
                return None
            return {'player_id': player_id, 'player_name': f'Name {player_id}', 'seed': 0}
        return BracketMatch(match_id, round_number, match_number=match_number,
                            player1=slot(player1), player2=slot(player2), status=status, **kwargs)
    return factory


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def deleted():
    return DELETED


@pytest.fixture
def store(tmp_path):
    """YAML store rooted in a temporary data directory."""
    from tourney.store import YamlTournamentStore
    return YamlTournamentStore(str(tmp_path))


@pytest.fixture
def client(tmp_path, scheduler):
    """Flask test client backed by a temporary data directory."""
    import app as app_module
    app_module.configure(str(tmp_path), scheduler=scheduler)
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client
    app_module._engine.clear()
