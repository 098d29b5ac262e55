"""
YAML file backend with an in-process change feed.

Each tournament and its matches live in ``<data_dir>/tournaments/<id>.yaml``.
Writes are serialized with a FileLock; subscribers are notified after every
write, outside the lock.
"""
import logging
import os
import re
import threading
import uuid
from typing import Dict, List

import yaml
from filelock import FileLock

from tourney.backend import DELETED, TournamentBackend
from tourney.bracket import build_bracket, calculate_bracket_size, calculate_byes, calculate_total_rounds
from tourney.errors import (
    BackendError,
    BracketGenerationError,
    RoundGenerationError,
    TeamPairingError,
    TournamentNotFoundError,
)
from tourney.lifecycle import is_valid_transition
from tourney.models import (
    BracketMatch,
    MatchStatus,
    Participant,
    Tournament,
    TournamentStatus,
)
from tourney.rounds import compute_round_generation_status
from tourney.teams import group_into_teams

logger = logging.getLogger(__name__)

TOURNAMENT_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]*$')


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 units: [1, 8, 4, 5, 2, 7, 3, 6]
    """
    if bracket_size <= 2:
        return [1, 2][:max(bracket_size, 0)]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def _bracket_units(tournament) -> List[Dict]:
    """Slots for the first round, ordered by seed then registration order."""
    if tournament.is_doubles:
        try:
            teams = group_into_teams(tournament.participants)
        except TeamPairingError as e:
            raise BracketGenerationError(e.message)
        units = [{'playerId': t.team_id, 'playerName': t.team_name, 'seed': t.seed or 0} for t in teams]
    else:
        units = [{'playerId': p.player_id, 'playerName': p.player_name, 'seed': p.seed or 0}
                 for p in tournament.participants]

    seeded = sorted((u for u in units if u['seed'] > 0), key=lambda u: u['seed'])
    unseeded = [u for u in units if u['seed'] <= 0]
    ordered = seeded + unseeded
    for position, unit in enumerate(ordered, start=1):
        unit['seed'] = position
    return ordered


class YamlTournamentStore(TournamentBackend):
    def __init__(self, data_dir, lock_timeout=10):
        self.data_dir = data_dir
        self.tournaments_dir = os.path.join(data_dir, 'tournaments')
        os.makedirs(self.tournaments_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)
        self._tournament_listeners = {}
        self._match_listeners = {}
        self._listener_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _path(self, tournament_id):
        if not tournament_id or not TOURNAMENT_ID_PATTERN.match(str(tournament_id)):
            raise TournamentNotFoundError(f'Tournament {tournament_id} not found')
        return os.path.join(self.tournaments_dir, f'{tournament_id}.yaml')

    def _load(self, tournament_id) -> Dict:
        path = self._path(tournament_id)
        if not os.path.exists(path):
            raise TournamentNotFoundError(f'Tournament {tournament_id} not found')
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise BackendError(f'Tournament {tournament_id} could not be read: {e}')
        if not data or 'tournament' not in data:
            raise BackendError(f'Tournament {tournament_id} could not be read')
        data.setdefault('matches', [])
        return data

    def _save(self, tournament_id, data):
        path = self._path(tournament_id)
        tmp_path = path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        os.replace(tmp_path, path)

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def _subscribe(self, registry, tournament_id, callback):
        with self._listener_lock:
            registry.setdefault(tournament_id, []).append(callback)

        def unsubscribe():
            with self._listener_lock:
                callbacks = registry.get(tournament_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    registry.pop(tournament_id, None)

        return unsubscribe

    def subscribe_tournament(self, tournament_id, callback):
        unsubscribe = self._subscribe(self._tournament_listeners, tournament_id, callback)
        try:
            current = self.get_tournament(tournament_id)
        except TournamentNotFoundError:
            current = DELETED
        callback(current)
        return unsubscribe

    def subscribe_matches(self, tournament_id, callback):
        unsubscribe = self._subscribe(self._match_listeners, tournament_id, callback)
        try:
            callback(self.get_matches(tournament_id))
        except TournamentNotFoundError:
            pass
        return unsubscribe

    def _notify(self, tournament_id, data=None, matches_changed=False):
        with self._listener_lock:
            tournament_callbacks = list(self._tournament_listeners.get(tournament_id, []))
            match_callbacks = list(self._match_listeners.get(tournament_id, []))

        if data is None:
            for callback in tournament_callbacks:
                callback(DELETED)
            return

        for callback in tournament_callbacks:
            callback(Tournament.from_dict(data['tournament']))
        if matches_changed:
            for callback in match_callbacks:
                callback([BracketMatch.from_dict(m) for m in data['matches']])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_tournaments(self) -> List[Tournament]:
        tournaments = []
        for name in sorted(os.listdir(self.tournaments_dir)):
            if name.endswith('.yaml'):
                try:
                    tournaments.append(self.get_tournament(name[:-len('.yaml')]))
                except BackendError as e:
                    logger.warning(f'Skipping {name}: {e.message}')
        return tournaments

    def get_tournament(self, tournament_id):
        return Tournament.from_dict(self._load(tournament_id)['tournament'])

    def get_matches(self, tournament_id):
        return [BracketMatch.from_dict(m) for m in self._load(tournament_id)['matches']]

    def can_generate_next_round(self, tournament_id):
        data = self._load(tournament_id)
        tournament = Tournament.from_dict(data['tournament'])
        matches = [BracketMatch.from_dict(m) for m in data['matches']]
        return compute_round_generation_status(tournament, matches)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_tournament(self, data):
        tournament = Tournament.from_dict(data)
        if not tournament.id:
            tournament.id = uuid.uuid4().hex[:12]
        with self._lock:
            if os.path.exists(self._path(tournament.id)):
                raise BackendError(f'Tournament {tournament.id} already exists')
            doc = {'tournament': tournament.to_dict(), 'matches': []}
            self._save(tournament.id, doc)
        logger.info(f'Created tournament {tournament.id}')
        self._notify(tournament.id, doc)
        return tournament

    def update_status(self, tournament_id, new_status, reason=None):
        with self._lock:
            doc = self._load(tournament_id)
            current = doc['tournament']['status']
            if current != new_status and not is_valid_transition(current, new_status):
                raise BackendError(f'Invalid status transition from {current} to {new_status}')
            doc['tournament']['status'] = new_status
            if new_status == TournamentStatus.CANCELLED and reason:
                doc['tournament']['cancellationReason'] = reason
            self._save(tournament_id, doc)
        self._notify(tournament_id, doc)

    def delete_tournament(self, tournament_id):
        with self._lock:
            path = self._path(tournament_id)
            if not os.path.exists(path):
                raise TournamentNotFoundError(f'Tournament {tournament_id} not found')
            os.remove(path)
        logger.info(f'Deleted tournament {tournament_id}')
        self._notify(tournament_id, None)

    def add_participants(self, tournament_id, participants):
        with self._lock:
            doc = self._load(tournament_id)
            tournament = Tournament.from_dict(doc['tournament'])
            if tournament.status not in (TournamentStatus.REGISTRATION, TournamentStatus.BRACKET_GENERATION):
                raise BackendError('Participants can only be added before the bracket is generated')
            existing = {p.player_id for p in tournament.participants}
            for participant in participants:
                if isinstance(participant, dict):
                    participant = Participant.from_dict(participant)
                if not participant.player_id:
                    raise BackendError('Participant is missing a player id')
                if participant.player_id in existing:
                    raise BackendError(f'{participant.player_name or participant.player_id} is already registered')
                existing.add(participant.player_id)
                tournament.participants.append(participant)
            limit = tournament.settings.max_participants
            if limit and len(tournament.participants) > limit:
                raise BackendError('Tournament is full')
            doc['tournament']['participants'] = [p.to_dict() for p in tournament.participants]
            self._save(tournament_id, doc)
        self._notify(tournament_id, doc)

    def remove_participants(self, tournament_id, player_ids):
        with self._lock:
            doc = self._load(tournament_id)
            tournament = Tournament.from_dict(doc['tournament'])
            if tournament.status not in (TournamentStatus.REGISTRATION, TournamentStatus.BRACKET_GENERATION):
                raise BackendError('Participants can only be removed before the bracket is generated')
            removing = set(player_ids)
            existing = {p.player_id for p in tournament.participants}
            for player_id in player_ids:
                if player_id not in existing:
                    raise BackendError(f'Participant {player_id} not found')
            remaining = [p for p in tournament.participants if p.player_id not in removing]
            for participant in remaining:
                if participant.partner_id in removing:
                    participant.partner_id = None
                    participant.partner_name = None
            doc['tournament']['participants'] = [p.to_dict() for p in remaining]
            self._save(tournament_id, doc)
        logger.info(f'Removed {len(removing)} participants from {tournament_id}')
        self._notify(tournament_id, doc)

    def assign_seeds(self, tournament_id, assignments):
        with self._lock:
            doc = self._load(tournament_id)
            by_id = {p['playerId']: p for p in doc['tournament']['participants']}
            for player_id, seed in assignments:
                if player_id not in by_id:
                    raise BackendError(f'Participant {player_id} not found')
            for player_id, seed in assignments:
                by_id[player_id]['seed'] = int(seed or 0)
            self._save(tournament_id, doc)
        self._notify(tournament_id, doc)

    def generate_initial_bracket(self, tournament_id):
        with self._lock:
            doc = self._load(tournament_id)
            tournament = Tournament.from_dict(doc['tournament'])
            if tournament.status not in (TournamentStatus.REGISTRATION, TournamentStatus.BRACKET_GENERATION):
                raise BracketGenerationError(f'Cannot generate a bracket while {tournament.status}')
            if doc['matches']:
                raise BracketGenerationError('Bracket has already been generated')

            units = _bracket_units(tournament)
            if len(units) < 2:
                raise BracketGenerationError('At least 2 participants are required')

            bracket_size = calculate_bracket_size(len(units))
            seed_to_unit = {u['seed']: u for u in units}
            order = _generate_bracket_order(bracket_size)

            matches = []
            for i in range(0, len(order), 2):
                match_number = i // 2 + 1
                player1 = seed_to_unit.get(order[i])
                player2 = seed_to_unit.get(order[i + 1])
                match = {
                    'id': f'{tournament_id}_r1_m{match_number}',
                    'roundNumber': 1,
                    'matchNumber': match_number,
                    'bracketPosition': match_number,
                    'player1': player1,
                    'player2': player2,
                    'status': MatchStatus.SCHEDULED,
                    'score': None,
                    'winnerId': None,
                    'nextMatchId': f'{tournament_id}_r2_m{(match_number + 1) // 2}' if bracket_size > 2 else None,
                }
                if player1 is None or player2 is None:
                    # Bye: the present unit advances without playing
                    match['status'] = MatchStatus.COMPLETED
                    match['winnerId'] = (player1 or player2)['playerId']
                matches.append(match)

            doc['matches'] = matches
            doc['tournament']['currentRound'] = 1
            doc['tournament']['totalRounds'] = calculate_total_rounds(len(units))
            self._save(tournament_id, doc)
        logger.info(f'Generated {len(matches)} first round matches for {tournament_id} '
                    f'({calculate_byes(len(units))} byes)')
        self._notify(tournament_id, doc, matches_changed=True)

    def generate_next_round(self, tournament_id):
        with self._lock:
            doc = self._load(tournament_id)
            tournament = Tournament.from_dict(doc['tournament'])
            matches = [BracketMatch.from_dict(m) for m in doc['matches']]
            status = compute_round_generation_status(tournament, matches)
            if not status.can_generate:
                raise RoundGenerationError(status.reason)

            current_round = build_bracket(matches)['rounds'][-1]
            winners = [m['winner'] for m in current_round['matches']]
            if any(w is None for w in winners):
                raise RoundGenerationError(f'Round {status.current_round} has matches without a winner')

            next_round = status.next_round
            is_last = tournament.total_rounds and next_round >= tournament.total_rounds
            new_matches = []
            for i in range(0, len(winners), 2):
                match_number = i // 2 + 1
                player1 = winners[i]
                player2 = winners[i + 1] if i + 1 < len(winners) else None
                match = {
                    'id': f'{tournament_id}_r{next_round}_m{match_number}',
                    'roundNumber': next_round,
                    'matchNumber': match_number,
                    'bracketPosition': match_number,
                    'player1': {'playerId': player1['player_id'], 'playerName': player1['player_name'],
                                'seed': player1['seed']},
                    'player2': None if player2 is None else {
                        'playerId': player2['player_id'], 'playerName': player2['player_name'],
                        'seed': player2['seed']},
                    'status': MatchStatus.SCHEDULED,
                    'score': None,
                    'winnerId': None,
                    'nextMatchId': None if is_last else f'{tournament_id}_r{next_round + 1}_m{(match_number + 1) // 2}',
                }
                if player2 is None:
                    match['status'] = MatchStatus.COMPLETED
                    match['winnerId'] = player1['player_id']
                new_matches.append(match)

            doc['matches'].extend(new_matches)
            doc['tournament']['currentRound'] = next_round
            self._save(tournament_id, doc)
        logger.info(f'Generated round {next_round} ({len(new_matches)} matches) for {tournament_id}')
        self._notify(tournament_id, doc, matches_changed=True)

    def submit_match_result(self, tournament_id, match_id, winner_id, score=None):
        with self._lock:
            doc = self._load(tournament_id)
            if doc['tournament']['status'] != TournamentStatus.IN_PROGRESS:
                raise BackendError('Results can only be recorded while the tournament is in progress')
            match = next((m for m in doc['matches'] if m['id'] == match_id), None)
            if match is None:
                raise BackendError(f'Match {match_id} not found')
            if match['status'] in MatchStatus.TERMINAL:
                raise BackendError('This match already has a result')
            if not match.get('player1') or not match.get('player2'):
                raise BackendError('Both players must be known before recording a result')

            if winner_id == match['player1']['playerId']:
                side = 'player1'
            elif winner_id == match['player2']['playerId']:
                side = 'player2'
            else:
                raise BackendError(f'{winner_id} is not playing in match {match_id}')

            score = dict(score or {})
            score['winner'] = side
            match['score'] = score
            match['winnerId'] = winner_id
            match['status'] = MatchStatus.COMPLETED
            self._save(tournament_id, doc)
        self._notify(tournament_id, doc, matches_changed=True)
