"""
Bracket view reconstruction from the flat match list.

Matches are grouped by their stored round number only. Round numbers are never
inferred from match counts or positions: if upstream data is wrong, the
bracket shows it wrong.
"""
import copy
import logging
import math
from typing import Dict, List, Optional

from tourney.models import MatchStatus

logger = logging.getLogger(__name__)


def get_round_name(round_number: int, total_rounds: int) -> str:
    """Get the name of a round from its distance to the final."""
    if total_rounds <= 0 or round_number > total_rounds:
        return f"Round {round_number}"
    players_in_round = 2 ** (total_rounds - round_number + 1)
    if players_in_round == 2:
        return "Final"
    elif players_in_round == 4:
        return "Semifinal"
    elif players_in_round == 8:
        return "Quarterfinal"
    elif players_in_round <= 64:
        return f"Round of {players_in_round}"
    else:
        return f"Round {round_number}"


def calculate_bracket_size(num_units: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_units <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_units))


def calculate_byes(num_units: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_units) - num_units


def calculate_total_rounds(num_units: int) -> int:
    """Rounds in a single elimination bracket (8 units = 3 rounds)."""
    if num_units <= 1:
        return 0
    return math.ceil(math.log2(num_units))


def is_terminal_match_status(status: str) -> bool:
    return status in MatchStatus.TERMINAL


def resolve_winner(match) -> Optional[Dict]:
    """
    Resolve the winning slot of a match.

    Priority: winner_id, then the legacy _winner field, then score['winner']
    ('player1' / 'player2') for completed matches. An id that matches neither
    slot does not resolve.
    """
    slots = [s for s in (match.player1, match.player2) if s]

    for candidate in (match.winner_id, match.legacy_winner_id):
        if not candidate:
            continue
        for slot in slots:
            if slot['player_id'] == candidate:
                return dict(slot)

    if match.status == MatchStatus.COMPLETED and isinstance(match.score, dict):
        side = match.score.get('winner')
        if side == 'player1' and match.player1:
            return dict(match.player1)
        if side == 'player2' and match.player2:
            return dict(match.player2)

    return None


def _order_key(match):
    position = match.match_number if match.match_number is not None else match.bracket_position
    return (position is None, position if position is not None else 0)


def _match_view(match, first_round: int) -> Dict:
    return {
        'id': match.id,
        'round_number': match.round_number,
        'match_number': match.match_number if match.match_number is not None else match.bracket_position,
        'player1': dict(match.player1) if match.player1 else None,
        'player2': dict(match.player2) if match.player2 else None,
        'winner': resolve_winner(match),
        'status': match.status,
        'score': copy.deepcopy(match.score),
        'next_match_id': match.next_match_id,
        'is_bye': match.round_number == first_round and (match.player1 is None) != (match.player2 is None),
    }


def build_bracket(matches: List, total_rounds: Optional[int] = None) -> Dict:
    """
    Group matches into ordered rounds and find the champion.

    Args:
        matches: BracketMatch records in any order
        total_rounds: Planned number of rounds, used only for round names

    Returns:
        {'rounds': [{'round_number', 'name', 'matches'}], 'champion', 'total_rounds'}
    """
    rounds_map = {}
    for match in matches:
        if match.round_number is None:
            logger.warning(f"Match {match.id} has no round number; left out of the bracket")
            continue
        rounds_map.setdefault(match.round_number, []).append(match)

    if not rounds_map:
        return {'rounds': [], 'champion': None, 'total_rounds': total_rounds or 0}

    round_numbers = sorted(rounds_map)
    first_round = round_numbers[0]
    naming_total = total_rounds or round_numbers[-1]

    rounds = []
    for round_number in round_numbers:
        ordered = sorted(rounds_map[round_number], key=_order_key)
        rounds.append({
            'round_number': round_number,
            'name': get_round_name(round_number, naming_total),
            'matches': [_match_view(m, first_round) for m in ordered],
        })

    champion = None
    final_matches = rounds[-1]['matches']
    if len(final_matches) == 1:
        champion = final_matches[0]['winner']

    return {
        'rounds': rounds,
        'champion': champion,
        'total_rounds': naming_total,
    }
