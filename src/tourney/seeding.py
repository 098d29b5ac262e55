"""
Manual seeding validation and seed assignment.

A unit is one participant in singles and one team in doubles. Manual seeding
is complete only when the distinct seeds held by the units are exactly
1..N for N units.
"""
import logging
from typing import Dict, List, Tuple

from tourney.errors import SeedValidationError, TeamPairingError
from tourney.models import DoublesTeam, SeedingMethod
from tourney.teams import group_into_teams

logger = logging.getLogger(__name__)


def get_seed_units(tournament) -> List:
    """Teams for doubles events, participants otherwise."""
    if tournament.is_doubles:
        return group_into_teams(tournament.participants)
    return list(tournament.participants)


def unit_count(tournament) -> int:
    return len(get_seed_units(tournament))


def _unit_players(unit):
    if isinstance(unit, DoublesTeam):
        return [unit.player1, unit.player2]
    return [unit]


def _unit_name(unit):
    if isinstance(unit, DoublesTeam):
        return unit.team_name
    return unit.player_name or unit.player_id


def _unit_seed(unit):
    seed = unit.seed
    return seed if seed and seed > 0 else None


def _assigned_seeds(units) -> List[int]:
    return [seed for seed in (_unit_seed(u) for u in units) if seed is not None]


def is_seeding_complete(tournament) -> bool:
    """
    True when every unit holds a distinct seed and the seeds are exactly 1..N.

    Automatic seeding is always complete; the bracket generator assigns seeds.
    With no units there is nothing to seed, so manual seeding is never
    complete; such a tournament also fails the minimum participant check.
    """
    if not tournament.settings.is_manual_seeding:
        return True

    try:
        units = get_seed_units(tournament)
    except TeamPairingError:
        return False

    total = len(units)
    if total == 0:
        return False

    distinct = sorted(set(_assigned_seeds(units)))
    if len(distinct) != total:
        logger.debug(f"Tournament {tournament.id}: {len(distinct)} distinct seeds for {total} units")
        return False
    return distinct == list(range(1, total + 1))


def get_seed_summary(tournament) -> Dict:
    """Seeding state for display: which numbers are taken, missing or repeated."""
    try:
        units = get_seed_units(tournament)
    except TeamPairingError as e:
        return {'complete': False, 'unit_count': 0, 'assigned': [], 'missing': [],
                'duplicates': [], 'error': e.message}

    total = len(units)
    seeds = _assigned_seeds(units)
    duplicates = sorted({s for s in seeds if seeds.count(s) > 1})
    return {
        'complete': is_seeding_complete(tournament),
        'unit_count': total,
        'assigned': sorted(set(seeds)),
        'missing': [s for s in range(1, total + 1) if s not in seeds],
        'duplicates': duplicates,
        'error': None,
    }


def _parse_seed(seed_value):
    """Returns the seed as an int, or 0 for a clear request."""
    if seed_value is None:
        return 0
    if isinstance(seed_value, bool):
        raise SeedValidationError('Seed must be a whole number', code='invalid_seed')
    if isinstance(seed_value, str):
        seed_value = seed_value.strip()
        if seed_value == '':
            return 0
        try:
            return int(seed_value)
        except ValueError:
            raise SeedValidationError('Seed must be a whole number', code='invalid_seed')
    if isinstance(seed_value, int):
        return seed_value
    raise SeedValidationError('Seed must be a whole number', code='invalid_seed')


def _find_unit(units, target_id):
    for unit in units:
        if isinstance(unit, DoublesTeam):
            if target_id == unit.team_id or target_id in unit.player_ids:
                return unit
        elif unit.player_id == target_id:
            return unit
    return None


def assign_seed(tournament, target_player_id, seed_value) -> List[Tuple[str, int]]:
    """
    Validate a seed change and return the (player_id, seed) pairs to persist.

    For doubles both partners always receive the same value. A seed of 0, None
    or '' clears the seed. No-op changes return an empty list.
    """
    seed = _parse_seed(seed_value)
    units = get_seed_units(tournament)
    total = len(units)

    unit = _find_unit(units, target_player_id)
    if unit is None:
        raise SeedValidationError(f"Participant {target_player_id} is not part of this tournament",
                                  code='unknown_participant')

    players = _unit_players(unit)

    if seed == 0:
        if not any(p.has_seed for p in players):
            return []
        return [(p.player_id, 0) for p in players]

    if seed < 1 or seed > total:
        raise SeedValidationError(f"Seed must be between 1 and {total}", code='seed_out_of_range')

    if all(p.seed == seed for p in players):
        return []

    for other in units:
        if other is unit:
            continue
        if any(p.seed == seed for p in _unit_players(other)):
            raise SeedValidationError(f"Seed {seed} is already assigned to {_unit_name(other)}",
                                      code='duplicate_seed')

    return [(p.player_id, seed) for p in players]
