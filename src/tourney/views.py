"""
Derived views handed to presentation code.
"""
from typing import Dict, List, Optional

from tourney.bracket import build_bracket
from tourney.models import TournamentStatus
from tourney.seeding import get_seed_summary
from tourney.teams import get_doubles_team_display


def get_tournament_views(tournament, matches: List, controller, advisor=None) -> Dict:
    """Bundle every derived view of one tournament."""
    round_generation: Optional[Dict] = None
    if advisor is not None and tournament.status == TournamentStatus.IN_PROGRESS:
        round_generation = advisor.get_status(tournament.id).to_dict()
        round_generation['generating'] = advisor.is_generating(tournament.id)

    return {
        'tournament': tournament.to_dict(),
        'bracket': build_bracket(matches, tournament.total_rounds),
        'seeding': get_seed_summary(tournament),
        'teams': get_doubles_team_display(tournament),
        'round_generation': round_generation,
        'actions': controller.available_actions(tournament, matches),
        'pending_status': controller.pending_transition(tournament.id),
    }
