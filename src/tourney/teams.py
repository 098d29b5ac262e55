"""
Doubles team derivation from the flat participant list.
"""
import logging
from typing import Dict, List, Optional

from tourney.errors import TeamPairingError
from tourney.models import DoublesTeam, EventType, Participant

logger = logging.getLogger(__name__)


def is_doubles_event(event_type: str) -> bool:
    return event_type in EventType.DOUBLES


def make_team_id(player_id: str, partner_id: str) -> str:
    """Team id is independent of which partner is listed first."""
    return '_'.join(sorted((str(player_id), str(partner_id))))


def group_into_teams(participants: List[Participant],
                     team_names: Optional[Dict[str, str]] = None) -> List[DoublesTeam]:
    """
    Combine partnered participants into doubles teams.

    Each participant carrying a partner_id is paired with the participant it
    names; the partner is consumed and not emitted again. Participants without
    a partner_id are left out.

    Raises TeamPairingError when a partner link points to a missing
    participant or is not reciprocated.
    """
    team_names = team_names or {}
    by_id = {p.player_id: p for p in participants}
    consumed = set()
    teams = []
    problems = []
    bad_ids = []

    for participant in participants:
        if participant.player_id in consumed or not participant.partner_id:
            continue

        partner = by_id.get(participant.partner_id)
        if partner is None:
            problems.append(f"{participant.player_name or participant.player_id} names partner "
                            f"{participant.partner_id}, who is not registered")
            bad_ids.append(participant.player_id)
            continue
        if partner.partner_id != participant.player_id or partner.player_id in consumed:
            problems.append(f"{participant.player_name or participant.player_id} names "
                            f"{partner.player_name or partner.player_id} as partner, "
                            f"but the link is not mutual")
            bad_ids.extend([participant.player_id, partner.player_id])
            continue

        team_id = make_team_id(participant.player_id, partner.player_id)
        teams.append(DoublesTeam(team_id, participant, partner, team_names.get(team_id)))
        consumed.add(participant.player_id)
        consumed.add(partner.player_id)

    if problems:
        logger.warning(f"Inconsistent partner links: {'; '.join(problems)}")
        raise TeamPairingError('; '.join(problems), player_ids=bad_ids)

    return teams


def get_doubles_team_display(tournament) -> Dict:
    """
    Doubles team list for display, with an explicit warning state.

    warning is one of None, 'no_participants', 'no_teams' or 'pairing_error'.
    """
    display = {'teams': [], 'warning': None, 'message': None, 'unpaired': []}
    if not is_doubles_event(tournament.event_type):
        return display

    participants = tournament.participants
    if not participants:
        display['warning'] = 'no_participants'
        return display

    try:
        teams = group_into_teams(participants)
    except TeamPairingError as e:
        display['warning'] = 'pairing_error'
        display['message'] = e.message
        display['unpaired'] = e.player_ids
        return display

    display['teams'] = [team.to_dict() for team in teams]
    display['unpaired'] = [p.player_id for p in participants if not p.partner_id]

    if not teams:
        logger.error(f"Tournament {tournament.id}: {len(participants)} participants but no doubles teams")
        display['warning'] = 'no_teams'
        display['message'] = (f"{len(participants)} participants are registered but no doubles teams "
                              f"could be formed. Check partner assignments.")
    return display
