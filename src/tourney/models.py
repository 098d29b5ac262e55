"""
Tournament, participant and bracket match records.

Records arrive from the backend as plain documents; ``from_dict`` accepts both
the camelCase keys used by stored documents and snake_case keys.
"""


class TournamentStatus:
    DRAFT = 'draft'
    REGISTRATION = 'registration'
    BRACKET_GENERATION = 'bracket_generation'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    ALL = (DRAFT, REGISTRATION, BRACKET_GENERATION, IN_PROGRESS, COMPLETED, CANCELLED)
    TERMINAL = (COMPLETED, CANCELLED)


class EventType:
    MENS_SINGLES = 'mens_singles'
    WOMENS_SINGLES = 'womens_singles'
    MENS_DOUBLES = 'mens_doubles'
    WOMENS_DOUBLES = 'womens_doubles'
    MIXED_DOUBLES = 'mixed_doubles'

    DOUBLES = (MENS_DOUBLES, WOMENS_DOUBLES, MIXED_DOUBLES)


class SeedingMethod:
    MANUAL = 'manual'
    AUTO = 'auto'
    # Older records name the automatic strategy instead of saying 'auto'
    AUTOMATIC = (AUTO, 'ranking', 'rating', 'random', 'snake')


class MatchStatus:
    SCHEDULED = 'scheduled'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CONFIRMED = 'confirmed'

    TERMINAL = (COMPLETED, CONFIRMED)


def _get(data, *keys, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _to_int(value):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class TournamentSettings:
    def __init__(self, seeding_method=SeedingMethod.MANUAL, max_participants=None,
                 match_format=None, min_participants=None):
        self.seeding_method = seeding_method
        self.max_participants = max_participants
        self.match_format = match_format
        self.min_participants = min_participants

    @property
    def is_manual_seeding(self):
        return self.seeding_method == SeedingMethod.MANUAL

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            seeding_method=_get(data, 'seedingMethod', 'seeding_method', default=SeedingMethod.MANUAL),
            max_participants=_to_int(_get(data, 'maxParticipants', 'max_participants')),
            match_format=_get(data, 'matchFormat', 'match_format'),
            min_participants=_to_int(_get(data, 'minParticipants', 'min_participants')),
        )

    def to_dict(self):
        return {
            'seedingMethod': self.seeding_method,
            'maxParticipants': self.max_participants,
            'matchFormat': self.match_format,
            'minParticipants': self.min_participants,
        }

    def __repr__(self):
        return (f"TournamentSettings(seeding_method={self.seeding_method}, "
                f"max_participants={self.max_participants}, match_format={self.match_format})")


class Participant:
    def __init__(self, player_id, player_name='', skill_level=None, seed=None,
                 partner_id=None, partner_name=None):
        self.player_id = player_id
        self.player_name = player_name
        self.skill_level = skill_level
        self.seed = seed if seed else None  # 0 means unseeded
        self.partner_id = partner_id or None
        self.partner_name = partner_name

    @property
    def has_seed(self):
        return self.seed is not None and self.seed > 0

    @classmethod
    def from_dict(cls, data):
        return cls(
            player_id=_get(data, 'playerId', 'player_id'),
            player_name=_get(data, 'playerName', 'player_name', default=''),
            skill_level=_get(data, 'skillLevel', 'skill_level'),
            seed=_to_int(_get(data, 'seed')),
            partner_id=_get(data, 'partnerId', 'partner_id'),
            partner_name=_get(data, 'partnerName', 'partner_name'),
        )

    def to_dict(self):
        data = {
            'playerId': self.player_id,
            'playerName': self.player_name,
            'skillLevel': self.skill_level,
            'seed': self.seed or 0,
        }
        if self.partner_id:
            data['partnerId'] = self.partner_id
            data['partnerName'] = self.partner_name
        return data

    def __repr__(self):
        return (f"Participant(player_id={self.player_id}, player_name={self.player_name}, "
                f"seed={self.seed}, partner_id={self.partner_id})")


class DoublesTeam:
    """Two partnered participants. Built from the participant list, never stored."""

    def __init__(self, team_id, player1, player2, team_name=None):
        self.team_id = team_id
        self.player1 = player1
        self.player2 = player2
        self.team_name = team_name or f"{player1.player_name} / {player2.player_name}"

    @property
    def seed(self):
        # Partners share one seed; a mismatch means the team is not seeded yet
        if self.player1.seed == self.player2.seed:
            return self.player1.seed
        return None

    @property
    def player_ids(self):
        return (self.player1.player_id, self.player2.player_id)

    def to_dict(self):
        return {
            'teamId': self.team_id,
            'teamName': self.team_name,
            'seed': self.seed or 0,
            'player1': self.player1.to_dict(),
            'player2': self.player2.to_dict(),
        }

    def __repr__(self):
        return f"DoublesTeam(team_id={self.team_id}, team_name={self.team_name}, seed={self.seed})"


class Tournament:
    def __init__(self, id, name='', status=TournamentStatus.DRAFT, event_type=EventType.MENS_SINGLES,
                 settings=None, participants=None, current_round=None, total_rounds=None):
        self.id = id
        self.name = name
        self.status = status
        self.event_type = event_type
        self.settings = settings if settings else TournamentSettings()
        self.participants = participants if participants else []
        self.current_round = current_round
        self.total_rounds = total_rounds

    @property
    def is_terminal(self):
        return self.status in TournamentStatus.TERMINAL

    @property
    def is_doubles(self):
        return self.event_type in EventType.DOUBLES

    def find_participant(self, player_id):
        for participant in self.participants:
            if participant.player_id == player_id:
                return participant
        return None

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=_get(data, 'id'),
            name=_get(data, 'tournamentName', 'name', default=''),
            status=_get(data, 'status', default=TournamentStatus.DRAFT),
            event_type=_get(data, 'eventType', 'event_type', default=EventType.MENS_SINGLES),
            settings=TournamentSettings.from_dict(_get(data, 'settings', default={})),
            participants=[Participant.from_dict(p) for p in _get(data, 'participants', default=[])],
            current_round=_to_int(_get(data, 'currentRound', 'current_round')),
            total_rounds=_to_int(_get(data, 'totalRounds', 'total_rounds')),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'tournamentName': self.name,
            'status': self.status,
            'eventType': self.event_type,
            'settings': self.settings.to_dict(),
            'participants': [p.to_dict() for p in self.participants],
            'currentRound': self.current_round,
            'totalRounds': self.total_rounds,
        }

    def __repr__(self):
        return (f"Tournament(id={self.id}, status={self.status}, event_type={self.event_type}, "
                f"participants={len(self.participants)})")


def slot_from_dict(data):
    """Normalize a bracket slot. Empty slots (bye or TBD) become None."""
    if not data:
        return None
    player_id = _get(data, 'playerId', 'player_id')
    if not player_id:
        return None
    return {
        'player_id': player_id,
        'player_name': _get(data, 'playerName', 'player_name', default=''),
        'seed': _to_int(_get(data, 'seed')) or 0,
    }


def slot_to_dict(slot):
    if slot is None:
        return None
    return {'playerId': slot['player_id'], 'playerName': slot['player_name'], 'seed': slot['seed']}


class BracketMatch:
    def __init__(self, id, round_number, match_number=None, bracket_position=None,
                 player1=None, player2=None, status=MatchStatus.SCHEDULED, score=None,
                 winner_id=None, legacy_winner_id=None, next_match_id=None):
        self.id = id
        self.round_number = round_number
        self.match_number = match_number
        self.bracket_position = bracket_position
        self.player1 = player1
        self.player2 = player2
        self.status = status
        self.score = score
        self.winner_id = winner_id
        self.legacy_winner_id = legacy_winner_id
        self.next_match_id = next_match_id

    @property
    def is_terminal(self):
        return self.status in MatchStatus.TERMINAL

    @classmethod
    def from_dict(cls, data):
        next_match = _get(data, 'nextMatch', 'next_match')
        next_match_id = _get(data, 'nextMatchId', 'next_match_id')
        if next_match_id is None and isinstance(next_match, dict):
            next_match_id = _get(next_match, 'matchId', 'match_id')
        return cls(
            id=_get(data, 'id'),
            round_number=_to_int(_get(data, 'roundNumber', 'round_number')),
            match_number=_to_int(_get(data, 'matchNumber', 'match_number')),
            bracket_position=_to_int(_get(data, 'bracketPosition', 'bracket_position')),
            player1=slot_from_dict(_get(data, 'player1')),
            player2=slot_from_dict(_get(data, 'player2')),
            status=_get(data, 'status', default=MatchStatus.SCHEDULED),
            score=_get(data, 'score'),
            winner_id=_get(data, 'winnerId', 'winner_id'),
            legacy_winner_id=_get(data, '_winner'),
            next_match_id=next_match_id,
        )

    def to_dict(self):
        data = {
            'id': self.id,
            'roundNumber': self.round_number,
            'matchNumber': self.match_number,
            'bracketPosition': self.bracket_position,
            'player1': slot_to_dict(self.player1),
            'player2': slot_to_dict(self.player2),
            'status': self.status,
            'score': self.score,
            'winnerId': self.winner_id,
            'nextMatchId': self.next_match_id,
        }
        if self.legacy_winner_id:
            data['_winner'] = self.legacy_winner_id
        return data

    def __repr__(self):
        return (f"BracketMatch(id={self.id}, round_number={self.round_number}, "
                f"match_number={self.match_number}, status={self.status})")


class RoundGenerationStatus:
    def __init__(self, can_generate, reason=None, current_round=None, next_round=None):
        self.can_generate = can_generate
        self.reason = reason
        self.current_round = current_round
        self.next_round = next_round

    @classmethod
    def from_dict(cls, data):
        return cls(
            can_generate=bool(_get(data, 'canGenerate', 'can_generate', default=False)),
            reason=_get(data, 'reason'),
            current_round=_to_int(_get(data, 'currentRound', 'current_round')),
            next_round=_to_int(_get(data, 'nextRound', 'next_round')),
        )

    def to_dict(self):
        return {
            'canGenerate': self.can_generate,
            'reason': self.reason,
            'currentRound': self.current_round,
            'nextRound': self.next_round,
        }

    def __eq__(self, other):
        if not isinstance(other, RoundGenerationStatus):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"RoundGenerationStatus(can_generate={self.can_generate}, reason={self.reason}, "
                f"current_round={self.current_round}, next_round={self.next_round})")
