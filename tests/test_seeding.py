"""
Unit tests for manual seeding.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.errors import SeedValidationError
from tourney.models import EventType, SeedingMethod
from tourney.seeding import assign_seed, get_seed_summary, is_seeding_complete, unit_count


class TestSeedingComplete:
    """Tests for is_seeding_complete."""

    def test_complete_singles(self, make_tournament, make_singles):
        """Test seeds 1..N on N players are complete."""
        assert is_seeding_complete(make_tournament(make_singles(4, seeds=[3, 1, 4, 2])))

    def test_missing_seed(self, make_tournament, make_singles):
        """Test an unseeded player makes seeding incomplete."""
        assert not is_seeding_complete(make_tournament(make_singles(4, seeds=[1, 2, 3, None])))

    def test_duplicate_seed(self, make_tournament, make_singles):
        """Test duplicates are incomplete even when the count matches."""
        assert not is_seeding_complete(make_tournament(make_singles(3, seeds=[1, 1, 2])))

    def test_seed_out_of_range(self, make_tournament, make_singles):
        """Test seeds must be exactly 1..N, not any N distinct numbers."""
        assert not is_seeding_complete(make_tournament(make_singles(3, seeds=[1, 2, 4])))

    def test_empty_tournament(self, make_tournament):
        """Test a tournament without participants is never seeded."""
        assert not is_seeding_complete(make_tournament([]))

    def test_automatic_seeding_always_complete(self, make_tournament, make_singles):
        """Test automatic seeding does not require manual seeds."""
        tournament = make_tournament(make_singles(4), seeding_method='ranking')
        assert is_seeding_complete(tournament)

    def test_doubles_counts_teams(self, make_tournament, make_doubles):
        """Test doubles needs seeds 1..teams, shared by partners."""
        tournament = make_tournament(make_doubles(3, seeds=[2, 3, 1]), event_type=EventType.MIXED_DOUBLES)
        assert unit_count(tournament) == 3
        assert is_seeding_complete(tournament)

    def test_doubles_partner_mismatch(self, make_tournament, make_doubles):
        """Test a team whose partners disagree counts as unseeded."""
        participants = make_doubles(2, seeds=[1, 2])
        participants[3].seed = 1
        tournament = make_tournament(participants, event_type=EventType.MIXED_DOUBLES)
        assert not is_seeding_complete(tournament)


class TestSeedSummary:
    """Tests for get_seed_summary."""

    def test_summary_lists_missing_and_duplicates(self, make_tournament, make_singles):
        """Test the summary names what needs fixing."""
        summary = get_seed_summary(make_tournament(make_singles(4, seeds=[1, 1, 3, None])))
        assert summary['missing'] == [2, 4]
        assert summary['duplicates'] == [1]
        assert summary['assigned'] == [1, 3]
        assert not summary['complete']

    def test_summary_pairing_error(self, make_tournament, make_doubles):
        """Test pairing problems are reported instead of raised."""
        participants = make_doubles(2)
        participants[0].partner_id = 'nobody'
        summary = get_seed_summary(make_tournament(participants, event_type=EventType.MENS_DOUBLES))
        assert summary['error']
        assert not summary['complete']


class TestAssignSeed:
    """Tests for assign_seed."""

    def test_assign_singles(self, make_tournament, make_singles):
        """Test a valid seed is returned for the one player."""
        assert assign_seed(make_tournament(make_singles(4)), 'p2', 3) == [('p2', 3)]

    def test_string_seed(self, make_tournament, make_singles):
        """Test numeric strings are accepted."""
        assert assign_seed(make_tournament(make_singles(4)), 'p2', ' 2 ') == [('p2', 2)]

    def test_doubles_assigns_both_partners(self, make_tournament, make_doubles):
        """Test seeding one partner seeds the whole team."""
        tournament = make_tournament(make_doubles(2), event_type=EventType.MIXED_DOUBLES)
        assert sorted(assign_seed(tournament, 'b2', 1)) == [('a2', 1), ('b2', 1)]

    def test_doubles_by_team_id(self, make_tournament, make_doubles):
        """Test a team id is accepted as the target."""
        tournament = make_tournament(make_doubles(2), event_type=EventType.MIXED_DOUBLES)
        assert sorted(assign_seed(tournament, 'a1_b1', 2)) == [('a1', 2), ('b1', 2)]

    @pytest.mark.parametrize('value', [0, None, ''])
    def test_clear_seed(self, make_tournament, make_singles, value):
        """Test 0, None and empty string clear a seed."""
        tournament = make_tournament(make_singles(3, seeds=[1, 2, None]))
        assert assign_seed(tournament, 'p1', value) == [('p1', 0)]

    def test_clear_unseeded_is_noop(self, make_tournament, make_singles):
        """Test clearing an empty seed produces nothing to persist."""
        assert assign_seed(make_tournament(make_singles(3)), 'p1', 0) == []

    def test_same_seed_is_noop(self, make_tournament, make_singles):
        """Test re-assigning the current seed produces nothing to persist."""
        tournament = make_tournament(make_singles(3, seeds=[1, None, None]))
        assert assign_seed(tournament, 'p1', 1) == []

    @pytest.mark.parametrize('value', [-1, 5, 100])
    def test_out_of_range(self, make_tournament, make_singles, value):
        """Test seeds outside 1..N are rejected."""
        with pytest.raises(SeedValidationError) as exc_info:
            assign_seed(make_tournament(make_singles(4)), 'p1', value)
        assert exc_info.value.code == 'seed_out_of_range'
        assert 'between 1 and 4' in exc_info.value.message

    def test_doubles_range_counts_teams(self, make_tournament, make_doubles):
        """Test the doubles upper bound is the team count, not the player count."""
        tournament = make_tournament(make_doubles(2), event_type=EventType.MIXED_DOUBLES)
        with pytest.raises(SeedValidationError):
            assign_seed(tournament, 'a1', 3)

    def test_duplicate_rejected(self, make_tournament, make_singles):
        """Test a seed held by another player is rejected with their name."""
        tournament = make_tournament(make_singles(3, seeds=[1, None, None]))
        with pytest.raises(SeedValidationError) as exc_info:
            assign_seed(tournament, 'p2', 1)
        assert exc_info.value.code == 'duplicate_seed'
        assert 'Player 1' in exc_info.value.message

    def test_duplicate_team_seed_rejected(self, make_tournament, make_doubles):
        """Test a seed held by another team is rejected."""
        tournament = make_tournament(make_doubles(2, seeds=[1, None]), event_type=EventType.MIXED_DOUBLES)
        with pytest.raises(SeedValidationError) as exc_info:
            assign_seed(tournament, 'a2', 1)
        assert 'Alex 1 / Blake 1' in exc_info.value.message

    @pytest.mark.parametrize('value', ['abc', '1.5', True, 2.0])
    def test_non_integer_rejected(self, make_tournament, make_singles, value):
        """Test values that are not whole numbers are rejected."""
        with pytest.raises(SeedValidationError) as exc_info:
            assign_seed(make_tournament(make_singles(3)), 'p1', value)
        assert exc_info.value.code == 'invalid_seed'

    def test_unknown_participant(self, make_tournament, make_singles):
        """Test unknown player ids are rejected."""
        with pytest.raises(SeedValidationError) as exc_info:
            assign_seed(make_tournament(make_singles(3)), 'ghost', 1)
        assert exc_info.value.code == 'unknown_participant'

    def test_assigning_all_seeds_completes(self, make_tournament, make_singles):
        """Test applying valid assignments one by one reaches a complete seeding."""
        tournament = make_tournament(make_singles(3), seeding_method=SeedingMethod.MANUAL)
        for player_id, seed in (('p3', 1), ('p1', 2), ('p2', 3)):
            for pid, value in assign_seed(tournament, player_id, seed):
                tournament.find_participant(pid).seed = value
        assert is_seeding_complete(tournament)
