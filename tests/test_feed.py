"""
Unit tests for change-feed handling.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.config import Settings
from tourney.feed import TournamentFeed
from tourney.lifecycle import TournamentLifecycleController
from tourney.models import TournamentStatus
from tourney.reconciler import EXTERNAL_DELETION_NOTICE, DeletionReconciler
from tourney.rounds import RoundGenerationAdvisor


@pytest.fixture
def parts(backend, scheduler, tmp_path):
    settings = Settings(data_dir=str(tmp_path))
    advisor = RoundGenerationAdvisor(backend, scheduler=scheduler, settings=settings)
    controller = TournamentLifecycleController(backend, advisor=advisor, settings=settings)
    removed = []
    feed = TournamentFeed(backend, controller, advisor, on_removed=lambda tid, notice: removed.append((tid, notice)))
    return feed, controller, advisor, removed


class TestTournamentFeed:
    """Tests for TournamentFeed."""

    def test_watch_subscribes_once(self, backend, parts):
        """Test watching twice keeps one subscription per feed."""
        feed, _, _, _ = parts
        feed.watch('t1')
        feed.watch('t1')
        assert len(backend.tournament_listeners['t1']) == 1
        assert len(backend.match_listeners['t1']) == 1

    def test_tournament_state_stored(self, backend, parts, make_tournament):
        """Test delivered states become the current state."""
        feed, _, _, _ = parts
        feed.watch('t1')
        backend.emit('t1', make_tournament(status=TournamentStatus.REGISTRATION))
        assert feed.tournaments['t1'].status == TournamentStatus.REGISTRATION

    def test_feed_confirms_transition(self, backend, parts, make_tournament):
        """Test the controller's pending status is cleared by the feed."""
        feed, controller, _, _ = parts
        feed.watch('t1')
        draft = make_tournament(status=TournamentStatus.DRAFT)
        backend.emit('t1', draft)
        controller.open_registration(draft)
        assert controller.pending_transition('t1') == TournamentStatus.REGISTRATION
        backend.emit('t1', make_tournament(status=TournamentStatus.REGISTRATION))
        assert controller.pending_transition('t1') is None

    def test_matches_invalidate_round_status(self, backend, parts, make_match):
        """Test a match update forces a fresh round status."""
        feed, _, advisor, _ = parts
        feed.watch('t1')
        advisor.get_status('t1')
        backend.emit_matches('t1', [make_match('m1', 1, 1, 'p1', 'p2')])
        advisor.get_status('t1')
        assert len(backend.calls_to('can_generate_next_round')) == 2
        assert [m.id for m in feed.matches['t1']] == ['m1']

    def test_external_deletion(self, backend, parts, make_tournament, deleted):
        """Test another client's delete produces the notice."""
        feed, _, _, removed = parts
        feed.watch('t1')
        backend.emit('t1', make_tournament())
        backend.emit('t1', deleted)
        assert removed == [('t1', EXTERNAL_DELETION_NOTICE)]
        assert feed.notices == [('t1', EXTERNAL_DELETION_NOTICE)]
        assert 't1' not in feed.tournaments
        assert not feed.is_watching('t1')
        assert backend.tournament_listeners['t1'] == []

    def test_self_deletion_silent(self, backend, parts, make_tournament, deleted):
        """Test a delete issued here produces no notice."""
        feed, controller, _, removed = parts
        feed.watch('t1')
        tournament = make_tournament()
        backend.emit('t1', tournament)
        backend.hooks['delete_tournament'] = lambda tid: backend.emit(tid, deleted)
        controller.delete_tournament(tournament)
        assert removed == [('t1', None)]
        assert feed.notices == []

    def test_unknown_tournament_no_notice(self, backend, parts, deleted):
        """Test a tournament never seen here is not announced as deleted."""
        feed, _, _, removed = parts
        feed.watch('missing')
        backend.emit('missing', deleted)
        assert removed == []
        assert feed.notices == []

    def test_close(self, backend, parts):
        """Test closing the view drops every subscription."""
        feed, _, _, _ = parts
        feed.watch('t1')
        feed.watch('t2')
        feed.close()
        assert backend.tournament_listeners['t1'] == []
        assert backend.match_listeners['t2'] == []
        assert not feed.is_watching('t1')

    def test_self_deletion_silent_in_every_view(self, store, make_tournament, make_singles):
        """Test two views of the same tournament both stay quiet after a local delete."""
        store.create_tournament(make_tournament(make_singles(2)).to_dict())
        controller = TournamentLifecycleController(store)
        first = TournamentFeed(store, controller)
        second = TournamentFeed(store, controller)
        first.watch('t1')
        second.watch('t1')
        controller.delete_tournament(first.tournaments['t1'])
        assert first.notices == []
        assert second.notices == []
        assert 't1' not in first.tournaments and 't1' not in second.tournaments

    def test_removal_after_grace_is_external(self, store, make_tournament, make_singles):
        """Test a tournament recreated and removed by someone else later is announced."""
        now = [0.0]
        reconciler = DeletionReconciler(grace_seconds=5, clock=lambda: now[0])
        controller = TournamentLifecycleController(store, reconciler)
        store.create_tournament(make_tournament(make_singles(2)).to_dict())
        feed = TournamentFeed(store, controller)
        feed.watch('t1')
        controller.delete_tournament(feed.tournaments['t1'])
        store.create_tournament(make_tournament(make_singles(2)).to_dict())
        feed.watch('t1')
        now[0] = 10.0
        store.delete_tournament('t1')
        assert feed.notices == [('t1', EXTERNAL_DELETION_NOTICE)]
