"""
Flask JSON service for club tournament management.
"""
import os
from typing import Dict

from flask import Flask, jsonify, request

from tourney.config import load_settings
from tourney.errors import BackendError, TournamentNotFoundError, ValidationError
from tourney.feed import TournamentFeed
from tourney.lifecycle import TournamentLifecycleController, validate_participant_settings
from tourney.models import Participant
from tourney.reconciler import DeletionReconciler
from tourney.rounds import RoundGenerationAdvisor
from tourney.store import YamlTournamentStore
from tourney.views import get_tournament_views

app = Flask(__name__)

_engine: Dict = {}


def configure(data_dir=None, scheduler=None) -> Dict:
    """Build the store, controller, advisor and feed used by the routes."""
    settings = load_settings()
    if data_dir:
        settings.data_dir = data_dir
    os.makedirs(settings.data_dir, exist_ok=True)
    store = YamlTournamentStore(settings.data_dir, lock_timeout=settings.lock_timeout_seconds)
    advisor = RoundGenerationAdvisor(store, scheduler=scheduler, settings=settings)
    reconciler = DeletionReconciler(grace_seconds=settings.self_delete_grace_seconds)
    controller = TournamentLifecycleController(store, reconciler, advisor, settings)
    feed = TournamentFeed(store, controller, advisor)
    _engine.clear()
    _engine.update({
        'settings': settings,
        'store': store,
        'advisor': advisor,
        'controller': controller,
        'feed': feed,
    })
    app.logger.info(f'Tournament data directory: {settings.data_dir}')
    return _engine


def _component(name):
    if not _engine:
        configure()
    return _engine[name]


def _load_tournament(tournament_id):
    """Latest state from the change feed, subscribing on first access."""
    feed = _component('feed')
    feed.watch(tournament_id)
    tournament = feed.tournaments.get(tournament_id)
    if tournament is None:
        raise TournamentNotFoundError(f'Tournament {tournament_id} not found')
    return tournament


def _views(tournament_id):
    tournament = _load_tournament(tournament_id)
    matches = _component('feed').matches.get(tournament_id, [])
    return get_tournament_views(tournament, matches, _component('controller'), _component('advisor'))


def _json_body():
    return request.get_json(silent=True) or {}


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({'success': False, 'error': e.message, 'code': e.code}), 400


@app.errorhandler(TournamentNotFoundError)
def handle_not_found(e):
    return jsonify({'success': False, 'error': e.message}), 404


@app.errorhandler(BackendError)
def handle_backend_error(e):
    app.logger.error(f'Backend call failed: {e.message}')
    return jsonify({'success': False, 'error': e.message}), 502


@app.route('/api/tournaments', methods=['GET'])
def list_tournaments():
    tournaments = _component('store').list_tournaments()
    return jsonify({'success': True, 'tournaments': [
        {'id': t.id, 'name': t.name, 'status': t.status, 'eventType': t.event_type} for t in tournaments
    ]})


@app.route('/api/tournaments', methods=['POST'])
def create_tournament():
    data = _json_body()
    if not data.get('tournamentName') and not data.get('name'):
        return jsonify({'success': False, 'error': 'Tournament name is required.'}), 400
    settings = data.get('settings') or {}
    max_participants = settings.get('maxParticipants')
    if max_participants is not None:
        try:
            max_participants = int(max_participants)
            min_participants = int(settings.get('minParticipants') or 2)
        except (TypeError, ValueError):
            return jsonify({'success': False, 'error': 'Participant limits must be whole numbers.'}), 400
        validate_participant_settings(min_participants, max_participants)
    data.pop('status', None)
    tournament = _component('store').create_tournament(data)
    return jsonify({'success': True, 'tournament': tournament.to_dict()}), 201


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
def get_tournament(tournament_id):
    return jsonify({'success': True, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/open-registration', methods=['POST'])
def open_registration(tournament_id):
    status = _component('controller').open_registration(_load_tournament(tournament_id))
    return jsonify({'success': True, 'requested_status': status, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/close-registration', methods=['POST'])
def close_registration(tournament_id):
    status = _component('controller').close_registration(_load_tournament(tournament_id))
    return jsonify({'success': True, 'requested_status': status, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/start', methods=['POST'])
def start_tournament(tournament_id):
    status = _component('controller').start_tournament(_load_tournament(tournament_id))
    return jsonify({'success': True, 'requested_status': status, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/participants', methods=['POST'])
def add_participants(tournament_id):
    entries = _json_body().get('participants') or []
    if not isinstance(entries, list) or not entries:
        return jsonify({'success': False, 'error': 'At least one participant is required.'}), 400
    participants = [Participant.from_dict(p) for p in entries if isinstance(p, dict)]
    if len(participants) != len(entries) or any(not p.player_id for p in participants):
        return jsonify({'success': False, 'error': 'Every participant needs a playerId.'}), 400
    _component('controller').add_participants(_load_tournament(tournament_id), participants)
    return jsonify({'success': True, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/participants/<player_id>', methods=['DELETE'])
def remove_participant(tournament_id, player_id):
    removed = _component('controller').remove_participant(_load_tournament(tournament_id), player_id)
    return jsonify({'success': True, 'removed': removed, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/seeds', methods=['POST'])
def assign_seed(tournament_id):
    data = _json_body()
    player_id = data.get('playerId')
    if not player_id:
        return jsonify({'success': False, 'error': 'playerId is required.'}), 400
    assignments = _component('controller').assign_seed(_load_tournament(tournament_id), player_id,
                                                       data.get('seed'))
    return jsonify({'success': True,
                    'assignments': [{'playerId': pid, 'seed': seed} for pid, seed in assignments],
                    **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/generate-next-round', methods=['POST'])
def generate_next_round(tournament_id):
    _load_tournament(tournament_id)
    status = _component('advisor').generate_next_round(tournament_id)
    return jsonify({'success': True, 'round_status': status.to_dict(), **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/score', methods=['POST'])
def submit_score(tournament_id, match_id):
    data = _json_body()
    winner_id = data.get('winnerId')
    if not winner_id:
        return jsonify({'success': False, 'error': 'winnerId is required.'}), 400
    tournament = _load_tournament(tournament_id)
    _component('store').submit_match_result(tournament_id, match_id, winner_id, data.get('score'))
    _component('advisor').on_score_submitted(tournament_id, observed_round=tournament.current_round)
    return jsonify({'success': True, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/complete', methods=['POST'])
def complete_tournament(tournament_id):
    tournament = _load_tournament(tournament_id)
    matches = _component('feed').matches.get(tournament_id, [])
    champion = _component('controller').complete_tournament(tournament, matches)
    return jsonify({'success': True, 'champion': champion, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/cancel', methods=['POST'])
def cancel_tournament(tournament_id):
    reason = _json_body().get('reason')
    status = _component('controller').cancel_tournament(_load_tournament(tournament_id), reason)
    return jsonify({'success': True, 'requested_status': status, **_views(tournament_id)})


@app.route('/api/tournaments/<tournament_id>', methods=['DELETE'])
def delete_tournament(tournament_id):
    _component('controller').delete_tournament(_load_tournament(tournament_id))
    return jsonify({'success': True, 'message': 'Tournament deleted.'})


@app.route('/api/notices', methods=['GET'])
def get_notices():
    feed = _component('feed')
    notices = [{'tournamentId': tid, 'message': message} for tid, message in feed.notices]
    feed.notices.clear()
    return jsonify({'success': True, 'notices': notices})


if __name__ == '__main__':
    app.run(debug=True, port=int(os.environ.get('PORT', 5000)))
