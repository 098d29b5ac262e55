# Print the bracket of a stored tournament

import argparse
import logging

from tourney.bracket import build_bracket
from tourney.config import load_settings
from tourney.errors import BackendError
from tourney.store import YamlTournamentStore


def _slot_name(slot):
    if slot is None:
        return 'BYE / TBD'
    if slot['seed']:
        return f"{slot['player_name']} ({slot['seed']})"
    return slot['player_name']


def print_bracket(tournament, matches):
    bracket = build_bracket(matches, tournament.total_rounds)
    print(f"{tournament.name or tournament.id} [{tournament.status}]")
    if not bracket['rounds']:
        print("  No bracket generated yet.")
        return
    for round_data in bracket['rounds']:
        print(f"\n{round_data['name']}")
        for match in round_data['matches']:
            line = f"  M{match['match_number']}: {_slot_name(match['player1'])} vs {_slot_name(match['player2'])}"
            if match['winner']:
                line += f"  -> {match['winner']['player_name']}"
            print(line)
    if bracket['champion']:
        print(f"\nChampion: {bracket['champion']['player_name']}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Print the bracket of a tournament')
    parser.add_argument('tournament_id', nargs='?', help='Tournament id; omit to list tournaments')
    parser.add_argument('--data-dir', help='Data directory (default: TOURNAMENT_DATA_DIR or ./data)')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)
    settings = load_settings()
    store = YamlTournamentStore(args.data_dir or settings.data_dir, lock_timeout=settings.lock_timeout_seconds)

    if not args.tournament_id:
        tournaments = store.list_tournaments()
        if not tournaments:
            print("No tournaments found.")
        for tournament in tournaments:
            print(f"{tournament.id}  {tournament.status:<18} {tournament.name}")
        return 0

    try:
        tournament = store.get_tournament(args.tournament_id)
        matches = store.get_matches(args.tournament_id)
    except BackendError as e:
        print(e.message)
        return 1
    print_bracket(tournament, matches)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
