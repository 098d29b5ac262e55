"""
Contract of the backend that stores tournaments and runs bracket generation.

Implementations raise BackendError subclasses on failure. Every write is
confirmed to clients only through the change feed.
"""

# Delivered to tournament subscribers when the record no longer exists
DELETED = 'deleted'


class TournamentBackend:
    def get_tournament(self, tournament_id):
        """Returns the Tournament or raises TournamentNotFoundError."""
        raise NotImplementedError

    def get_matches(self, tournament_id):
        """Returns the list of BracketMatch records for a tournament."""
        raise NotImplementedError

    def subscribe_tournament(self, tournament_id, callback):
        """
        Call ``callback`` with each new Tournament state, or DELETED.

        Returns a no-argument callable that cancels the subscription.
        """
        raise NotImplementedError

    def subscribe_matches(self, tournament_id, callback):
        """Call ``callback`` with the full match list after each change. Returns an unsubscribe callable."""
        raise NotImplementedError

    def create_tournament(self, data):
        raise NotImplementedError

    def generate_initial_bracket(self, tournament_id):
        """Raises BracketGenerationError on failure."""
        raise NotImplementedError

    def generate_next_round(self, tournament_id):
        """Raises RoundGenerationError on failure."""
        raise NotImplementedError

    def can_generate_next_round(self, tournament_id):
        """Returns a RoundGenerationStatus."""
        raise NotImplementedError

    def assign_seeds(self, tournament_id, assignments):
        """``assignments`` is a list of (player_id, seed); seed 0 clears."""
        raise NotImplementedError

    def update_status(self, tournament_id, new_status, reason=None):
        raise NotImplementedError

    def delete_tournament(self, tournament_id):
        raise NotImplementedError

    def add_participants(self, tournament_id, participants):
        raise NotImplementedError

    def remove_participants(self, tournament_id, player_ids):
        """Withdraw the given players. Raises BackendError once the bracket exists."""
        raise NotImplementedError

    def submit_match_result(self, tournament_id, match_id, winner_id, score=None):
        raise NotImplementedError
