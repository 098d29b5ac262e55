"""
Error taxonomy for tournament operations.

ValidationError is raised locally before anything reaches the backend.
BackendError wraps failures reported by the backend, keeping its message.
"""

GENERIC_BACKEND_MESSAGE = 'The request could not be completed. Please try again.'


class TournamentError(Exception):
    """Base class for all tournament engine errors."""


class ValidationError(TournamentError):
    """A local check failed; the backend was not contacted."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code


class SeedValidationError(ValidationError):
    pass


class TransitionError(ValidationError):
    pass


class GenerationInProgressError(ValidationError):
    pass


class TeamPairingError(ValidationError):
    """Partner links in the participant list do not form symmetric pairs."""

    def __init__(self, message, player_ids=None):
        super().__init__(message, code='pairing_error')
        self.player_ids = player_ids or []


class BackendError(TournamentError):
    """A backend call failed."""

    def __init__(self, message=None):
        self.message = message or GENERIC_BACKEND_MESSAGE
        super().__init__(self.message)


class BracketGenerationError(BackendError):
    pass


class RoundGenerationError(BackendError):
    pass


class TournamentNotFoundError(BackendError):
    pass


class ReconciliationConflict:
    """Feed delivered a status different from the one a local transition expected."""

    def __init__(self, tournament_id, expected_status, observed_status):
        self.tournament_id = tournament_id
        self.expected_status = expected_status
        self.observed_status = observed_status

    def __repr__(self):
        return (f"ReconciliationConflict(tournament_id={self.tournament_id}, "
                f"expected={self.expected_status}, observed={self.observed_status})")
