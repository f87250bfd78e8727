"""Error taxonomy shared by the engine, the sync layer and the HTTP API."""


class GameError(Exception):
    """Base class for recoverable scorekeeper errors."""

    status_code = 400
    reason = 'game_error'

    def __init__(self, message, reason=None, details=None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason
        self.details = details or {}

    def to_dict(self):
        payload = {'error': self.message, 'reason': self.reason}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationRejected(GameError):
    """A bid, trick or blind-bidding rule was violated; nothing was changed."""

    status_code = 400
    reason = 'validation_rejected'


class InvalidTransition(GameError):
    """The action is not allowed in the session's current status or phase."""

    status_code = 409
    reason = 'invalid_transition'


class SessionLocked(GameError):
    """Roster and deck size are frozen once the first round has closed."""

    status_code = 409
    reason = 'session_locked'


class NoActiveSession(GameError):
    status_code = 404
    reason = 'no_active_session'


class SyncUnavailable(GameError):
    """The document store could not be reached."""

    status_code = 503
    reason = 'sync_unavailable'
