"""Recoverable game errors.

Each error carries a stable ``reason`` for clients to branch on and a human
readable message. They are reported to the originating connection only.
"""


class GameError(Exception):
    reason = 'game_error'
    default_message = 'Something went wrong'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'reason': self.reason, 'message': self.message}


class NotFound(GameError):
    reason = 'not_found'
    default_message = 'Game not found'


class UnknownPlayer(NotFound):
    reason = 'unknown_player'
    default_message = 'Player not found'


class Unauthorized(GameError):
    reason = 'unauthorized'
    default_message = 'Only the host can do that'


class InvalidState(GameError):
    reason = 'invalid_state'
    default_message = 'Invalid game state'


class GameInProgress(InvalidState):
    reason = 'game_in_progress'
    default_message = 'Game already in progress'


class NameTaken(InvalidState):
    reason = 'name_taken'
    default_message = 'That name is already in use in this room'


class DuplicateSubmission(GameError):
    reason = 'duplicate_submission'
    default_message = 'You already answered this round'


class AllocationExhausted(GameError):
    reason = 'allocation_exhausted'
    default_message = 'Could not allocate a room code'


class BadRequest(GameError):
    reason = 'bad_request'
    default_message = 'Malformed request'


class StorageUnavailable(GameError):
    reason = 'storage_unavailable'
    default_message = 'Storage is unavailable, please retry'


class AlreadyConnected(InvalidState):
    reason = 'already_connected'
    default_message = 'That player is still connected'
