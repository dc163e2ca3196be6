"""Typed failures surfaced by the coordinator.

Every condition a caller can act on has its own class so the HTTP layer (or
any other consumer) can tell capacity, lease and membership problems apart.
"""

from typing import Optional


class CoordinatorError(Exception):
    """Base class for expected, recoverable coordinator failures."""

    code = "error"
    status_code = 400
    message = "The request could not be completed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotFound(CoordinatorError):
    code = "not_found"
    status_code = 404
    message = "Board or sheet not found."


class Full(CoordinatorError):
    code = "full"
    status_code = 409
    message = "Participant limit reached."


class AlreadyStarted(CoordinatorError):
    code = "already_started"
    status_code = 409
    message = "This board has already started."


class NotEnoughParticipants(CoordinatorError):
    code = "not_enough_participants"
    status_code = 409
    message = "Not enough participants to start."


class BoardNotStarted(CoordinatorError):
    code = "board_not_started"
    status_code = 409
    message = "This board has not started yet."


class BoardNotComplete(CoordinatorError):
    code = "board_not_complete"
    status_code = 409
    message = "Results are available once every sheet is complete."


class NotAParticipant(CoordinatorError):
    code = "not_a_participant"
    status_code = 403
    message = "You have not joined this board."


class InviteInactive(CoordinatorError):
    code = "invite_inactive"
    status_code = 403
    message = "This invite link is no longer active."


class LeaseDenied(CoordinatorError):
    code = "lease_denied"
    status_code = 423
    message = "Someone else is currently writing on this sheet."


class SheetFinished(LeaseDenied):
    code = "sheet_finished"
    message = "This sheet has already been completed."


class InvalidContribution(CoordinatorError):
    code = "invalid_contribution"
    status_code = 422
    message = "The submitted row is not valid."


class StoreUnavailable(CoordinatorError):
    code = "store_unavailable"
    status_code = 503
    message = "Storage is temporarily unavailable. Please retry."
