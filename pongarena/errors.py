"""Custom exception classes for the application."""


class AppError(Exception):
    """Base application error class."""

    code = "APP_ERROR"

    def __init__(self, message, status_code=400, details=None):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details

    def to_dict(self):
        """Return the JSON error body for this error."""
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Raised when user input fails validation."""

    code = "INVALID_BODY"

    def __init__(self, message="Validation failed.", details=None):
        """Initialize the error."""
        super().__init__(message, 400, details)


class ScoresRequiredError(ValidationError):
    """Raised when a result is submitted without both scores."""

    code = "SCORES_REQUIRED"

    def __init__(self, message="Both scores are required to finish a match."):
        """Initialize the error."""
        super().__init__(message)


class MatchNotReadyError(ValidationError):
    """Raised when a result targets a match whose players are not decided yet."""

    code = "MATCH_NOT_READY"

    def __init__(self, message="Both players of this match are not decided yet."):
        """Initialize the error."""
        super().__init__(message)


class InvalidWinnerError(AppError):
    """Raised when the declared winner does not occupy a slot of the match."""

    code = "INVALID_WINNER"

    def __init__(self, message="Winner is not a participant of this match."):
        """Initialize the error."""
        super().__init__(message, 400)


class AlreadyFinishedError(AppError):
    """Raised when a result is submitted against a finished match.

    The client is looking at stale bracket data and should refetch it.
    """

    code = "MATCH_ALREADY_FINISHED"

    def __init__(self, message="This match already has a result."):
        """Initialize the error."""
        super().__init__(message, 409)


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    code = "NOT_FOUND"

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class TournamentNotFoundError(NotFoundError):
    """Raised when a tournament id does not resolve."""

    code = "TOURNAMENT_NOT_FOUND"

    def __init__(self, message="Tournament not found."):
        """Initialize the error."""
        super().__init__(message)


class MatchNotFoundError(NotFoundError):
    """Raised when a match id does not resolve."""

    code = "MATCH_NOT_FOUND"

    def __init__(self, message="Match not found."):
        """Initialize the error."""
        super().__init__(message)


class CreatorNotFoundError(NotFoundError):
    """Raised when the tournament owner is not a known user."""

    code = "CREATOR_NOT_FOUND"

    def __init__(self, message="Creator user does not exist."):
        """Initialize the error."""
        super().__init__(message)


class ConstructionError(AppError):
    """Raised when a bracket breaks its structural invariants.

    Valid input never produces this; it points at a builder or data bug.
    """

    code = "BRACKET_CONSTRUCTION_ERROR"

    def __init__(self, message="Bracket construction failed."):
        """Initialize the error."""
        super().__init__(message, 500)
