"""Exceptions raised by the bracket engine."""


class BracketError(Exception):
    """Base error; carries the HTTP status the web layer reports it with."""

    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvalidInputError(BracketError, ValueError):
    """Bad user input: names, participant counts, scores."""


class PreconditionError(BracketError):
    """The operation does not apply to the current state (e.g. match already resolved)."""

    status_code = 409


class NotFoundError(BracketError):
    status_code = 404
