"""Error taxonomy shared by the session engine, the stores and the HTTP layer."""


class EngineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(EngineError):
    """Malformed or ineligible input, e.g. a subject with no challenges."""

    status_code = 400


class NotFoundError(EngineError):
    """Missing entity, or one the caller does not own."""

    status_code = 404


class ConflictError(EngineError):
    """A challenge was already attempted within the session."""

    # clients of the game API have always received 400 for duplicates
    status_code = 400


class PersistenceError(EngineError):
    """Storage failure or structurally invalid persisted state."""

    status_code = 500
