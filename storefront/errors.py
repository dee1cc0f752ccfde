"""Error taxonomy shared by the data access layer and the request handlers.

Every error carries the HTTP status it maps to and a message that is safe to
show a client. Database detail stays in the server log.
"""
from sqlalchemy import exc as sa_exc


class ShopError(Exception):
    status_code = 500
    message = "internal error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(ShopError):
    status_code = 400
    message = "invalid request"


class AuthError(ShopError):
    status_code = 401
    message = "invalid credentials"


class NotFoundError(ShopError):
    status_code = 404
    message = "not found"


class ConflictError(ShopError):
    status_code = 400
    message = "conflict"


class TransientInfraError(ShopError):
    # safe for the caller to retry
    status_code = 503
    message = "service temporarily unavailable"


class TransactionFailure(ShopError):
    status_code = 500
    message = "transaction failed"


def is_transient(error: Exception) -> bool:
    if isinstance(error, (sa_exc.TimeoutError, sa_exc.DisconnectionError, sa_exc.OperationalError)):
        return True
    return isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated


def translate_db_error(error: Exception, conflict_message: str = "conflict") -> ShopError:
    """Map a SQLAlchemy exception onto the taxonomy above."""
    if is_transient(error):
        return TransientInfraError()
    if isinstance(error, sa_exc.IntegrityError):
        return ConflictError(conflict_message)
    return ShopError()
