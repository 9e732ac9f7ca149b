"""
Error taxonomy shared by the image pipeline and the services.

- ValidationError: rejected input, raised before any remote call
- AuthenticationRequired: the action needs a signed-in session
- ServiceError: a remote call failed; `message` is safe to show users
"""
import logging
from typing import Any, List, Optional

from .api.client import DataServiceError, QueryResult, RequestCancelled
from .api.session import Session


class ServiceError(Exception):
    """User-facing failure with the underlying remote error attached"""
    def __init__(self, message: str, cause: Exception = None):
        self.message = message
        self.cause = cause
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Bad input (file type, size, dimensions, empty content)"""


class MissingDocumentsError(ValidationError):
    """Verification submitted before every document type was uploaded"""
    def __init__(self, message: str, missing: List[Any]):
        self.missing = missing
        super().__init__(message)


class AuthenticationRequired(ServiceError):
    """Raised when an action requires a signed-in user and none is present"""


class InsufficientCreditsError(ServiceError):
    """Not enough platform credits for an unlock"""


def require_user(session: Optional[Session], message: str = 'You must be logged in.') -> Session:
    if session is None or not session.user_id:
        raise AuthenticationRequired(message)
    return session


def unwrap(result: QueryResult, message: str, logger: logging.Logger = None) -> Any:
    """
    Return result.data or raise ServiceError(message) carrying the remote error.

    The remote error is logged before conversion.
    """
    if result.error is None:
        return result.data
    if isinstance(result.error, RequestCancelled):
        raise result.error
    (logger or logging.getLogger(__name__)).error("%s: %s", message, result.error.message)
    raise ServiceError(message, cause=result.error)


__all__ = [
    'AuthenticationRequired',
    'DataServiceError',
    'InsufficientCreditsError',
    'MissingDocumentsError',
    'ServiceError',
    'ValidationError',
    'require_user',
    'unwrap',
]
