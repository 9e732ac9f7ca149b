"""
DateKelly listings toolkit

Data access, search ranking and image processing for the DateKelly
classifieds marketplace.
"""
from .api import Config, DataServiceClient, Session, SessionStore
from .errors import (
    AuthenticationRequired,
    InsufficientCreditsError,
    MissingDocumentsError,
    ServiceError,
    ValidationError,
)

__version__ = '1.0.0'

__all__ = [
    'AuthenticationRequired',
    'Config',
    'DataServiceClient',
    'InsufficientCreditsError',
    'MissingDocumentsError',
    'ServiceError',
    'Session',
    'SessionStore',
    'ValidationError',
    '__version__',
]
