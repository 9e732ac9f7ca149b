"""
DateKelly data service package
"""
from .client import (
    AuthClient,
    CancelToken,
    DataServiceClient,
    DataServiceError,
    QueryResult,
    RequestCancelled,
    StorageBucket,
)
from .config import Config
from .query import Filter, Query
from .session import Session, SessionStore

__all__ = [
    'AuthClient',
    'CancelToken',
    'Config',
    'DataServiceClient',
    'DataServiceError',
    'Filter',
    'Query',
    'QueryResult',
    'RequestCancelled',
    'Session',
    'SessionStore',
    'StorageBucket',
]
