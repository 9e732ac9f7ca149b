"""
DateKelly Data Service Client

Talks to the hosted backend over its three HTTP surfaces:
- PostgREST tables and RPC functions: /rest/v1
- GoTrue authentication: /auth/v1
- Object storage: /storage/v1

Every table, storage and RPC call returns a QueryResult carrying either
data or the remote error; nothing is retried automatically.
"""
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

from .config import Config
from .query import Query
from .session import (
    PASSWORD_RECOVERY,
    SIGNED_IN,
    USER_UPDATED,
    Session,
    SessionStore,
)


LOGGER = logging.getLogger(__name__)


class DataServiceError(Exception):
    """Custom exception for data service errors"""
    def __init__(self, message: str, status_code: int = None, response: Any = None, code: str = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.code = code
        super().__init__(self.message)


class RequestCancelled(DataServiceError):
    """Raised when a caller cancelled the operation before it finished"""


class CancelToken:
    """Cooperative cancellation flag checked around every remote call"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise RequestCancelled("Request cancelled")


@dataclass
class QueryResult:
    """Rows (or payload) plus an explicit error-or-None"""
    data: Any = None
    error: Optional[DataServiceError] = None
    count: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _error_message(payload: Any, status_code: int) -> Tuple[str, Optional[str]]:
    """Pull a readable message out of PostgREST / GoTrue / Storage error bodies"""
    if isinstance(payload, dict):
        message = (
            payload.get('message')
            or payload.get('msg')
            or payload.get('error_description')
            or payload.get('error')
            or payload.get('raw')
        )
        code = payload.get('code') or payload.get('error_code')
        if payload.get('details'):
            message = f"{message} - {payload['details']}" if message else payload['details']
        if message:
            return str(message), str(code) if code is not None else None
    return f'HTTP {status_code}', None


def _parse_count(content_range: Optional[str]) -> Optional[int]:
    # Content-Range: 0-24/3573
    if not content_range or '/' not in content_range:
        return None
    total = content_range.split('/')[-1]
    return int(total) if total.isdigit() else None


class DataServiceClient:
    """
    Data service client

    Usage:
        client = DataServiceClient()
        client.auth.sign_in_with_password('me@example.com', 'secret')
        result = client.table('profiles').select('id, name').eq('is_active', True).execute()
        if result.error:
            ...
    """

    _METHODS = {
        'select': 'GET',
        'insert': 'POST',
        'upsert': 'POST',
        'update': 'PATCH',
        'delete': 'DELETE',
    }

    def __init__(self, url: str = None, api_key: str = None, session_store: SessionStore = None):
        """
        Initialize the client

        Args:
            url: Project URL (uses env if not provided)
            api_key: Project anon key (uses env if not provided)
            session_store: Holder of the signed-in session (a new one if not provided)
        """
        self.base_url = (url or Config.SUPABASE_URL).rstrip('/')
        self.api_key = api_key or Config.SUPABASE_ANON_KEY
        self.sessions = session_store or SessionStore()
        self.debug = Config.DEBUG

        self.session = requests.Session()
        self.session.headers.update({
            'apikey': self.api_key,
            'Accept': 'application/json',
            'User-Agent': Config.USER_AGENT,
        })

        self.auth = AuthClient(self)
        self.storage = StorageClient(self)

    # ==================== REQUEST HANDLER ====================

    def _bearer_token(self) -> str:
        current = self.sessions.current
        if current and current.access_token:
            return current.access_token
        return self.api_key

    def _make_request(
        self,
        method: str,
        path: str,
        data: Any = None,
        params: Any = None,
        content: bytes = None,
        headers: dict = None,
        cancel: CancelToken = None
    ) -> Tuple[Any, Dict[str, str]]:
        """
        Make a request against the data service

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            path: Path below the project URL, e.g. /rest/v1/profiles
            data: JSON body
            params: Query parameters
            content: Raw body (storage uploads)
            headers: Extra headers
            cancel: Optional cancellation token

        Returns:
            (decoded response body, response headers)
        """
        if cancel:
            cancel.raise_if_cancelled()

        url = f"{self.base_url}/{path.lstrip('/')}"
        request_headers = {'Authorization': f'Bearer {self._bearer_token()}'}
        if headers:
            request_headers.update(headers)

        if self.debug:
            LOGGER.debug("%s %s params=%s", method, url, params)
            if data is not None:
                LOGGER.debug("Data: %s", json.dumps(data, default=str)[:500])

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=data if content is None else None,
                data=content,
                params=params,
                headers=request_headers,
                timeout=Config.REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            raise DataServiceError(f"Request failed: {str(e)}")

        if cancel:
            cancel.raise_if_cancelled()

        if self.debug:
            LOGGER.debug("Response Status: %s", response.status_code)

        response_data = None
        if response.content:
            try:
                response_data = response.json()
            except ValueError:
                raw_text = (response.text or '').strip()
                if len(raw_text) > 500:
                    raw_text = raw_text[:500] + '...'
                response_data = {'raw': raw_text}

        if not response.ok:
            error_msg, code = _error_message(response_data, response.status_code)
            raise DataServiceError(
                message=error_msg,
                status_code=response.status_code,
                response=response_data,
                code=code
            )

        return response_data, dict(response.headers)

    def _call(self, method: str, path: str, cancel: CancelToken = None, **kwargs) -> QueryResult:
        """Wrap _make_request into a QueryResult, keeping cancellation as an exception"""
        try:
            data, _ = self._make_request(method, path, cancel=cancel, **kwargs)
        except RequestCancelled:
            raise
        except DataServiceError as e:
            if self.debug:
                LOGGER.debug("%s %s failed: %s", method, path, e.message)
            return QueryResult(error=e)
        return QueryResult(data=data)

    # ==================== TABLES ====================

    def table(self, name: str) -> Query:
        """Start a query on a table or view"""
        return Query(name, executor=self._execute_query)

    def _execute_query(self, query: Query, cancel: CancelToken = None) -> QueryResult:
        prefer = []
        if query.action != 'select':
            prefer.append('return=representation' if query.returning else 'return=minimal')
        if query.action == 'upsert':
            prefer.append('resolution=merge-duplicates')
        if query.count:
            prefer.append(f'count={query.count}')
        headers = {'Prefer': ','.join(prefer)} if prefer else None

        try:
            data, response_headers = self._make_request(
                self._METHODS[query.action],
                f'/rest/v1/{query.table}',
                data=query.payload,
                params=query.to_params(),
                headers=headers,
                cancel=cancel
            )
        except RequestCancelled:
            raise
        except DataServiceError as e:
            if self.debug:
                LOGGER.debug("query on %s failed: %s", query.table, e.message)
            return QueryResult(error=e)

        count = _parse_count(response_headers.get('Content-Range') or response_headers.get('content-range'))
        rows = data if data is not None else []
        if query.cardinality == 'many':
            return QueryResult(data=rows, count=count)
        return self._one(query, rows, count)

    @staticmethod
    def _one(query: Query, rows: Any, count: Optional[int]) -> QueryResult:
        if isinstance(rows, dict):
            return QueryResult(data=rows, count=count)
        if len(rows) == 1:
            return QueryResult(data=rows[0], count=count)
        if not rows and query.cardinality == 'maybe_single':
            return QueryResult(data=None, count=count)
        return QueryResult(error=DataServiceError(
            f"JSON object requested, multiple (or no) rows returned ({len(rows)})",
            status_code=406,
            code='PGRST116'
        ))

    # ==================== RPC ====================

    def rpc(self, function: str, params: Dict[str, Any] = None, cancel: CancelToken = None) -> QueryResult:
        """Invoke a server-side SQL function"""
        return self._call('POST', f'/rest/v1/rpc/{function}', data=params or {}, cancel=cancel)


class AuthClient:
    """GoTrue endpoints; successful sign-ins update the client's SessionStore"""

    def __init__(self, client: DataServiceClient):
        self._client = client

    @property
    def _store(self) -> SessionStore:
        return self._client.sessions

    def on_auth_state_change(self, callback) -> Any:
        """Subscribe to auth events; returns the unsubscribe callable"""
        return self._store.subscribe(callback)

    def get_user(self, cancel: CancelToken = None) -> QueryResult:
        """Fetch the user behind the current access token"""
        current = self._store.current
        if not current or not current.access_token:
            return QueryResult(data=None)
        return self._client._call('GET', '/auth/v1/user', cancel=cancel)

    def sign_in_with_password(self, email: str, password: str) -> QueryResult:
        result = self._client._call(
            'POST', '/auth/v1/token',
            params={'grant_type': 'password'},
            data={'email': email, 'password': password}
        )
        return self._start_session(result, SIGNED_IN)

    def sign_out(self) -> QueryResult:
        result = QueryResult()
        if self._store.current:
            result = self._client._call('POST', '/auth/v1/logout')
        # The local session is dropped even if the server call failed
        self._store.clear()
        return result

    def update_user(self, password: str = None, email: str = None) -> QueryResult:
        """Change password and/or email of the signed-in user"""
        payload = {}
        if password:
            payload['password'] = password
        if email:
            payload['email'] = email
        if not payload:
            return QueryResult(error=DataServiceError("Nothing to update"))
        result = self._client._call('PUT', '/auth/v1/user', data=payload)
        if result.ok and self._store.current:
            current = self._store.current
            user = result.data or {}
            self._store.set(Session(
                user_id=current.user_id,
                email=user.get('email', current.email),
                role=current.role,
                access_token=current.access_token,
                refresh_token=current.refresh_token,
                expires_at=current.expires_at,
            ), USER_UPDATED)
        return result

    def verify_otp(self, email: str, token: str, type: str = 'recovery') -> QueryResult:
        """Verify a one-time token (recovery, signup, magiclink, email_change)"""
        result = self._client._call(
            'POST', '/auth/v1/verify',
            data={'type': type, 'email': email, 'token': token}
        )
        return self._start_session(result, PASSWORD_RECOVERY if type == 'recovery' else SIGNED_IN)

    def reset_password_for_email(self, email: str, redirect_to: str = None) -> QueryResult:
        params = {'redirect_to': redirect_to} if redirect_to else None
        return self._client._call('POST', '/auth/v1/recover', data={'email': email}, params=params)

    def _start_session(self, result: QueryResult, event: str) -> QueryResult:
        if not result.ok or not isinstance(result.data, dict) or not result.data.get('access_token'):
            return result
        session = Session.from_auth_response(result.data)
        self._store.set(session, event)
        return QueryResult(data=session)


class StorageClient:
    """Object storage entry point"""

    def __init__(self, client: DataServiceClient):
        self._client = client

    def from_(self, bucket: str) -> 'StorageBucket':
        return StorageBucket(self._client, bucket)


class StorageBucket:
    """Operations on a single storage bucket"""

    def __init__(self, client: DataServiceClient, bucket: str):
        self._client = client
        self.bucket = bucket

    def upload(
        self,
        path: str,
        content: bytes,
        content_type: str = None,
        upsert: bool = False,
        cancel: CancelToken = None
    ) -> QueryResult:
        """
        Upload a blob

        Returns:
            QueryResult with data={'path': path} on success
        """
        headers = {
            'Content-Type': content_type or 'application/octet-stream',
            'Cache-Control': f'max-age={Config.STORAGE_CACHE_CONTROL}',
            'x-upsert': 'true' if upsert else 'false',
        }
        result = self._client._call(
            'POST', f'/storage/v1/object/{self.bucket}/{quote(path)}',
            content=content, headers=headers, cancel=cancel
        )
        if result.ok:
            return QueryResult(data={'path': path})
        return result

    def get_public_url(self, path: str) -> str:
        return f"{self._client.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    def list(self, prefix: str = '', limit: int = 100, offset: int = 0, sort_by: str = 'name') -> QueryResult:
        return self._client._call(
            'POST', f'/storage/v1/object/list/{self.bucket}',
            data={
                'prefix': prefix,
                'limit': limit,
                'offset': offset,
                'sortBy': {'column': sort_by, 'order': 'asc'},
            }
        )

    def remove(self, paths: List[str]) -> QueryResult:
        return self._client._call(
            'DELETE', f'/storage/v1/object/{self.bucket}',
            data={'prefixes': list(paths)}
        )
