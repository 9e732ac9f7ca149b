"""
Shared fixtures: an in-memory data service that evaluates real Query objects,
Pillow-generated images and signed-in sessions.
"""
import io
import itertools
import re
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from datekelly.api.client import DataServiceClient, DataServiceError, QueryResult
from datekelly.api.query import OrFilter, Query
from datekelly.api.session import Session
from datekelly.services.outbox import Outbox


def _resolve(row, column):
    value = row
    for part in column.split('.'):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _like(value, pattern, flags=0):
    if value is None:
        return False
    regex = '^' + '.*'.join(re.escape(part) for part in pattern.split('%')) + '$'
    return re.match(regex, str(value), flags) is not None


def _matches(row, item):
    if isinstance(item, OrFilter):
        return any(_matches(row, f) for f in item.filters)
    value = _resolve(row, item.column)
    op, wanted = item.operator, item.value
    if op == 'eq':
        return value == wanted
    if op == 'neq':
        return value != wanted
    if op == 'is':
        return value is wanted
    if op == 'in':
        return value in wanted
    if op == 'like':
        return _like(value, wanted)
    if op == 'ilike':
        return _like(value, wanted, re.IGNORECASE)
    if value is None:
        return False
    return {
        'gt': value > wanted,
        'gte': value >= wanted,
        'lt': value < wanted,
        'lte': value <= wanted,
    }[op]


class FakeBucket:
    def __init__(self, storage, bucket):
        self.storage = storage
        self.bucket = bucket

    def upload(self, path, content, content_type=None, upsert=False, cancel=None):
        if cancel:
            cancel.raise_if_cancelled()
        with self.storage.lock:
            self.storage.attempts.append((self.bucket, path))
            if self.storage.fail_when and self.storage.fail_when(self.bucket, path, content):
                return QueryResult(error=DataServiceError('storage unavailable', status_code=500))
            self.storage.objects[(self.bucket, path)] = (content, content_type)
        return QueryResult(data={'path': path})

    def get_public_url(self, path):
        return f"https://project.test/storage/v1/object/public/{self.bucket}/{path}"

    def list(self, prefix='', limit=100, offset=0, sort_by='name'):
        names = sorted(p for b, p in self.storage.objects if b == self.bucket and p.startswith(prefix))
        return QueryResult(data=[{'name': name} for name in names[offset:offset + limit]])

    def remove(self, paths):
        with self.storage.lock:
            for path in paths:
                self.storage.objects.pop((self.bucket, path), None)
        return QueryResult(data=[{'name': path} for path in paths])


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.attempts = []
        self.fail_when = None
        self.lock = threading.Lock()

    def from_(self, bucket):
        return FakeBucket(self, bucket)

    def paths(self, bucket):
        return sorted(p for b, p in self.objects if b == bucket)


class FakeDataService:
    """Stands in for DataServiceClient: tables, storage and rpc held in memory"""

    def __init__(self):
        self.tables = defaultdict(list)
        self.storage = FakeStorage()
        self.rpc_calls = []
        self.rpc_handlers = {}
        self.failures = {}
        self.executed = []
        self._ids = itertools.count(1)
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.RLock()

    # test helpers

    def seed(self, table, *rows):
        with self._lock:
            for row in rows:
                self.tables[table].append(self._stamp(dict(row)))

    def rows(self, table):
        return self.tables[table]

    def fail(self, table, action='*', message='database unavailable'):
        self.failures[(table, action)] = DataServiceError(message, status_code=500)

    def _stamp(self, row):
        row.setdefault('id', f"id-{next(self._ids)}")
        if 'created_at' not in row:
            self._clock += timedelta(seconds=1)
            row['created_at'] = self._clock.isoformat()
        return row

    # client surface

    def table(self, name):
        return Query(name, executor=self._execute)

    def rpc(self, function, params=None, cancel=None):
        self.rpc_calls.append((function, params or {}))
        handler = self.rpc_handlers.get(function)
        if handler is None:
            return QueryResult(data=None)
        result = handler(params or {})
        return result if isinstance(result, QueryResult) else QueryResult(data=result)

    def _execute(self, query, cancel=None):
        if cancel:
            cancel.raise_if_cancelled()
        with self._lock:
            self.executed.append(query)
            error = self.failures.get((query.table, query.action)) or self.failures.get((query.table, '*'))
            if error:
                return QueryResult(error=error)
            rows, count = self._apply(query)
        if query.cardinality == 'many':
            return QueryResult(data=rows, count=count)
        return DataServiceClient._one(query, rows, count)

    def _apply(self, query):
        table = self.tables[query.table]
        matched = [row for row in table if all(_matches(row, f) for f in query.filters)]

        if query.action == 'insert':
            payload = query.payload if isinstance(query.payload, list) else [query.payload]
            written = [self._stamp(dict(values)) for values in payload]
            table.extend(written)
            return self._returned(query, written), None

        if query.action == 'upsert':
            keys = (query.on_conflict or 'id').split(',')
            payload = query.payload if isinstance(query.payload, list) else [query.payload]
            written = []
            for values in payload:
                existing = next((r for r in table if all(r.get(k) == values.get(k) for k in keys)), None)
                if existing is not None:
                    existing.update(values)
                    written.append(existing)
                else:
                    row = self._stamp(dict(values))
                    table.append(row)
                    written.append(row)
            return self._returned(query, written), None

        if query.action == 'update':
            for row in matched:
                row.update(query.payload)
            return self._returned(query, matched), None

        if query.action == 'delete':
            self.tables[query.table] = [row for row in table if row not in matched]
            return self._returned(query, matched), None

        for column, ascending in reversed(query.orders):
            matched.sort(key=lambda r: (_resolve(r, column) is None, _resolve(r, column)), reverse=not ascending)
        count = len(matched) if query.count else None
        start = query.offset_count or 0
        end = start + query.limit_count if query.limit_count is not None else None
        return [dict(row) for row in matched[start:end]], count

    @staticmethod
    def _returned(query, rows):
        return [dict(row) for row in rows] if query.returning else []


def make_image_bytes(width, height, fmt='JPEG', color=(200, 30, 30), mode='RGB'):
    output = io.BytesIO()
    Image.new(mode, (width, height), color).save(output, format=fmt)
    return output.getvalue()


@pytest.fixture
def service():
    return FakeDataService()


@pytest.fixture
def outbox():
    box = Outbox(max_workers=2)
    yield box
    box.close()


@pytest.fixture
def session():
    return Session(user_id='user-1', email='lady@example.com', role='lady', access_token='token-1')


@pytest.fixture
def other_session():
    return Session(user_id='user-2', email='client@example.com', role='client', access_token='token-2')


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes(1000, 800)


@pytest.fixture
def png_bytes():
    return make_image_bytes(900, 700, fmt='PNG', mode='RGBA', color=(0, 0, 255, 255))


@pytest.fixture
def make_image():
    return make_image_bytes
