"""
Declarative table queries and their PostgREST wire encoding.

A Query only records what was asked for; the client that created it
turns it into an HTTP request when `execute()` is called.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple


FILTER_OPERATORS = ('eq', 'neq', 'gt', 'gte', 'lt', 'lte', 'like', 'ilike', 'in', 'is')

# PostgREST reserved characters inside list values
_RESERVED = set(',()"')


def _format_value(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _quote(value: Any) -> str:
    text = _format_value(value)
    if any(ch in _RESERVED for ch in text) or ' ' in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


@dataclass(frozen=True)
class Filter:
    """A single column predicate, e.g. Filter('rating', 'gte', 4)"""
    column: str
    operator: str
    value: Any

    def __post_init__(self):
        if self.operator not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.operator}")

    def encode(self) -> str:
        if self.operator == 'in':
            return f"in.({','.join(_quote(v) for v in self.value)})"
        return f"{self.operator}.{_format_value(self.value)}"

    def to_param(self) -> Tuple[str, str]:
        return self.column, self.encode()

    def to_logic(self) -> str:
        return f"{self.column}.{self.encode()}"


@dataclass(frozen=True)
class OrFilter:
    """Logical OR over column predicates"""
    filters: Tuple[Filter, ...]

    def to_param(self) -> Tuple[str, str]:
        return 'or', '(' + ','.join(f.to_logic() for f in self.filters) + ')'


class Query:
    """
    Fluent builder for one table operation.

    Usage:
        client.table('profiles').select('id, name').eq('is_active', True) \\
            .order('rating', ascending=False).limit(10).execute()
    """

    def __init__(self, table: str, executor: Callable[..., Any] = None):
        self.table = table
        self.action = 'select'
        self.columns: Optional[str] = '*'
        self.payload: Any = None
        self.filters: List[Any] = []
        self.orders: List[Tuple[str, bool]] = []
        self.limit_count: Optional[int] = None
        self.offset_count: Optional[int] = None
        self.cardinality = 'many'  # many, single, maybe_single
        self.on_conflict: Optional[str] = None
        self.count: Optional[str] = None
        self.returning = False
        self._executor = executor

    # ==================== ACTIONS ====================

    def select(self, columns: str = '*', count: str = None) -> 'Query':
        """Select columns; after a write this asks for the written rows back."""
        self.columns = ' '.join(columns.split())
        self.count = count
        if self.action != 'select':
            self.returning = True
        return self

    def insert(self, values: Any) -> 'Query':
        self.action = 'insert'
        self.payload = values
        return self

    def update(self, values: Dict[str, Any]) -> 'Query':
        self.action = 'update'
        self.payload = values
        return self

    def upsert(self, values: Any, on_conflict: str = None) -> 'Query':
        self.action = 'upsert'
        self.payload = values
        self.on_conflict = on_conflict
        return self

    def delete(self) -> 'Query':
        self.action = 'delete'
        return self

    # ==================== FILTERS ====================

    def _add(self, column: str, operator: str, value: Any) -> 'Query':
        self.filters.append(Filter(column, operator, value))
        return self

    def eq(self, column: str, value: Any) -> 'Query':
        return self._add(column, 'eq', value)

    def neq(self, column: str, value: Any) -> 'Query':
        return self._add(column, 'neq', value)

    def gt(self, column: str, value: Any) -> 'Query':
        return self._add(column, 'gt', value)

    def gte(self, column: str, value: Any) -> 'Query':
        return self._add(column, 'gte', value)

    def lt(self, column: str, value: Any) -> 'Query':
        return self._add(column, 'lt', value)

    def lte(self, column: str, value: Any) -> 'Query':
        return self._add(column, 'lte', value)

    def like(self, column: str, pattern: str) -> 'Query':
        return self._add(column, 'like', pattern)

    def ilike(self, column: str, pattern: str) -> 'Query':
        return self._add(column, 'ilike', pattern)

    def in_(self, column: str, values) -> 'Query':
        return self._add(column, 'in', tuple(values))

    def is_(self, column: str, value: Any) -> 'Query':
        return self._add(column, 'is', value)

    def or_(self, *filters: Filter) -> 'Query':
        self.filters.append(OrFilter(tuple(filters)))
        return self

    # ==================== MODIFIERS ====================

    def order(self, column: str, ascending: bool = True) -> 'Query':
        self.orders.append((column, ascending))
        return self

    def limit(self, count: int) -> 'Query':
        self.limit_count = count
        return self

    def range(self, start: int, end: int) -> 'Query':
        """Inclusive row range, zero based"""
        self.offset_count = start
        self.limit_count = end - start + 1
        return self

    def single(self) -> 'Query':
        self.cardinality = 'single'
        return self

    def maybe_single(self) -> 'Query':
        self.cardinality = 'maybe_single'
        return self

    # ==================== ENCODING ====================

    def to_params(self) -> List[Tuple[str, str]]:
        """Encode as PostgREST query-string parameters"""
        params: List[Tuple[str, str]] = []
        if self.action == 'select' or self.returning:
            params.append(('select', self.columns or '*'))
        for item in self.filters:
            params.append(item.to_param())
        if self.orders:
            params.append(('order', ','.join(
                f"{column}.{'asc' if ascending else 'desc'}" for column, ascending in self.orders
            )))
        if self.limit_count is not None:
            params.append(('limit', str(self.limit_count)))
        if self.offset_count:
            params.append(('offset', str(self.offset_count)))
        if self.on_conflict:
            params.append(('on_conflict', self.on_conflict))
        return params

    def execute(self, cancel=None):
        if self._executor is None:
            raise RuntimeError(f"Query on '{self.table}' is not bound to a client")
        return self._executor(self, cancel)

    def __repr__(self):
        return f"Query(table={self.table!r}, action={self.action!r}, params={self.to_params()!r})"
