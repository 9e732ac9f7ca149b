"""
Filtered profile search, suggestions and filter option lists.

Cheap predicates (category, text, location, rating, sort) are pushed to the
data service; profile-detail ranges, categorical fields, languages, price
and services are applied locally on the returned rows.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..api.client import CancelToken
from ..api.query import Filter
from ..errors import unwrap
from ..models.filters import Category, SearchFilters, SortBy


LOGGER = logging.getLogger(__name__)

DETAIL_COLUMNS = (
    'age', 'sex', 'height', 'weight', 'cup_size', 'body_size',
    'descent', 'languages', 'ethnicity', 'body_type',
)

SORT_ORDERS = {
    SortBy.RATING: (('rating', False),),
    SortBy.PRICE_LOW: (('price', True),),
    SortBy.PRICE_HIGH: (('price', False),),
    SortBy.NEWEST: (('created_at', False),),
    SortBy.LOVES: (('loves', False),),
    SortBy.RELEVANCE: (('rating', False), ('loves', False)),
}

# (filter attribute, detail column, comparison)
RANGE_FILTERS = (
    ('age_min', 'age', 'min'),
    ('age_max', 'age', 'max'),
    ('height_min', 'height', 'min'),
    ('height_max', 'height', 'max'),
    ('weight_min', 'weight', 'min'),
    ('weight_max', 'weight', 'max'),
)

EXACT_FILTERS = (
    ('cup_size', 'cup_size'),
    ('body_size', 'body_size'),
    ('descent', 'descent'),
    ('ethnicity', 'ethnicity'),
    ('body_type', 'body_type'),
)

_PRICE_RE = re.compile(r'\d+(?:[.,]\d+)?')
_UNSAFE_TERM_RE = re.compile(r'[,()]')


def parse_price(price: Optional[str]) -> Optional[float]:
    """First number in a free-text price, e.g. '€150/hr' -> 150.0"""
    if not price:
        return None
    match = _PRICE_RE.search(str(price))
    return float(match.group().replace(',', '.')) if match else None


def _in_range(value: Any, bound: Any, comparison: str) -> bool:
    # Unknown values are let through
    if value is None:
        return True
    return value >= bound if comparison == 'min' else value <= bound


def _matches_any(names: Iterable[str], terms: Iterable[str]) -> bool:
    lowered = [name.lower() for name in names]
    return any(term.lower() in name for term in terms for name in lowered)


@dataclass
class SearchResult:
    id: str
    name: str
    location: str
    description: Optional[str] = None
    price: Optional[str] = None
    image_url: Optional[str] = None
    rating: float = 0.0
    loves: int = 0
    is_club: bool = False
    created_at: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def detail(self, key: str) -> Any:
        return self.details.get(key)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchResult':
        details = data.get('profile_details') or {}
        if isinstance(details, list):
            details = details[0] if details else {}
        return cls(
            id=str(data.get('id', '')),
            name=data.get('name') or '',
            location=data.get('location') or '',
            description=data.get('description'),
            price=data.get('price'),
            image_url=data.get('image_url'),
            rating=float(data.get('rating') or 0),
            loves=int(data.get('loves') or 0),
            is_club=bool(data.get('is_club')),
            created_at=data.get('created_at'),
            details={key: details.get(key) for key in DETAIL_COLUMNS},
        )


class SearchService:
    """Profile search over `profiles` joined with `profile_details`"""

    def __init__(self, client):
        self.client = client

    def search_profiles(self, filters: SearchFilters = None, cancel: CancelToken = None) -> List[SearchResult]:
        filters = filters or SearchFilters()
        LOGGER.debug("Searching with filters: %s", filters)

        query = self.client.table('profiles').select(f"*, profile_details({', '.join(DETAIL_COLUMNS)})")

        if filters.category is not Category.ALL:
            query = query.eq('is_club', filters.category is Category.CLUBS)

        term = _UNSAFE_TERM_RE.sub(' ', filters.query or '').strip()
        if term:
            pattern = f'%{term}%'
            query = query.or_(
                Filter('name', 'ilike', pattern),
                Filter('description', 'ilike', pattern),
                Filter('location', 'ilike', pattern),
            )

        if filters.location and filters.location.strip():
            query = query.ilike('location', f'%{filters.location.strip()}%')

        if filters.rating:
            query = query.gte('rating', filters.rating)

        for column, ascending in SORT_ORDERS[filters.sort_by]:
            query = query.order(column, ascending=ascending)

        rows = unwrap(query.execute(cancel), 'Search failed. Please try again.', LOGGER)
        results = [SearchResult.from_dict(row) for row in rows or []]
        results = self._apply_local_filters(results, filters)

        if filters.visit_types or filters.services:
            results = self._apply_service_filters(results, filters, cancel)

        return results

    @staticmethod
    def _apply_local_filters(results: List[SearchResult], filters: SearchFilters) -> List[SearchResult]:
        for attribute, column, comparison in RANGE_FILTERS:
            bound = getattr(filters, attribute)
            if bound is not None:
                results = [r for r in results if _in_range(r.detail(column), bound, comparison)]

        for attribute, column in EXACT_FILTERS:
            wanted = getattr(filters, attribute)
            if wanted:
                results = [r for r in results if r.detail(column) == wanted]

        if filters.languages:
            results = [
                r for r in results
                if r.detail('languages') and any(lang in r.detail('languages') for lang in filters.languages)
            ]

        if filters.price_min is not None:
            results = [r for r in results if _in_range(parse_price(r.price), filters.price_min, 'min')]
        if filters.price_max is not None:
            results = [r for r in results if _in_range(parse_price(r.price), filters.price_max, 'max')]

        return results

    def _apply_service_filters(
        self,
        results: List[SearchResult],
        filters: SearchFilters,
        cancel: CancelToken = None
    ) -> List[SearchResult]:
        if not results:
            return results
        rows = unwrap(
            self.client.table('lady_services')
            .select('profile_id, service_name')
            .in_('profile_id', [r.id for r in results])
            .execute(cancel),
            'Failed to load services.',
            LOGGER
        )
        services: Dict[str, List[str]] = {}
        for row in rows or []:
            services.setdefault(str(row.get('profile_id')), []).append(row.get('service_name') or '')

        kept = []
        for result in results:
            names = services.get(result.id, [])
            if filters.visit_types and not _matches_any(names, filters.visit_types):
                continue
            if filters.services and not _matches_any(names, filters.services):
                continue
            kept.append(result)
        return kept

    def get_search_suggestions(self, query: str, limit: int = 10) -> List[str]:
        term = _UNSAFE_TERM_RE.sub(' ', query or '').strip()
        if not term:
            return []
        rows = unwrap(
            self.client.table('profiles')
            .select('name, location')
            .or_(Filter('name', 'ilike', f'%{term}%'), Filter('location', 'ilike', f'%{term}%'))
            .limit(limit)
            .execute(),
            'Failed to load suggestions.',
            LOGGER
        )
        suggestions: List[str] = []
        for row in rows or []:
            for value in (row.get('name'), row.get('location')):
                if value and value not in suggestions:
                    suggestions.append(value)
        return suggestions[:limit]

    def get_filter_options(self) -> Dict[str, List[str]]:
        """Distinct values for the filter dropdowns"""
        options = {'locations': self._distinct('profiles', 'location')}
        for key, column in (
            ('cup_sizes', 'cup_size'),
            ('body_sizes', 'body_size'),
            ('descents', 'descent'),
            ('ethnicities', 'ethnicity'),
            ('body_types', 'body_type'),
        ):
            options[key] = self._distinct('profile_details', column)
        return options

    def _distinct(self, table: str, column: str) -> List[str]:
        rows = unwrap(
            self.client.table(table).select(column).execute(),
            f'Failed to load {column} options.',
            LOGGER
        )
        values: List[str] = []
        for row in rows or []:
            value = row.get(column)
            if value is not None and value not in values:
                values.append(value)
        return values
