"""
Search filter configuration
"""
from dataclasses import dataclass, fields
from typing import Optional, Tuple, Dict, Any
from enum import Enum


class Category(Enum):
    LADIES = "ladies"
    CLUBS = "clubs"
    ALL = "all"


class SortBy(Enum):
    RELEVANCE = "relevance"
    RATING = "rating"
    PRICE_LOW = "price_low"
    PRICE_HIGH = "price_high"
    NEWEST = "newest"
    LOVES = "loves"


@dataclass(frozen=True)
class SearchFilters:
    """
    Optional search constraints; None means "not constrained".

    Immutable: form updates produce a new instance (see services.filter_state).
    """
    query: Optional[str] = None
    location: Optional[str] = None
    category: Category = Category.ALL
    radius_km: Optional[float] = None
    require_verified: bool = False
    require_fan_posts: bool = False
    visit_types: Tuple[str, ...] = ()
    services: Tuple[str, ...] = ()
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    height_min: Optional[int] = None
    height_max: Optional[int] = None
    weight_min: Optional[int] = None
    weight_max: Optional[int] = None
    cup_size: Optional[str] = None
    body_size: Optional[str] = None
    descent: Optional[str] = None
    languages: Tuple[str, ...] = ()
    ethnicity: Optional[str] = None
    body_type: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    rating: Optional[float] = None
    sort_by: SortBy = SortBy.RELEVANCE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchFilters':
        """Build filters from a loose dict (query string, JSON form payload)"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: coerce_filter_value(k, v) for k, v in data.items() if k in known})


FLOAT_FIELDS = ('radius_km', 'rating', 'price_min', 'price_max')
INT_FIELDS = ('age_min', 'age_max', 'height_min', 'height_max', 'weight_min', 'weight_max')
BOOL_FIELDS = ('require_verified', 'require_fan_posts')
SET_FIELDS = ('visit_types', 'services', 'languages')

_DEFAULTS = {f.name: f.default for f in fields(SearchFilters)}
_TRUE_VALUES = ('true', '1', 'on', 'yes')


def parse_bool(value: Any) -> bool:
    """Form checkbox / query string flag; only 'true', '1', 'on' and 'yes' are set"""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_VALUES
    return bool(value)


def coerce_filter_value(name: str, value: Any) -> Any:
    """
    Convert a raw form or query-string value to the type of filter `name`.

    Blank values reset the filter to its default.

    Raises:
        ValueError: value cannot be read as the field's type
    """
    if isinstance(value, str):
        value = value.strip()
    if value is None or value == '':
        return _DEFAULTS.get(name)

    if name == 'category':
        return Category(value)
    if name == 'sort_by':
        return SortBy(value)
    if name in BOOL_FIELDS:
        return parse_bool(value)
    if name in FLOAT_FIELDS:
        return float(value)
    if name in INT_FIELDS:
        return int(float(value))
    if name in SET_FIELDS:
        if isinstance(value, str):
            return (value,)
        return tuple(value)
    return value
