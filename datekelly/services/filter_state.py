"""
Search form state as typed update actions reduced into SearchFilters.

Each form control emits one action; reduce_filters returns a new,
immutable SearchFilters instead of mutating the current one.
"""
from dataclasses import dataclass, fields, replace
from typing import Any, Iterable, Optional, Union

from ..models.filters import SearchFilters, coerce_filter_value


_FIELDS = {f.name for f in fields(SearchFilters)}
_RANGES = ('age', 'height', 'weight', 'price')


@dataclass(frozen=True)
class SetField:
    name: str
    value: Any


@dataclass(frozen=True)
class SetRange:
    """name is one of age, height, weight, price"""
    name: str
    minimum: Optional[float] = None
    maximum: Optional[float] = None


@dataclass(frozen=True)
class ToggleLanguage:
    language: str


@dataclass(frozen=True)
class ToggleService:
    service: str
    kind: str = 'services'  # services or visit_types


@dataclass(frozen=True)
class ResetFilters:
    pass


FilterAction = Union[SetField, SetRange, ToggleLanguage, ToggleService, ResetFilters]


def _toggle(values: Iterable[str], item: str) -> tuple:
    values = tuple(values)
    if item in values:
        return tuple(v for v in values if v != item)
    return values + (item,)


def reduce_filters(state: SearchFilters, action: FilterAction) -> SearchFilters:
    """Apply one action and return the new filter state"""
    if isinstance(action, ResetFilters):
        return SearchFilters()

    if isinstance(action, SetField):
        if action.name not in _FIELDS:
            raise ValueError(f"Unknown search filter: {action.name}")
        return replace(state, **{action.name: coerce_filter_value(action.name, action.value)})

    if isinstance(action, SetRange):
        if action.name not in _RANGES:
            raise ValueError(f"Unknown range filter: {action.name}")
        minimum = coerce_filter_value(f'{action.name}_min', action.minimum)
        maximum = coerce_filter_value(f'{action.name}_max', action.maximum)
        if minimum is not None and maximum is not None and minimum > maximum:
            minimum, maximum = maximum, minimum
        return replace(state, **{f'{action.name}_min': minimum, f'{action.name}_max': maximum})

    if isinstance(action, ToggleLanguage):
        return replace(state, languages=_toggle(state.languages, action.language))

    if isinstance(action, ToggleService):
        if action.kind not in ('services', 'visit_types'):
            raise ValueError(f"Unknown service filter: {action.kind}")
        current = getattr(state, action.kind)
        return replace(state, **{action.kind: _toggle(current, action.service)})

    raise TypeError(f"Unsupported filter action: {type(action).__name__}")
