"""
DateKelly services: search ranking, uploads, verification, fan posts, moderation
"""
from .fan_posts import FanPostService, format_relative_date
from .filter_state import (
    ResetFilters,
    SetField,
    SetRange,
    ToggleLanguage,
    ToggleService,
    reduce_filters,
)
from .locality import detect_city, rank_by_locality
from .moderation import ContentModerationService
from .outbox import Outbox
from .ranking import (
    RankedSearch,
    SearchRankingService,
    SearchSections,
    calculate_distance,
    calculate_search_priority,
    partition_sections,
    rank_listings,
)
from .search import SearchResult, SearchService
from .uploads import ImageUploadService
from .verification import VerificationService

__all__ = [
    'ContentModerationService',
    'FanPostService',
    'ImageUploadService',
    'Outbox',
    'RankedSearch',
    'ResetFilters',
    'SearchRankingService',
    'SearchResult',
    'SearchSections',
    'SearchService',
    'SetField',
    'SetRange',
    'ToggleLanguage',
    'ToggleService',
    'VerificationService',
    'calculate_distance',
    'calculate_search_priority',
    'detect_city',
    'format_relative_date',
    'partition_sections',
    'rank_by_locality',
    'rank_listings',
    'reduce_filters',
]
