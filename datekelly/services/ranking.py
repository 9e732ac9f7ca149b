"""
Search ranking by membership tier and distance.

Priority = tier base - distance step penalty. Results sort by priority,
then rating, then loves, all descending, with input order breaking any
remaining tie. Sparse local results are backfilled from successively wider
distance bands ("expansion rings").
"""
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..api.client import CancelToken
from ..api.config import Config
from ..errors import unwrap
from ..models.filters import SearchFilters
from ..models.listing import Listing, MembershipTier, RankedListing


LOGGER = logging.getLogger(__name__)

TIER_PRIORITIES = {
    MembershipTier.ULTRA: 1000,
    MembershipTier.PRO_PLUS: 800,
    MembershipTier.PRO: 600,
    MembershipTier.FREE: 400,
}

# (exclusive lower bound in km, penalty), widest first
DISTANCE_PENALTIES = (
    (50, 150),
    (20, 100),
    (5, 50),
)

NEARBY_RADIUS_KM = 5

# Expansion rings in km, searched in order
EXPANSION_BANDS = (
    (5, 20),
    (20, 50),
    (50, 100),
)

EARTH_RADIUS_KM = 6371

# Fixed geocoding table for supported search locations
LOCATION_COORDINATES = {
    'London': (51.5074, -0.1278),
    'Amsterdam': (52.3676, 4.9041),
    'Rotterdam': (51.9244, 4.4777),
    'The Hague': (52.0705, 4.3007),
    'Utrecht': (52.0907, 5.1214),
    'Eindhoven': (51.4416, 5.4697),
    'Groningen': (53.2194, 6.5665),
    'Maastricht': (50.8514, 5.6909),
}

PROFILE_COLUMNS = """
    id, name, location, image_url, rating, loves, membership_tier,
    is_verified, is_club, description, price, latitude, longitude, user_id,
    users!inner(is_blocked)
"""


def distance_penalty(distance_km: Optional[float]) -> int:
    """Step penalty: 0 up to 5 km, 50 past 5, 100 past 20, 150 past 50"""
    if not distance_km:
        return 0
    for threshold, penalty in DISTANCE_PENALTIES:
        if distance_km > threshold:
            return penalty
    return 0


def calculate_search_priority(tier, distance_km: Optional[float] = 0) -> int:
    return TIER_PRIORITIES[MembershipTier.parse(tier)] - distance_penalty(distance_km)


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km (haversine)"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def get_location_coordinates(location: Optional[str]) -> Optional[Tuple[float, float]]:
    if not location:
        return None
    return LOCATION_COORDINATES.get(location.strip())


def sort_key(listing: RankedListing):
    return (-listing.search_priority, -listing.rating, -listing.loves)


def _passes(listing: RankedListing, filters: SearchFilters) -> bool:
    # Unknown distance counts as nearby and is never cut by the radius
    if filters.radius_km and listing.distance_km is not None and listing.distance_km > filters.radius_km:
        return False
    if filters.rating and listing.rating < filters.rating:
        return False
    if filters.require_verified and not listing.is_verified:
        return False
    if filters.require_fan_posts and not listing.has_fan_posts:
        return False
    return True


def rank_listings(
    listings: Iterable[Listing],
    search_location: Optional[str],
    filters: SearchFilters = None,
    fan_post_authors: Set[str] = None,
    limit: int = None
) -> List[RankedListing]:
    """
    Score, filter and order listings for one search.

    Args:
        listings: Candidate listings
        search_location: Name from LOCATION_COORDINATES; unknown names disable distances
        filters: radius_km, rating, require_verified and require_fan_posts are applied
        fan_post_authors: user ids with at least one published fan post
        limit: Keep at most this many

    Returns:
        Ranked listings, best first
    """
    filters = filters or SearchFilters()
    fan_post_authors = fan_post_authors or set()
    centre = get_location_coordinates(search_location)

    ranked = []
    for listing in listings:
        distance = None
        if centre and listing.has_coordinates:
            distance = calculate_distance(centre[0], centre[1], listing.latitude, listing.longitude)
        candidate = RankedListing.from_listing(
            listing,
            distance_km=distance,
            search_priority=calculate_search_priority(listing.membership_tier, distance),
            has_fan_posts=bool(listing.user_id and listing.user_id in fan_post_authors),
        )
        if _passes(candidate, filters):
            ranked.append(candidate)

    ranked.sort(key=sort_key)
    return ranked[:limit] if limit is not None else ranked


def merge_expansion(
    primary: List[RankedListing],
    bands: Iterable[Tuple[Tuple[float, float], List[RankedListing]]],
    target_count: int
) -> List[RankedListing]:
    """
    Append band results after the primary ones.

    Band entries are kept only if their known distance falls inside the band
    and their id is not already present. Never returns more than target_count.
    """
    results = list(primary[:target_count])
    seen = {listing.id for listing in results}
    for (low, high), candidates in bands:
        if len(results) >= target_count:
            break
        for listing in candidates:
            if len(results) >= target_count:
                break
            if listing.id in seen or listing.distance_km is None:
                continue
            if low <= listing.distance_km <= high:
                results.append(listing)
                seen.add(listing.id)
    return results


@dataclass
class SearchSections:
    """Display groupings over one final result list"""
    ultra: List[RankedListing] = field(default_factory=list)
    pro: List[RankedListing] = field(default_factory=list)
    free_nearby: List[RankedListing] = field(default_factory=list)
    expanded: List[RankedListing] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[RankedListing]]:
        return {
            'ultra': self.ultra,
            'pro': self.pro,
            'free-nearby': self.free_nearby,
            'expanded': self.expanded,
        }


def partition_sections(results: List[RankedListing]) -> SearchSections:
    sections = SearchSections()
    for listing in results:
        tier = listing.membership_tier
        if tier is MembershipTier.ULTRA:
            sections.ultra.append(listing)
        elif tier in (MembershipTier.PRO, MembershipTier.PRO_PLUS):
            sections.pro.append(listing)
        nearby = listing.distance_km is None or listing.distance_km <= NEARBY_RADIUS_KM
        if tier is MembershipTier.FREE and nearby:
            sections.free_nearby.append(listing)
        if not nearby:
            sections.expanded.append(listing)
    return sections


@dataclass
class RankedSearch:
    results: List[RankedListing]
    sections: SearchSections


class SearchRankingService:
    """Remote search over `profiles` with local ranking"""

    def __init__(self, client):
        self.client = client

    def fetch_candidates(self, filters: SearchFilters, limit: int, cancel: CancelToken = None) -> List[Listing]:
        query = (
            self.client.table('profiles')
            .select(PROFILE_COLUMNS)
            .eq('role', 'lady')
            .eq('is_active', True)
            .eq('users.is_blocked', False)
        )
        if filters.rating:
            query = query.gte('rating', filters.rating)
        if filters.require_verified:
            query = query.eq('is_verified', True)

        rows = unwrap(query.limit(limit).execute(cancel), 'Failed to search profiles.', LOGGER)
        return [Listing.from_dict(row) for row in rows or []]

    def fetch_fan_post_authors(self, cancel: CancelToken = None) -> Set[str]:
        """User ids with at least one published fan post"""
        result = (
            self.client.table('fan_posts')
            .select('author_id')
            .eq('status', 'published')
            .execute(cancel)
        )
        rows = unwrap(result, 'Failed to load fan post authors.', LOGGER)
        return {row['author_id'] for row in rows or [] if row.get('author_id')}

    def search_ranked_listings(
        self,
        search_location: str = None,
        filters: SearchFilters = None,
        limit: int = 50,
        cancel: CancelToken = None
    ) -> List[RankedListing]:
        """Fetch twice the limit, rank locally, keep the best `limit`"""
        search_location = search_location or Config.SEARCH_LOCATION
        filters = filters or SearchFilters()
        listings = self.fetch_candidates(filters, limit * 2, cancel)
        authors = self.fetch_fan_post_authors(cancel) if filters.require_fan_posts else set()
        return rank_listings(listings, search_location, filters, authors, limit)

    def expand_geographically(
        self,
        search_location: str,
        existing: List[RankedListing],
        target_count: int = 50,
        filters: SearchFilters = None,
        cancel: CancelToken = None
    ) -> List[RankedListing]:
        """Backfill `existing` from the expansion rings until target_count"""
        if len(existing) >= target_count:
            return existing[:target_count]

        filters = filters or SearchFilters()
        results = list(existing)
        for band in EXPANSION_BANDS:
            if len(results) >= target_count:
                break
            band_filters = replace(filters, radius_km=band[1])
            candidates = self.search_ranked_listings(search_location, band_filters, target_count, cancel)
            results = merge_expansion(results, [(band, candidates)], target_count)
            LOGGER.debug("expansion band %s-%skm: %s results", band[0], band[1], len(results))
        return results

    def search_with_expansion(
        self,
        search_location: str = None,
        filters: SearchFilters = None,
        target_count: int = None,
        cancel: CancelToken = None
    ) -> RankedSearch:
        search_location = search_location or Config.SEARCH_LOCATION
        target_count = target_count or Config.SEARCH_TARGET_COUNT
        primary = self.search_ranked_listings(search_location, filters, target_count, cancel)
        results = self.expand_geographically(search_location, primary, target_count, filters, cancel)
        return RankedSearch(results=results, sections=partition_sections(results))
