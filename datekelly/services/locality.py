"""
City-based tiering for the browse pages.

Independent of the distance formula in ranking.py: a listing in the
viewer's city beats one in a neighbouring city, which beats everything
else; inside each of those groups paid tiers come before FREE.
"""
from typing import Iterable, List, Optional, Sequence

from ..models.listing import Listing

# Fixed adjacency table of nearby cities per known city
NEARBY_CITIES = {
    'Amsterdam': ('Haarlem', 'Zaandam', 'Amstelveen', 'Hoofddorp', 'Utrecht'),
    'Rotterdam': ('The Hague', 'Delft', 'Schiedam', 'Dordrecht', 'Gouda'),
    'The Hague': ('Rotterdam', 'Delft', 'Leiden', 'Zoetermeer'),
    'Utrecht': ('Amsterdam', 'Amersfoort', 'Hilversum', 'Nieuwegein', 'Zeist'),
    'Eindhoven': ('Helmond', 'Veldhoven', 'Tilburg', "'s-Hertogenbosch"),
    'Groningen': ('Assen', 'Leeuwarden', 'Drachten'),
    'Maastricht': ('Heerlen', 'Sittard', 'Valkenburg'),
    'London': ('Croydon', 'Watford', 'Slough', 'Reading', 'Luton'),
}

CITY_MATCH = 0
NEARBY_MATCH = 1
NO_MATCH = 2


def _contains(location: str, city: str) -> bool:
    return city.lower() in (location or '').lower()


def detect_city(text: Optional[str]) -> Optional[str]:
    """First known city named in a free-text location, if any"""
    if not text:
        return None
    for city in NEARBY_CITIES:
        if _contains(text, city):
            return city
    return None


def nearby_cities(city: Optional[str]) -> Sequence[str]:
    if not city:
        return ()
    for known, neighbours in NEARBY_CITIES.items():
        if known.lower() == city.strip().lower():
            return neighbours
    return ()


def locality_rank(location: str, viewer_city: Optional[str]) -> int:
    if not viewer_city:
        return NO_MATCH
    if _contains(location, viewer_city):
        return CITY_MATCH
    if any(_contains(location, neighbour) for neighbour in nearby_cities(viewer_city)):
        return NEARBY_MATCH
    return NO_MATCH


def rank_by_locality(listings: Iterable[Listing], viewer_city: Optional[str]) -> List[Listing]:
    """Order listings by locality bucket, then paid before free; stable otherwise"""
    return sorted(
        listings,
        key=lambda listing: (
            locality_rank(listing.location, viewer_city),
            0 if listing.membership_tier.is_paid else 1,
        )
    )
