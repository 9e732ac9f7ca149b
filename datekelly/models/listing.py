"""
Listing Data Models
"""
from dataclasses import dataclass, asdict, fields
from typing import Optional, Dict, Any
from enum import Enum


class MembershipTier(Enum):
    """Subscription level of a listing owner"""
    FREE = "FREE"
    PRO = "PRO"
    PRO_PLUS = "PRO-PLUS"
    ULTRA = "ULTRA"

    @property
    def is_paid(self) -> bool:
        return self is not MembershipTier.FREE

    @classmethod
    def parse(cls, value: Any) -> 'MembershipTier':
        """Tolerant conversion; unknown or missing tiers count as FREE"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.FREE


@dataclass
class Listing:
    """
    A publicly browsable profile ("lady" or club advertisement)

    Rows come from the `profiles` table; owner account is `user_id`.
    """
    id: str
    name: str = ""
    location: str = ""
    image_url: Optional[str] = None
    rating: float = 0.0
    loves: int = 0
    membership_tier: MembershipTier = MembershipTier.FREE
    is_verified: bool = False
    is_club: bool = False
    description: str = ""
    price: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    user_id: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['membership_tier'] = self.membership_tier.value
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Listing':
        """Create a Listing from a remote row"""
        latitude = data.get('latitude')
        longitude = data.get('longitude')
        return cls(
            id=str(data.get('id', '')),
            name=data.get('name') or '',
            location=data.get('location') or '',
            image_url=data.get('image_url'),
            rating=float(data.get('rating') or 0),
            loves=int(data.get('loves') or 0),
            membership_tier=MembershipTier.parse(data.get('membership_tier')),
            is_verified=bool(data.get('is_verified')),
            is_club=bool(data.get('is_club')),
            description=data.get('description') or '',
            price=data.get('price'),
            latitude=float(latitude) if latitude is not None else None,
            longitude=float(longitude) if longitude is not None else None,
            user_id=data.get('user_id'),
        )


@dataclass
class RankedListing(Listing):
    """A Listing scored for one search request; never persisted"""
    distance_km: Optional[float] = None
    search_priority: int = 0
    has_fan_posts: bool = False

    @classmethod
    def from_listing(
        cls,
        listing: Listing,
        distance_km: Optional[float],
        search_priority: int,
        has_fan_posts: bool = False
    ) -> 'RankedListing':
        values = {f.name: getattr(listing, f.name) for f in fields(Listing)}
        return cls(
            **values,
            distance_km=distance_km,
            search_priority=search_priority,
            has_fan_posts=has_fan_posts,
        )
