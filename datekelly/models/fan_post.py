"""
Fan Post Data Models
"""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from enum import Enum


class FanPostStatus(Enum):
    """Publication status of a fan post"""
    PUBLISHED = "published"
    DELETED = "deleted"


@dataclass
class FanPostComment:
    """Comment on a fan post"""
    id: str
    content: str
    author_name: str = "Anonymous"
    author_image: str = ""
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FanPostComment':
        profile = data.get('profiles') or {}
        return cls(
            id=str(data.get('id', '')),
            content=data.get('content') or '',
            author_name=profile.get('name') or 'Anonymous',
            author_image=profile.get('image_url') or '',
            created_at=data.get('created_at'),
        )


@dataclass
class FanPost:
    """
    Subscription content item

    Premium posts carry an unlock price in platform credits.
    Media URLs keep their display order.
    """
    id: str
    author_id: str
    content: str = ""
    theme: Optional[str] = None
    is_premium: bool = False
    unlock_price: int = 0
    likes: int = 0
    comments: int = 0
    image_urls: List[str] = field(default_factory=list)
    video_urls: List[str] = field(default_factory=list)
    comments_list: List[FanPostComment] = field(default_factory=list)
    author_name: str = "Anonymous"
    author_image: str = ""
    is_liked: bool = False
    created_at: Optional[str] = None
    status: FanPostStatus = FanPostStatus.PUBLISHED

    @property
    def image_url(self) -> Optional[str]:
        return self.image_urls[0] if self.image_urls else None

    @property
    def content_amount(self) -> Dict[str, int]:
        return {'photos': len(self.image_urls), 'videos': len(self.video_urls)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], media: List[Dict[str, Any]] = None) -> 'FanPost':
        """
        Create a FanPost from a `fan_posts` row and its `fan_post_media` rows

        Media rows are expected in display order.
        """
        media = media or []
        try:
            status = FanPostStatus(data.get('status') or 'published')
        except ValueError:
            status = FanPostStatus.PUBLISHED
        return cls(
            id=str(data.get('id', '')),
            author_id=str(data.get('author_id', '')),
            content=data.get('content') or '',
            theme=data.get('theme'),
            is_premium=bool(data.get('is_premium')),
            unlock_price=int(data.get('credits_cost') or 0),
            likes=int(data.get('likes_count') or 0),
            comments=int(data.get('comments_count') or 0),
            image_urls=[m['file_url'] for m in media if m.get('media_type') == 'image'],
            video_urls=[m['file_url'] for m in media if m.get('media_type') == 'video'],
            created_at=data.get('created_at'),
            status=status,
        )
