"""
DateKelly Models Package
"""
from .listing import Listing, RankedListing, MembershipTier
from .fan_post import FanPost, FanPostComment, FanPostStatus
from .verification import (
    DocumentType,
    UploadStatus,
    ApprovalStatus,
    VerificationDocument,
    DOCUMENT_CONFIGS,
    REQUIRED_DOCUMENT_TYPES,
    VERIFICATION_TABLES
)
from .filters import SearchFilters, Category, SortBy

__all__ = [
    'Listing',
    'RankedListing',
    'MembershipTier',
    'FanPost',
    'FanPostComment',
    'FanPostStatus',
    'DocumentType',
    'UploadStatus',
    'ApprovalStatus',
    'VerificationDocument',
    'DOCUMENT_CONFIGS',
    'REQUIRED_DOCUMENT_TYPES',
    'VERIFICATION_TABLES',
    'SearchFilters',
    'Category',
    'SortBy'
]
