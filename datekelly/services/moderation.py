"""
Content moderation: queue records for admins and invoke moderation RPCs.

Mirroring uploads and comments into the moderation tables, and writing
admin audit rows, is best effort and goes through the Outbox.
"""
import logging
from concurrent.futures import Future
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..api.client import QueryResult
from ..api.session import Session
from ..errors import ServiceError, require_user, unwrap
from .outbox import Outbox


LOGGER = logging.getLogger(__name__)

MODERATION_ACTIONS = ('approve', 'reject', 'hide', 'delete')
CONTENT_TYPES = ('media', 'comment', 'review', 'fan_post', 'gift', 'photo')


class ContentModerationService:
    """Moderation tables (`media_items`, `comments`, `content_reports`) and RPCs"""

    def __init__(self, client, outbox: Outbox = None):
        self.client = client
        self.outbox = outbox or Outbox()

    # ==================== BEST-EFFORT RECORDS ====================

    def record_uploaded_images(self, user_id: str, uploads: List[Dict[str, str]]) -> QueryResult:
        rows = [{
            'user_id': user_id,
            'media_type': 'image',
            'url': upload['url'],
            'status': 'active',
            'moderation_status': 'pending',
        } for upload in uploads]
        return self.client.table('media_items').insert(rows).execute()

    def mirror_comment(self, user_id: str, content_type: str, content_id: str, comment: str) -> QueryResult:
        return self.client.table('comments').insert({
            'user_id': user_id,
            'content_type': content_type,
            'content_id': content_id,
            'comment': comment,
            'status': 'active',
            'moderation_status': 'pending',
        }).execute()

    def log_admin_action(self, admin_id: str, action_type: str, target_user_id: str,
                         metadata: Dict[str, Any] = None) -> QueryResult:
        return self.client.table('admin_actions').insert({
            'admin_id': admin_id,
            'action_type': action_type,
            'target_user_id': target_user_id,
            'metadata': metadata or {},
        }).execute()

    def queue_uploaded_images(self, user_id: str, uploads: List[Dict[str, str]]) -> Optional[Future]:
        if not uploads:
            return None
        return self.outbox.post('record_uploaded_images', self.record_uploaded_images, user_id, uploads)

    def queue_comment_mirror(self, user_id: str, content_type: str, content_id: str, comment: str) -> Future:
        return self.outbox.post('mirror_comment', self.mirror_comment, user_id, content_type, content_id, comment)

    def queue_admin_action(self, admin_id: str, action_type: str, target_user_id: str,
                           metadata: Dict[str, Any] = None) -> Future:
        return self.outbox.post('log_admin_action', self.log_admin_action,
                                admin_id, action_type, target_user_id, metadata)

    # ==================== RPC ====================

    def report_content(self, session: Session, content_type: str, content_id: str, reason: str) -> Optional[str]:
        require_user(session, 'You must be logged in to report content.')
        if content_type not in CONTENT_TYPES:
            raise ServiceError(f"Unknown content type: {content_type}")
        result = self.client.rpc('report_content', {
            'p_content_type': content_type,
            'p_content_id': content_id,
            'p_reason': reason,
        })
        return unwrap(result, 'Failed to report content.', LOGGER) or None

    def moderate_content(self, content_type: str, content_id: str, action: str, reason: str):
        if action not in MODERATION_ACTIONS:
            raise ServiceError(f"Unknown moderation action: {action}")
        result = self.client.rpc('moderate_content', {
            'p_content_type': content_type,
            'p_content_id': content_id,
            'p_action': action,
            'p_reason': reason,
        })
        unwrap(result, 'Failed to moderate content.', LOGGER)

    def lock_user(self, user_id: str, reason: str, expires_at: datetime = None):
        result = self.client.rpc('lock_user_account', {
            'target_user_id': user_id,
            'lock_reason': reason,
            'expires_at': expires_at.isoformat() if expires_at else None,
        })
        unwrap(result, 'Failed to lock user.', LOGGER)

    def unlock_user(self, user_id: str):
        unwrap(self.client.rpc('unlock_user_account', {'target_user_id': user_id}),
               'Failed to unlock user.', LOGGER)

    # ==================== QUEUES ====================

    def _page(self, table: str, page: int, page_size: int, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        query = self.client.table(table).select('*').order('created_at', ascending=False)
        for column, value in filters.items():
            if value is not None:
                query = query.eq(column, value)
        query = query.range((page - 1) * page_size, page * page_size - 1)
        return unwrap(query.execute(), f'Failed to load {table}.', LOGGER) or []

    def get_media_items(self, page: int = 1, page_size: int = 20, **filters) -> List[Dict[str, Any]]:
        return self._page('media_items', page, page_size, filters)

    def get_comments(self, page: int = 1, page_size: int = 20, **filters) -> List[Dict[str, Any]]:
        return self._page('comments', page, page_size, filters)

    def get_content_reports(self, page: int = 1, page_size: int = 20, **filters) -> List[Dict[str, Any]]:
        return self._page('content_reports', page, page_size, filters)
