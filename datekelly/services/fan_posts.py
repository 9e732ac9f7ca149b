"""
Fan posts: subscription content with media, likes, comments and credit unlocks.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..api.client import CancelToken
from ..api.session import Session
from ..errors import InsufficientCreditsError, ValidationError, require_user, unwrap
from ..images.processor import ImageProcessor
from ..models.fan_post import FanPost, FanPostComment, FanPostStatus
from ..utils.batch import run_batch
from .moderation import ContentModerationService
from .outbox import Outbox
from .uploads import UploadFile, file_extension


LOGGER = logging.getLogger(__name__)

MEDIA_BUCKET = 'fan-post-media'

POST_COLUMNS = """
    id, content, theme, is_premium, credits_cost, likes_count,
    comments_count, created_at, author_id, status
"""

COMMENT_COLUMNS = """
    id, content, created_at, author_id,
    profiles!fan_post_comments_author_id_fkey(name, image_url)
"""


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_relative_date(date_string: str, now: datetime = None) -> str:
    """'3 days ago', '1 hour ago', '5 minutes ago' or 'Just now'"""
    now = now or datetime.now(timezone.utc)
    seconds = abs((now - _parse_timestamp(date_string)).total_seconds())
    for unit, size in (('day', 86400), ('hour', 3600), ('minute', 60)):
        amount = int(seconds // size)
        if amount > 0:
            return f"{amount} {unit}{'s' if amount > 1 else ''} ago"
    return 'Just now'


class FanPostService:
    """Fan post feed and author tools"""

    def __init__(
        self,
        client,
        outbox: Outbox = None,
        processor: ImageProcessor = None,
        moderation: ContentModerationService = None
    ):
        self.client = client
        self.outbox = outbox or Outbox()
        self.processor = processor or ImageProcessor()
        self.moderation = moderation or ContentModerationService(client, self.outbox)

    # ==================== READ ====================

    def _load_media(self, post_id: str, cancel: CancelToken = None) -> List[Dict[str, Any]]:
        return unwrap(
            self.client.table('fan_post_media')
            .select('file_url, media_type')
            .eq('post_id', post_id)
            .order('display_order', ascending=True)
            .execute(cancel),
            'Failed to load post media.',
            LOGGER
        ) or []

    def _load_authors(self, author_ids: Sequence[str], cancel: CancelToken = None) -> Dict[str, Dict[str, Any]]:
        if not author_ids:
            return {}
        result = (
            self.client.table('profiles')
            .select('user_id, name, image_url')
            .in_('user_id', author_ids)
            .execute(cancel)
        )
        if result.error:
            # Posts are still shown, with anonymous authors
            LOGGER.warning("Failed to load author profiles for fan posts: %s", result.error.message)
            return {}
        return {row['user_id']: row for row in result.data or []}

    def _is_liked(self, post_id: str, user_id: str, cancel: CancelToken = None) -> bool:
        result = (
            self.client.table('fan_post_likes')
            .select('id')
            .eq('post_id', post_id)
            .eq('user_id', user_id)
            .maybe_single()
            .execute(cancel)
        )
        return bool(unwrap(result, 'Failed to load likes.', LOGGER))

    @staticmethod
    def _with_author(post: FanPost, authors: Dict[str, Dict[str, Any]]) -> FanPost:
        profile = authors.get(post.author_id) or {}
        post.author_name = profile.get('name') or 'Anonymous'
        post.author_image = profile.get('image_url') or ''
        return post

    def _build_posts(
        self,
        rows: List[Dict[str, Any]],
        viewer_id: str = None,
        cancel: CancelToken = None
    ) -> List[FanPost]:
        authors = self._load_authors(sorted({row['author_id'] for row in rows}), cancel)
        posts = []
        for row in rows:
            post = self._with_author(FanPost.from_dict(row, self._load_media(row['id'], cancel)), authors)
            if viewer_id:
                post.is_liked = self._is_liked(post.id, viewer_id, cancel)
            posts.append(post)
        return posts

    def get_all_fan_posts(self, session: Optional[Session], cancel: CancelToken = None) -> List[FanPost]:
        """Published posts, newest first, with the viewer's like state"""
        session = require_user(session, 'You must be logged in to view fan posts.')
        rows = unwrap(
            self.client.table('fan_posts')
            .select(POST_COLUMNS)
            .eq('status', FanPostStatus.PUBLISHED.value)
            .order('created_at', ascending=False)
            .execute(cancel),
            'Failed to load fan posts.',
            LOGGER
        )
        return self._build_posts(rows or [], session.user_id, cancel)

    def get_fan_posts_by_author(self, author_id: str, cancel: CancelToken = None) -> List[FanPost]:
        rows = unwrap(
            self.client.table('fan_posts')
            .select(POST_COLUMNS)
            .eq('author_id', author_id)
            .eq('status', FanPostStatus.PUBLISHED.value)
            .order('created_at', ascending=False)
            .execute(cancel),
            'Failed to load author posts.',
            LOGGER
        )
        return self._build_posts(rows or [], cancel=cancel)

    # ==================== WRITE ====================

    def create_fan_post(
        self,
        session: Optional[Session],
        content: str,
        theme: str = None,
        is_premium: bool = False,
        credits_cost: int = 0,
        media_files: Sequence[UploadFile] = (),
        cancel: CancelToken = None
    ) -> FanPost:
        """
        Insert a post, then upload its media.

        If the media upload fails the post row is deleted again and the
        upload error is raised.
        """
        session = require_user(session, 'You must be logged in to create a fan post.')
        content = (content or '').strip()
        if not content and not media_files:
            raise ValidationError('A fan post needs text or media.')

        post = unwrap(
            self.client.table('fan_posts')
            .insert({
                'author_id': session.user_id,
                'content': content,
                'theme': theme,
                'is_premium': is_premium,
                'credits_cost': (credits_cost or 0) if is_premium else 0,
                'status': FanPostStatus.PUBLISHED.value,
            })
            .select(POST_COLUMNS)
            .single()
            .execute(cancel),
            'Failed to create fan post. Please try again.',
            LOGGER
        )

        media = []
        if media_files:
            try:
                media = self.upload_fan_post_media(session, post['id'], media_files, cancel)
            except Exception:
                LOGGER.error("Media upload failed, removing post %s", post['id'])
                for table, column in (('fan_post_media', 'post_id'), ('fan_posts', 'id')):
                    cleanup = self.client.table(table).delete().eq(column, post['id']).execute()
                    if cleanup.error:
                        LOGGER.error("Could not clean up %s for post %s: %s",
                                     table, post['id'], cleanup.error.message)
                raise

        return self._with_author(FanPost.from_dict(post, media), self._load_authors([session.user_id], cancel))

    def upload_fan_post_media(
        self,
        session: Optional[Session],
        post_id: str,
        files: Sequence[UploadFile],
        cancel: CancelToken = None
    ) -> List[Dict[str, Any]]:
        """
        Upload all files concurrently and record them in `fan_post_media`.

        Images are resized and watermarked first. Returns the media rows in
        display order.
        """
        session = require_user(session, 'You must be logged in to upload media.')
        stamp = int(time.time() * 1000)
        bucket = self.client.storage.from_(MEDIA_BUCKET)

        def upload(item: Tuple[int, UploadFile]) -> Dict[str, Any]:
            index, (content, file_name, mime_type) = item
            media_type = 'image' if mime_type.startswith('image/') else 'video'
            if mime_type in ImageProcessor.FORMATS:
                content, _ = self.processor.process_image(content, mime_type)

            path = f"{post_id}/{stamp}-{index}.{file_extension(file_name, mime_type)}"
            unwrap(bucket.upload(path, content, content_type=mime_type, cancel=cancel),
                   f'Failed to upload {file_name}', LOGGER)
            row = {
                'post_id': post_id,
                'media_type': media_type,
                'file_url': bucket.get_public_url(path),
                'file_name': file_name,
                'file_size': len(content),
                'display_order': index,
            }
            unwrap(self.client.table('fan_post_media').insert(row).execute(cancel),
                   'Failed to save media record.', LOGGER)
            return {**row, 'path': path}

        rows = run_batch(upload, list(enumerate(files)))
        images = [{'url': row['file_url'], 'path': row['path']} for row in rows if row['media_type'] == 'image']
        self.moderation.queue_uploaded_images(session.user_id, images)
        return rows

    def toggle_like(self, session: Optional[Session], post_id: str) -> bool:
        """Returns the new like state"""
        session = require_user(session, 'You must be logged in to like posts.')
        if self._is_liked(post_id, session.user_id):
            unwrap(
                self.client.table('fan_post_likes')
                .delete()
                .eq('post_id', post_id)
                .eq('user_id', session.user_id)
                .execute(),
                'Failed to unlike post.',
                LOGGER
            )
            return False
        unwrap(
            self.client.table('fan_post_likes').insert({'post_id': post_id, 'user_id': session.user_id}).execute(),
            'Failed to like post.',
            LOGGER
        )
        return True

    def get_comments(self, post_id: str, cancel: CancelToken = None) -> List[FanPostComment]:
        rows = unwrap(
            self.client.table('fan_post_comments')
            .select(COMMENT_COLUMNS)
            .eq('post_id', post_id)
            .order('created_at', ascending=True)
            .execute(cancel),
            'Failed to load comments.',
            LOGGER
        )
        return [FanPostComment.from_dict(row) for row in rows or []]

    def add_comment(self, session: Optional[Session], post_id: str, content: str) -> FanPostComment:
        """Insert a comment; the copy into the moderation table is best effort"""
        session = require_user(session, 'You must be logged in to comment.')
        content = (content or '').strip()
        if not content:
            raise ValidationError('Comment cannot be empty.')

        row = unwrap(
            self.client.table('fan_post_comments')
            .insert({'post_id': post_id, 'author_id': session.user_id, 'content': content})
            .select(COMMENT_COLUMNS)
            .single()
            .execute(),
            'Failed to add comment. Please try again.',
            LOGGER
        )
        self.moderation.queue_comment_mirror(session.user_id, 'fan_post', post_id, content)
        return FanPostComment.from_dict(row)

    def delete_fan_post(self, session: Optional[Session], post_id: str) -> bool:
        """Soft delete: the post is hidden from feeds, the row is kept"""
        session = require_user(session, 'You must be logged in to delete posts.')
        unwrap(
            self.client.table('fan_posts')
            .update({'status': FanPostStatus.DELETED.value})
            .eq('id', post_id)
            .eq('author_id', session.user_id)
            .execute(),
            'Failed to delete post. Please try again.',
            LOGGER
        )
        return True

    # ==================== CREDITS ====================

    def unlock_fan_post(self, session: Optional[Session], post_id: str) -> int:
        """
        Spend credits to unlock a premium post.

        Returns:
            Credits spent

        Raises:
            InsufficientCreditsError: balance lower than the post's price
        """
        session = require_user(session, 'You must be logged in to unlock posts.')
        post = unwrap(
            self.client.table('fan_posts').select('credits_cost').eq('id', post_id).single().execute(),
            'Failed to load fan post.',
            LOGGER
        )
        user = unwrap(
            self.client.table('users').select('credits').eq('id', session.user_id).single().execute(),
            'Failed to load credits.',
            LOGGER
        )
        cost = int(post.get('credits_cost') or 0)
        if int(user.get('credits') or 0) < cost:
            raise InsufficientCreditsError('Insufficient credits')

        unwrap(
            self.client.rpc('process_client_credit_transaction', {
                'user_id_param': session.user_id,
                'amount_param': -cost,
                'type_param': 'fanpost',
                'description_param': 'Unlocked fan post',
                'reference_id_param': post_id,
            }),
            'Failed to process credit transaction.',
            LOGGER
        )
        unwrap(
            self.client.table('fan_post_unlocks').insert({
                'client_id': session.user_id,
                'fan_post_id': post_id,
                'credits_spent': cost,
            }).execute(),
            'Failed to record fan post unlock.',
            LOGGER
        )
        return cost

    def get_fan_earnings(self, lady_id: str, limit: int = 500) -> List[Dict[str, Any]]:
        """Unlock earnings of an author, as display rows"""
        rows = unwrap(
            self.client.rpc('get_lady_fan_earnings', {'p_lady_id': lady_id, 'p_limit': limit}),
            'Failed to load fan earnings.',
            LOGGER
        )
        earnings = []
        for row in rows or []:
            created = _parse_timestamp(row['created_at'])
            title = row.get('fan_post_title')
            earnings.append({
                'id': row.get('id'),
                'type': 'unlock',
                'fan': {
                    'name': row.get('client_name') or 'Anonymous',
                    'image_url': row.get('client_image_url') or '',
                },
                'amount': float(row.get('credits_spent') or 0),
                'description': f"Unlocked your fan post: {title}" if title else 'Unlocked your fan post',
                'date': created.date().isoformat(),
                'time': created.strftime('%H:%M'),
                'fan_post_id': row.get('fan_post_id'),
                'fan_post_title': title,
            })
        return earnings
