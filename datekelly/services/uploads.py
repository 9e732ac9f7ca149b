"""
Watermarked image uploads to object storage.

A single upload is attempted once. A batch issues every file at the same
time; when one fails the batch raises BatchError, and files that were
already stored stay stored.
"""
import logging
import uuid
from typing import Dict, List, Optional, Sequence, Tuple

from ..api.client import CancelToken
from ..api.session import Session
from ..errors import ServiceError, require_user, unwrap
from ..images.processor import ImageProcessor
from ..images.validation import validate_file
from ..utils.batch import run_batch
from .moderation import ContentModerationService
from .outbox import Outbox


LOGGER = logging.getLogger(__name__)

PROFILE_BUCKET = 'profile-pictures'
GALLERY_BUCKET = 'gallery-images'

# Buckets whose uploads are queued for admin moderation
MODERATED_BUCKETS = (PROFILE_BUCKET, GALLERY_BUCKET, 'fan-post-media')

EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/webp': 'webp',
}

# (content, file name, MIME type)
UploadFile = Tuple[bytes, str, str]


def file_extension(file_name: str, mime_type: str) -> str:
    if file_name and '.' in file_name:
        return file_name.rsplit('.', 1)[-1].lower()
    return EXTENSIONS.get(mime_type, 'bin')


def build_upload_path(user_id: str, extension: str, folder: str = '') -> str:
    """`{user}/{folder}/{user}_{uuid}.{ext}`, folder omitted when empty"""
    name = f"{user_id}_{uuid.uuid4()}.{extension}"
    parts = [user_id, folder.strip('/'), name] if folder.strip('/') else [user_id, name]
    return '/'.join(parts)


class ImageUploadService:
    """Resize, watermark and store user images"""

    def __init__(
        self,
        client,
        processor: ImageProcessor = None,
        outbox: Outbox = None,
        moderation: ContentModerationService = None
    ):
        self.client = client
        self.processor = processor or ImageProcessor()
        self.outbox = outbox or Outbox()
        self.moderation = moderation or ContentModerationService(client, self.outbox)

    def upload_image(
        self,
        session: Optional[Session],
        content: bytes,
        file_name: str,
        mime_type: str,
        bucket: str = PROFILE_BUCKET,
        folder: str = '',
        cancel: CancelToken = None
    ) -> Dict[str, str]:
        """
        Process and upload one image.

        Args:
            session: Signed-in user; owns the storage folder
            content: Raw image bytes
            file_name: Original name, used for the extension
            mime_type: Declared MIME type
            bucket: Storage bucket
            folder: Optional sub-folder below the user's folder

        Returns:
            {'path': storage path, 'url': public URL}
        """
        session = require_user(session, 'You must be logged in to upload images.')
        validate_file(len(content), mime_type)

        processed, metadata = self.processor.process_image(content, mime_type)
        LOGGER.debug("Processed %s: %s -> %s", file_name, metadata['original_size'], metadata['final_size'])

        path = build_upload_path(session.user_id, file_extension(file_name, mime_type), folder)
        result = self.client.storage.from_(bucket).upload(path, processed, content_type=mime_type, cancel=cancel)
        data = unwrap(result, 'Failed to upload image.', LOGGER)
        if not data:
            raise ServiceError('Upload failed with no error or data returned')

        stored = data['path']
        return {'path': stored, 'url': self.client.storage.from_(bucket).get_public_url(stored)}

    def upload_multiple_images(
        self,
        session: Optional[Session],
        files: Sequence[UploadFile],
        bucket: str = GALLERY_BUCKET,
        folder: str = '',
        cancel: CancelToken = None
    ) -> List[Dict[str, str]]:
        """
        Upload every file concurrently.

        Returns:
            One {'path', 'url'} per file, in input order

        Raises:
            BatchError: (a ServiceError) if any file failed; completed uploads are kept
        """
        session = require_user(session, 'You must be logged in to upload images.')

        def upload(item: UploadFile) -> Dict[str, str]:
            content, file_name, mime_type = item
            return self.upload_image(session, content, file_name, mime_type, bucket, folder, cancel)

        uploads = run_batch(upload, list(files))
        if bucket in MODERATED_BUCKETS:
            self.moderation.queue_uploaded_images(session.user_id, uploads)
        return uploads

    def delete_image(self, path: str, bucket: str = PROFILE_BUCKET):
        unwrap(self.client.storage.from_(bucket).remove([path]), 'Failed to delete image.', LOGGER)
