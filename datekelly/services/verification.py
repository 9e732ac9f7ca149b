"""
Identity verification documents.

Each user keeps at most one document per DocumentType. Uploading a type
that is already on file replaces the stored row and puts it back to
pending review.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..api.client import CancelToken
from ..api.session import Session
from ..errors import MissingDocumentsError, ServiceError, require_user, unwrap
from ..images.validation import validate_upload
from ..models.verification import (
    DOCUMENT_CONFIGS,
    REQUIRED_DOCUMENT_TYPES,
    VERIFICATION_TABLES,
    ApprovalStatus,
    DocumentType,
    UploadStatus,
    VerificationDocument,
)
from .moderation import ContentModerationService
from .outbox import Outbox
from .uploads import file_extension


LOGGER = logging.getLogger(__name__)

STORAGE_BUCKET = 'verification-documents'


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class VerificationService:
    """Upload, list, submit and review verification documents"""

    def __init__(self, client, outbox: Outbox = None, moderation: ContentModerationService = None):
        self.client = client
        self.outbox = outbox or Outbox()
        self.moderation = moderation or ContentModerationService(client, self.outbox)

    def _resolve_table(self, user_id: str, cancel: CancelToken = None) -> Tuple[str, str]:
        """(table, owner column) for the user's role"""
        row = unwrap(
            self.client.table('users').select('role').eq('id', user_id).single().execute(cancel),
            'Failed to verify user role.',
            LOGGER
        )
        role = (row or {}).get('role')
        if role not in VERIFICATION_TABLES:
            raise ServiceError('Invalid user role for verification')
        return VERIFICATION_TABLES[role]

    # ==================== USER ====================

    def upload_document(
        self,
        session: Optional[Session],
        content: bytes,
        file_name: str,
        mime_type: str,
        document_type: DocumentType,
        cancel: CancelToken = None
    ) -> VerificationDocument:
        """
        Validate, store and record one document.

        The file is checked locally (size, type, dimensions) before any
        remote call. An existing row for the same type is updated in place.
        """
        session = require_user(session, 'User not authenticated')
        document_type = DocumentType(document_type)
        validate_upload(content, mime_type)

        table, owner_field = self._resolve_table(session.user_id, cancel)

        path = f"{session.user_id}/{document_type.value}_{int(time.time() * 1000)}.{file_extension(file_name, mime_type)}"
        bucket = self.client.storage.from_(STORAGE_BUCKET)
        unwrap(bucket.upload(path, content, content_type=mime_type, cancel=cancel), 'Failed to upload file', LOGGER)
        file_url = bucket.get_public_url(path)

        existing = unwrap(
            self.client.table(table)
            .select('id')
            .eq(owner_field, session.user_id)
            .eq('document_type', document_type.value)
            .maybe_single()
            .execute(cancel),
            'Failed to process document upload',
            LOGGER
        )

        values = {
            'file_url': file_url,
            'file_name': file_name,
            'file_size': len(content),
            'mime_type': mime_type,
            'upload_status': UploadStatus.SUCCESS.value,
            'verification_status': ApprovalStatus.PENDING.value,
            'rejection_reason': None,
            'uploaded_at': _now(),
        }
        if existing:
            query = self.client.table(table).update(values).eq('id', existing['id'])
        else:
            query = self.client.table(table).insert({
                owner_field: session.user_id,
                'document_type': document_type.value,
                **values,
            })
        row = unwrap(query.select('*').single().execute(cancel), 'Failed to save document record', LOGGER)
        LOGGER.info("Stored %s for user %s", document_type.value, session.user_id)
        return VerificationDocument.from_dict(row, owner_field)

    def get_documents(
        self,
        session: Optional[Session],
        user_id: str = None,
        cancel: CancelToken = None
    ) -> List[VerificationDocument]:
        """Documents of `user_id`, or of the signed-in user"""
        if user_id is None:
            user_id = require_user(session, 'User not authenticated').user_id
        table, owner_field = self._resolve_table(user_id, cancel)
        rows = unwrap(
            self.client.table(table)
            .select('*')
            .eq(owner_field, user_id)
            .order('uploaded_at', ascending=True)
            .execute(cancel),
            'Failed to load verification documents.',
            LOGGER
        )
        return [VerificationDocument.from_dict(row, owner_field) for row in rows or []]

    def submit_verification(self, session: Optional[Session], cancel: CancelToken = None) -> str:
        """
        Submit for admin review once every document type is on file.

        Approval state of the individual documents does not matter here.

        Returns:
            The submission timestamp

        Raises:
            MissingDocumentsError: listing the titles of the missing types
        """
        session = require_user(session, 'User not authenticated')
        uploaded = {doc.document_type for doc in self.get_documents(session, cancel=cancel)}
        missing = [doc_type for doc_type in REQUIRED_DOCUMENT_TYPES if doc_type not in uploaded]
        if missing:
            titles = ', '.join(DOCUMENT_CONFIGS[doc_type]['title'] for doc_type in missing)
            raise MissingDocumentsError(f"Missing documents: {titles}", missing)

        submitted_at = _now()
        unwrap(
            self.client.table('users')
            .update({'verification_submitted_at': submitted_at})
            .eq('id', session.user_id)
            .execute(cancel),
            'Failed to submit verification',
            LOGGER
        )
        return submitted_at

    def delete_document(self, session: Optional[Session], document_id: str):
        """Remove one of the user's own documents so it can be uploaded again"""
        session = require_user(session, 'User not authenticated')
        table, owner_field = self._resolve_table(session.user_id)

        document = unwrap(
            self.client.table(table)
            .select(f'file_url, {owner_field}')
            .eq('id', document_id)
            .maybe_single()
            .execute(),
            'Failed to load document',
            LOGGER
        )
        if not document:
            raise ServiceError('Document not found')
        if document.get(owner_field) != session.user_id:
            raise ServiceError('Unauthorized')

        stored_name = (document.get('file_url') or '').split('/')[-1]
        if stored_name:
            result = self.client.storage.from_(STORAGE_BUCKET).remove([f"{session.user_id}/{stored_name}"])
            if result.error:
                LOGGER.warning("Could not remove %s from storage: %s", stored_name, result.error.message)

        unwrap(
            self.client.table(table).delete().eq('id', document_id).execute(),
            'Failed to delete document',
            LOGGER
        )

    # ==================== ADMIN ====================

    def get_verification_queue(self) -> List[Dict[str, Any]]:
        """Users awaiting review, highest priority first"""
        return unwrap(
            self.client.table('verification_queue')
            .select('*')
            .order('priority_score', ascending=False)
            .execute(),
            'Failed to fetch verification queue',
            LOGGER
        ) or []

    def _find_document(self, document_id: str) -> Tuple[Dict[str, Any], str, str]:
        for table, owner_field in VERIFICATION_TABLES.values():
            row = unwrap(
                self.client.table(table).select('*').eq('id', document_id).maybe_single().execute(),
                'Failed to load document',
                LOGGER
            )
            if row:
                return row, table, owner_field
        raise ServiceError('Document not found')

    def update_document_status(
        self,
        document_id: str,
        status: ApprovalStatus,
        rejection_reason: str = None
    ) -> bool:
        """
        Record an admin decision on one document.

        Returns:
            True when this decision left every document of the owner approved,
            in which case the user is marked verified
        """
        status = ApprovalStatus(status)
        document, table, owner_field = self._find_document(document_id)

        unwrap(
            self.client.table(table)
            .update({
                'verification_status': status.value,
                'rejection_reason': rejection_reason,
                'verified_at': _now(),
                'updated_at': _now(),
            })
            .eq('id', document_id)
            .execute(),
            'Failed to update document status',
            LOGGER
        )

        owner_id = document[owner_field]
        rows = unwrap(
            self.client.table(table).select('verification_status').eq(owner_field, owner_id).execute(),
            'Failed to load documents',
            LOGGER
        ) or []
        all_approved = bool(rows) and all(
            row.get('verification_status') == ApprovalStatus.APPROVED.value for row in rows
        )
        if all_approved:
            unwrap(
                self.client.table('users')
                .update({'is_verified': True, 'verification_status': 'verified', 'verified_at': _now()})
                .eq('id', owner_id)
                .execute(),
                'Failed to update user verification status',
                LOGGER
            )
        return all_approved

    def approve_user(self, admin: Optional[Session], user_id: str):
        """Mark a user verified; the audit row is written best effort"""
        admin = require_user(admin, 'Admin not authenticated')
        unwrap(
            self.client.table('users')
            .update({
                'is_verified': True,
                'verified_at': _now(),
                'can_post_premium': True,
                'verified_by_admin': admin.user_id,
            })
            .eq('id', user_id)
            .execute(),
            'Failed to approve user',
            LOGGER
        )
        self.moderation.queue_admin_action(admin.user_id, 'approve_user', user_id, {'user_id': user_id})
