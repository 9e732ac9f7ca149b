import pytest

from datekelly.api.session import Session
from datekelly.errors import AuthenticationRequired, MissingDocumentsError, ServiceError, ValidationError
from datekelly.models.verification import (
    DOCUMENT_CONFIGS,
    ApprovalStatus,
    DocumentType,
    UploadStatus,
)
from datekelly.services.verification import STORAGE_BUCKET, VerificationService


@pytest.fixture
def verification(service, outbox):
    service.seed('users', {'id': 'user-1', 'role': 'lady'}, {'id': 'user-2', 'role': 'client'})
    return VerificationService(service, outbox=outbox)


def upload(verification, session, content, document_type):
    return verification.upload_document(session, content, 'doc.jpg', 'image/jpeg', document_type)


class TestUpload:
    def test_creates_pending_document(self, verification, service, session, jpeg_bytes):
        document = upload(verification, session, jpeg_bytes, DocumentType.ID_CARD)

        assert document.owner_id == 'user-1'
        assert document.document_type is DocumentType.ID_CARD
        assert document.upload_status is UploadStatus.SUCCESS
        assert document.verification_status is ApprovalStatus.PENDING
        assert document.file_size == len(jpeg_bytes)
        stored = service.storage.paths(STORAGE_BUCKET)
        assert len(stored) == 1
        assert stored[0].startswith('user-1/id_card_') and stored[0].endswith('.jpg')
        assert document.file_url.endswith(stored[0])

    def test_reupload_replaces_existing_row(self, verification, service, session, jpeg_bytes):
        first = upload(verification, session, jpeg_bytes, DocumentType.SELFIE_WITH_ID)
        row = service.rows('lady_verification_documents')[0]
        row.update({'verification_status': 'rejected', 'rejection_reason': 'blurry'})

        second = upload(verification, session, jpeg_bytes, 'selfie_with_id')

        rows = service.rows('lady_verification_documents')
        assert len(rows) == 1
        assert second.id == first.id
        assert second.verification_status is ApprovalStatus.PENDING
        assert second.rejection_reason is None

    def test_role_picks_table(self, verification, service, other_session, jpeg_bytes):
        document = upload(verification, other_session, jpeg_bytes, DocumentType.ID_CARD)

        assert document.owner_id == 'user-2'
        assert service.rows('client_verification_documents')[0]['client_id'] == 'user-2'
        assert service.rows('lady_verification_documents') == []

    def test_validation_happens_before_any_remote_call(self, verification, service, session, make_image):
        service.executed.clear()
        with pytest.raises(ValidationError, match='at least 800x600'):
            upload(verification, session, make_image(640, 480), DocumentType.ID_CARD)
        with pytest.raises(ValidationError, match='File type'):
            verification.upload_document(session, make_image(900, 900), 'doc.gif', 'image/gif', DocumentType.ID_CARD)

        assert service.executed == []
        assert service.storage.attempts == []

    def test_requires_session(self, verification, jpeg_bytes):
        with pytest.raises(AuthenticationRequired):
            upload(verification, None, jpeg_bytes, DocumentType.ID_CARD)

    def test_unknown_role(self, verification, service, jpeg_bytes):
        service.seed('users', {'id': 'admin-1', 'role': 'admin'})
        with pytest.raises(ServiceError, match='Invalid user role'):
            upload(verification, Session(user_id='admin-1'), jpeg_bytes, DocumentType.ID_CARD)

    def test_storage_failure(self, verification, service, session, jpeg_bytes):
        service.storage.fail_when = lambda bucket, path, content: True
        with pytest.raises(ServiceError, match='Failed to upload file'):
            upload(verification, session, jpeg_bytes, DocumentType.ID_CARD)
        assert service.rows('lady_verification_documents') == []


class TestSubmit:
    def test_lists_missing_documents(self, verification, session, jpeg_bytes):
        upload(verification, session, jpeg_bytes, DocumentType.ID_CARD)
        upload(verification, session, jpeg_bytes, DocumentType.SELFIE_WITH_ID)

        with pytest.raises(MissingDocumentsError) as exc:
            verification.submit_verification(session)

        assert exc.value.missing == [DocumentType.NEWSPAPER_PHOTO, DocumentType.UPPER_BODY_SELFIE]
        assert DOCUMENT_CONFIGS[DocumentType.NEWSPAPER_PHOTO]['title'] in exc.value.message
        assert exc.value.message.startswith('Missing documents: ')

    def test_all_four_submit_regardless_of_approval(self, verification, service, session, jpeg_bytes):
        for document_type in DocumentType:
            upload(verification, session, jpeg_bytes, document_type)
        service.rows('lady_verification_documents')[0]['verification_status'] = 'rejected'

        submitted_at = verification.submit_verification(session)

        user = next(u for u in service.rows('users') if u['id'] == 'user-1')
        assert user['verification_submitted_at'] == submitted_at

    def test_get_documents_in_upload_order(self, verification, session, jpeg_bytes):
        upload(verification, session, jpeg_bytes, DocumentType.NEWSPAPER_PHOTO)
        upload(verification, session, jpeg_bytes, DocumentType.ID_CARD)

        documents = verification.get_documents(session)
        assert [d.document_type for d in documents] == [DocumentType.NEWSPAPER_PHOTO, DocumentType.ID_CARD]


def seed_documents(service, statuses):
    for index, (document_type, status) in enumerate(zip(DocumentType, statuses)):
        service.seed('lady_verification_documents', {
            'id': f'doc-{index}',
            'lady_id': 'user-1',
            'document_type': document_type.value,
            'verification_status': status,
            'file_url': f'https://project.test/storage/v1/object/public/{STORAGE_BUCKET}/user-1/file-{index}.jpg',
        })


class TestReview:
    def test_last_approval_verifies_user(self, verification, service):
        seed_documents(service, ['approved', 'approved', 'approved', 'pending'])

        assert verification.update_document_status('doc-3', ApprovalStatus.APPROVED) is True

        user = next(u for u in service.rows('users') if u['id'] == 'user-1')
        assert user['is_verified'] is True
        assert user['verification_status'] == 'verified'

    def test_rejection_keeps_user_unverified(self, verification, service):
        seed_documents(service, ['approved', 'approved', 'approved', 'pending'])

        assert verification.update_document_status('doc-3', 'rejected', 'Date not readable') is False

        document = service.rows('lady_verification_documents')[3]
        assert document['rejection_reason'] == 'Date not readable'
        assert 'is_verified' not in next(u for u in service.rows('users') if u['id'] == 'user-1')

    def test_unknown_document(self, verification):
        with pytest.raises(ServiceError, match='Document not found'):
            verification.update_document_status('missing', ApprovalStatus.APPROVED)

    def test_approve_user_writes_audit_row(self, verification, service, outbox):
        verification.approve_user(Session(user_id='admin-1', role='admin'), 'user-1')

        user = next(u for u in service.rows('users') if u['id'] == 'user-1')
        assert user['verified_by_admin'] == 'admin-1'
        assert outbox.flush(timeout=5)
        action = service.rows('admin_actions')[0]
        assert action['action_type'] == 'approve_user'
        assert action['target_user_id'] == 'user-1'

    def test_audit_failure_does_not_fail_approval(self, verification, service, outbox):
        service.fail('admin_actions')
        verification.approve_user(Session(user_id='admin-1'), 'user-1')
        assert outbox.flush(timeout=5)
        assert outbox.failures == 1

    def test_queue_sorted_by_priority(self, verification, service):
        service.seed('verification_queue', {'user_id': 'a', 'priority_score': 1}, {'user_id': 'b', 'priority_score': 9})
        assert [row['user_id'] for row in verification.get_verification_queue()] == ['b', 'a']


class TestDelete:
    def test_deletes_own_document_and_file(self, verification, service, session):
        seed_documents(service, ['pending'])
        service.storage.objects[(STORAGE_BUCKET, 'user-1/file-0.jpg')] = (b'x', 'image/jpeg')

        verification.delete_document(session, 'doc-0')

        assert service.rows('lady_verification_documents') == []
        assert service.storage.paths(STORAGE_BUCKET) == []

    def test_cannot_delete_someone_elses_document(self, verification, service, session):
        service.seed('lady_verification_documents', {
            'id': 'doc-x', 'lady_id': 'someone-else', 'document_type': 'id_card', 'file_url': 'f.jpg',
        })
        with pytest.raises(ServiceError, match='Unauthorized'):
            verification.delete_document(session, 'doc-x')
        assert len(service.rows('lady_verification_documents')) == 1
