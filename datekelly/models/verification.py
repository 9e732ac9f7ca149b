"""
Verification Document Models
"""
from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


class DocumentType(Enum):
    """The four identity-proof uploads required for the verified badge"""
    ID_CARD = "id_card"
    SELFIE_WITH_ID = "selfie_with_id"
    NEWSPAPER_PHOTO = "newspaper_photo"
    UPPER_BODY_SELFIE = "upper_body_selfie"


class UploadStatus(Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


class ApprovalStatus(Enum):
    """Admin review state, independent of upload status"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


REQUIRED_DOCUMENT_TYPES = tuple(DocumentType)

# Display metadata per document type
DOCUMENT_CONFIGS = {
    DocumentType.ID_CARD: {
        'title': 'A photo of your ID card / Passport or Drivers License',
        'description': "Upload a clear photo showing your ID card, passport, or driver's license",
        'instructions': 'Make sure all text is clearly visible and the document is not expired.',
    },
    DocumentType.SELFIE_WITH_ID: {
        'title': 'A photo of you holding your ID card',
        'description': 'Take a photo of yourself holding your ID card next to your face',
        'instructions': 'Your face must clearly match the ID photo. Both your face and ID must be visible in the same frame.',
    },
    DocumentType.NEWSPAPER_PHOTO: {
        'title': 'A photo of you holding a newspaper of the country where you advertise',
        'description': 'Hold a recent newspaper from your country showing the date clearly',
        'instructions': 'Make sure we can read the date of the newspaper clearly. This proves your location and the photo is recent.',
    },
    DocumentType.UPPER_BODY_SELFIE: {
        'title': 'A clear photo/selfie of you and upper body',
        'description': 'Take a clear selfie showing your face and upper body',
        'instructions': 'Take a clear, well-lit photo showing your upper body. This will be used for profile verification.',
    },
}

# Role → (table, owner column)
VERIFICATION_TABLES = {
    'lady': ('lady_verification_documents', 'lady_id'),
    'club': ('club_verification_documents', 'club_id'),
    'client': ('client_verification_documents', 'client_id'),
}


@dataclass
class VerificationDocument:
    """One uploaded identity document; unique per (owner, document_type)"""
    id: str
    owner_id: str
    document_type: DocumentType
    file_url: str = ""
    file_name: str = ""
    file_size: int = 0
    mime_type: str = ""
    upload_status: UploadStatus = UploadStatus.PENDING
    verification_status: ApprovalStatus = ApprovalStatus.PENDING
    rejection_reason: Optional[str] = None
    uploaded_at: Optional[str] = None
    verified_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], owner_field: str) -> 'VerificationDocument':
        return cls(
            id=str(data.get('id', '')),
            owner_id=str(data.get(owner_field, '')),
            document_type=DocumentType(data['document_type']),
            file_url=data.get('file_url') or '',
            file_name=data.get('file_name') or '',
            file_size=int(data.get('file_size') or 0),
            mime_type=data.get('mime_type') or '',
            upload_status=UploadStatus(data.get('upload_status') or 'pending'),
            verification_status=ApprovalStatus(data.get('verification_status') or 'pending'),
            rejection_reason=data.get('rejection_reason'),
            uploaded_at=data.get('uploaded_at'),
            verified_at=data.get('verified_at'),
        )
