"""
Upload validation for verification documents and gallery images.

All checks run locally, before anything is sent to storage.
"""
import io
from dataclasses import dataclass
from typing import Tuple, Union

from PIL import Image, UnidentifiedImageError

from ..errors import ValidationError


@dataclass(frozen=True)
class FileValidation:
    max_size: int
    allowed_types: Tuple[str, ...]
    min_dimensions: Tuple[int, int]
    max_dimensions: Tuple[int, int]


FILE_VALIDATION = FileValidation(
    max_size=10 * 1024 * 1024,  # 10 MiB
    allowed_types=('image/jpeg', 'image/png', 'image/webp'),
    min_dimensions=(800, 600),
    max_dimensions=(4000, 4000),
)


def validate_file(size: int, mime_type: str, rules: FileValidation = FILE_VALIDATION):
    """Check byte size and MIME type; raises ValidationError"""
    if size > rules.max_size:
        raise ValidationError(f"File size must be less than {rules.max_size // (1024 * 1024)}MB")
    if mime_type not in rules.allowed_types:
        raise ValidationError(f"File type must be one of: {', '.join(rules.allowed_types)}")


def validate_dimensions(width: int, height: int, rules: FileValidation = FILE_VALIDATION):
    """Check pixel dimensions; raises ValidationError"""
    min_w, min_h = rules.min_dimensions
    max_w, max_h = rules.max_dimensions
    if width < min_w or height < min_h:
        raise ValidationError(f"Image must be at least {min_w}x{min_h} pixels")
    if width > max_w or height > max_h:
        raise ValidationError(f"Image must be no larger than {max_w}x{max_h} pixels")


def read_dimensions(content: Union[bytes, Image.Image]) -> Tuple[int, int]:
    """Return (width, height) without decoding the full image"""
    if isinstance(content, Image.Image):
        return content.size
    try:
        with Image.open(io.BytesIO(content)) as img:
            return img.size
    except (UnidentifiedImageError, OSError):
        raise ValidationError('Invalid image file')


def validate_upload(content: bytes, mime_type: str, rules: FileValidation = FILE_VALIDATION) -> Tuple[int, int]:
    """
    Run every check on an upload.

    Returns:
        (width, height) of the validated image
    """
    validate_file(len(content), mime_type, rules)
    width, height = read_dimensions(content)
    validate_dimensions(width, height, rules)
    return width, height
