"""
Image processing module for listing and fan post uploads.
Handles bounded resizing, diagonal watermarking, and upload validation.
"""

from .processor import ImageProcessor
from .validation import FILE_VALIDATION, FileValidation, validate_file, validate_dimensions, validate_upload

__all__ = [
    'ImageProcessor',
    'FILE_VALIDATION',
    'FileValidation',
    'validate_file',
    'validate_dimensions',
    'validate_upload',
]
