"""
Image processor for listing and fan post uploads.
Handles bounded resizing and the repeating diagonal watermark.
"""

from PIL import Image, ImageDraw, ImageFont
import io
import base64
import math
import os
from typing import Tuple, Union

import requests

from ..api.config import Config
from ..errors import ValidationError


class ImageProcessor:
    """Resize and watermark images before they are handed to storage."""

    # Bounding box for stored images
    MAX_WIDTH = 1200
    MAX_HEIGHT = 1200

    # Watermark appearance
    WATERMARK_OPACITY = 0.4
    WATERMARK_FONT_SIZE = 24
    WATERMARK_COLOR = (255, 255, 255)
    WATERMARK_COLOR_ALPHA = 0.7
    WATERMARK_REPEATS = 5          # stamps per diagonal length

    # MIME type → Pillow format
    FORMATS = {
        'image/jpeg': 'JPEG',
        'image/png': 'PNG',
        'image/webp': 'WEBP',
    }

    def __init__(self, watermark_text: str = None, quality: int = 90):
        """Initialize the image processor."""
        self.watermark_text = watermark_text or Config.WATERMARK_TEXT
        self.quality = quality
        self._font = None

    def load_image(self, image_source: Union[str, bytes, Image.Image]) -> Image.Image:
        """
        Load an image from various sources.

        Args:
            image_source: URL, file path, bytes, base64 string, or PIL Image

        Returns:
            PIL Image object
        """
        if isinstance(image_source, Image.Image):
            # copy() drops the format, which process_image needs for the MIME type
            img = image_source.copy()
            img.format = image_source.format
            return img

        if isinstance(image_source, bytes):
            return Image.open(io.BytesIO(image_source))

        if isinstance(image_source, str):
            # Check if it's base64
            if image_source.startswith('data:image'):
                base64_data = image_source.split(',')[1]
                image_bytes = base64.b64decode(base64_data)
                return Image.open(io.BytesIO(image_bytes))

            # Check if it's a URL
            if image_source.startswith(('http://', 'https://')):
                response = requests.get(image_source, timeout=Config.REQUEST_TIMEOUT)
                response.raise_for_status()
                return Image.open(io.BytesIO(response.content))

            # Assume it's a file path
            if os.path.exists(image_source):
                return Image.open(image_source)

        raise ValueError(f"Cannot load image from: {type(image_source)}")

    @classmethod
    def fit_dimensions(cls, width: int, height: int) -> Tuple[int, int]:
        """
        Bound (width, height) to MAX_WIDTH x MAX_HEIGHT, keeping aspect ratio.

        Width is clamped first, then height, on the already width-clamped
        values. Fractions carry through both passes and are truncated last.
        Never upscales.
        """
        new_width, new_height = float(width), float(height)

        if new_width > cls.MAX_WIDTH:
            new_height = new_height * cls.MAX_WIDTH / new_width
            new_width = cls.MAX_WIDTH

        if new_height > cls.MAX_HEIGHT:
            new_width = new_width * cls.MAX_HEIGHT / new_height
            new_height = cls.MAX_HEIGHT

        return max(1, int(new_width)), max(1, int(new_height))

    def resize_image(self, img: Image.Image) -> Image.Image:
        """
        Shrink image to fit the bounding box.

        Args:
            img: PIL Image

        Returns:
            Resized PIL Image (the same object if already within bounds)
        """
        target = self.fit_dimensions(*img.size)
        if target == img.size:
            return img
        return img.resize(target, Image.LANCZOS)

    def _get_font(self) -> ImageFont.ImageFont:
        if self._font is None:
            self._font = ImageFont.load_default(size=self.WATERMARK_FONT_SIZE)
        return self._font

    def add_watermark(self, img: Image.Image, text: str = None) -> Image.Image:
        """
        Overlay the label repeatedly along the image diagonal.

        Stamps are spaced diagonal / WATERMARK_REPEATS apart, measured from
        the image centre, from -diagonal up to 2 * diagonal, each rotated to
        the diagonal angle. Output has the same size as the input.

        Args:
            img: PIL Image
            text: Label (defaults to the configured watermark text)

        Returns:
            RGBA PIL Image
        """
        text = text or self.watermark_text
        base = img.convert('RGBA') if img.mode != 'RGBA' else img.copy()
        width, height = base.size
        overlay = Image.new('RGBA', base.size, (0, 0, 0, 0))

        font = self._get_font()
        left, top, right, bottom = ImageDraw.Draw(overlay).textbbox((0, 0), text, font=font)
        text_width, text_height = right - left, bottom - top

        alpha = int(round(255 * self.WATERMARK_COLOR_ALPHA * self.WATERMARK_OPACITY))
        # Text goes into the alpha band only, so glyph edges keep the label colour
        mask = Image.new('L', (text_width + 2, text_height + 2), 0)
        ImageDraw.Draw(mask).text((1 - left, 1 - top), text, font=font, fill=alpha)
        stamp = Image.new('RGBA', mask.size, self.WATERMARK_COLOR + (0,))
        stamp.putalpha(mask)

        angle = math.atan2(height, width)
        # Pillow rotates counter-clockwise; the diagonal runs top-left to bottom-right
        # Premultiplied bilinear keeps every pixel at or below the stamp alpha
        stamp = stamp.convert('RGBa')
        stamp = stamp.rotate(-math.degrees(angle), resample=Image.BILINEAR, expand=True).convert('RGBA')

        diagonal = math.hypot(width, height)
        spacing = diagonal / self.WATERMARK_REPEATS
        cos_a, sin_a = math.cos(angle), math.sin(angle)
        centre_x, centre_y = width / 2, height / 2

        offset = -diagonal
        while offset < diagonal * 2:
            # Text sits above its baseline, which lies on the diagonal axis
            x = centre_x + offset * cos_a + (text_height / 2) * sin_a
            y = centre_y + offset * sin_a - (text_height / 2) * cos_a
            self._composite(overlay, stamp, int(round(x - stamp.width / 2)), int(round(y - stamp.height / 2)))
            offset += spacing

        return Image.alpha_composite(base, overlay)

    @staticmethod
    def _composite(target: Image.Image, stamp: Image.Image, x: int, y: int):
        """Alpha-composite stamp at (x, y), clipping at the target edges"""
        if x >= target.width or y >= target.height or x + stamp.width <= 0 or y + stamp.height <= 0:
            return
        source = (max(-x, 0), max(-y, 0))
        target.alpha_composite(stamp, dest=(max(x, 0), max(y, 0)), source=source)

    def process_image(
        self,
        image_source: Union[str, bytes, Image.Image],
        mime_type: str = None,
        watermark_text: str = None
    ) -> Tuple[bytes, dict]:
        """
        Resize then watermark an image, re-encoding in its original type.

        Args:
            image_source: Source image (URL, path, bytes, base64, or PIL Image)
            mime_type: Declared MIME type; detected from the image format when omitted
            watermark_text: Optional label override

        Returns:
            Tuple of (processed image bytes, metadata dict)
        """
        img = self.load_image(image_source)
        original_size = img.size

        if not mime_type:
            mime_type = Image.MIME.get(img.format or '', '')
        output_format = self.FORMATS.get(mime_type)
        if not output_format:
            raise ValidationError(f"File type must be one of: {', '.join(self.FORMATS)}")

        # Ensure image is in a workable mode (RGB or RGBA)
        if img.mode in ('P', 'LA'):
            img = img.convert('RGBA')
        elif img.mode in ('L', '1', 'CMYK'):
            img = img.convert('RGB')

        img = self.resize_image(img)
        img = self.add_watermark(img, watermark_text)

        # Convert to RGB for JPEG
        if output_format == 'JPEG':
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[3])
            img = background

        output = io.BytesIO()
        save_kwargs = {'quality': self.quality} if output_format in ('JPEG', 'WEBP') else {}
        img.save(output, format=output_format, **save_kwargs)

        metadata = {
            'original_size': original_size,
            'final_size': img.size,
            'format': output_format,
            'mime_type': mime_type,
            'file_size': len(output.getvalue())
        }

        return output.getvalue(), metadata
