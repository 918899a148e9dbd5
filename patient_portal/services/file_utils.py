"""
File handling for prescription uploads.

Documents are stored inline in the prescription as base64 text, so uploads are
validated and (for large images) downscaled before encoding.
"""

import base64
import io
import logging
import mimetypes
import secrets
import string
import time
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from ..core.clock import now_iso
from ..core.config import settings
from ..core.exceptions import FileValidationError
from ..models.database_models import PrescriptionDocument

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    'application/pdf',
    'image/jpeg',
    'image/jpg',
    'image/png',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}

EXTENSION_MIME_TYPES = {
    'pdf': 'application/pdf',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'doc': 'application/msword',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}

GENERIC_TYPES = {'', 'application/octet-stream', 'binary/octet-stream'}

_PIL_FORMATS = {'image/jpeg': 'JPEG', 'image/jpg': 'JPEG', 'image/png': 'PNG'}


class PreparedFile(BaseModel):
    file_name: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def format_file_size(size: int) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'."""
    if size <= 0:
        return '0 Bytes'
    units = ['Bytes', 'KB', 'MB', 'GB']
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def mime_type_from_extension(file_name: str) -> str:
    extension = Path(file_name or '').suffix.lower().lstrip('.')
    if extension in EXTENSION_MIME_TYPES:
        return EXTENSION_MIME_TYPES[extension]
    return mimetypes.guess_type(file_name or '')[0] or 'application/octet-stream'


def resolve_content_type(file_name: str, content_type: Optional[str]) -> str:
    content_type = (content_type or '').split(';')[0].strip().lower()
    if content_type in GENERIC_TYPES:
        return mime_type_from_extension(file_name)
    return content_type


def validate_file(file_name: str, content_type: Optional[str], size: int, max_size: Optional[int] = None) -> str:
    """
    Reject oversize or unsupported files before anything touches the network.
    Returns the resolved content type.
    """
    max_size = max_size or settings.MAX_UPLOAD_BYTES
    resolved = resolve_content_type(file_name, content_type)

    if size > max_size:
        raise FileValidationError(
            FileValidationError.TOO_LARGE,
            f"File size ({format_file_size(size)}) exceeds the {format_file_size(max_size)} limit"
        )

    if resolved not in ALLOWED_TYPES:
        raise FileValidationError(
            FileValidationError.UNSUPPORTED_TYPE,
            f"File type '{resolved}' is not supported. Please upload PDF, JPG, PNG, DOC or DOCX files only."
        )

    return resolved


def compress_image(
    content: bytes,
    content_type: str,
    max_width: Optional[int] = None,
    quality: Optional[int] = None
) -> bytes:
    """Downscale JPEG/PNG images wider than `max_width`; anything else is returned as-is."""
    image_format = _PIL_FORMATS.get(content_type)
    if not image_format:
        return content

    max_width = max_width or settings.IMAGE_MAX_WIDTH
    quality = quality or settings.IMAGE_QUALITY

    try:
        with Image.open(io.BytesIO(content)) as image:
            width, height = image.size
            if width <= max_width:
                return content

            new_height = max(1, round(height * max_width / width))
            resized = image.resize((max_width, new_height), Image.LANCZOS)
            if image_format == 'JPEG' and resized.mode not in ('RGB', 'L'):
                resized = resized.convert('RGB')

            output = io.BytesIO()
            if image_format == 'JPEG':
                resized.save(output, format='JPEG', quality=quality, optimize=True)
            else:
                resized.save(output, format='PNG', optimize=True)

            logger.info(f"Downscaled image {width}x{height} -> {max_width}x{new_height}")
            return output.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Image compression skipped: {e}")
        return content


def prepare_file_for_upload(file_name: str, content_type: Optional[str], content: bytes) -> PreparedFile:
    """Validate, then downscale images. Raises FileValidationError."""
    resolved = validate_file(file_name, content_type, len(content))
    processed = compress_image(content, resolved)
    return PreparedFile(file_name=file_name, content_type=resolved, content=processed)


def file_to_base64(content: bytes) -> str:
    return base64.b64encode(content).decode('ascii')


def base64_to_bytes(encoded: str) -> bytes:
    """Decode inline content; tolerates a leading data-URL prefix."""
    if encoded.startswith('data:') and ',' in encoded:
        encoded = encoded.split(',', 1)[1]
    return base64.b64decode(encoded)


def generate_document_id() -> str:
    suffix = ''.join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"doc_{int(time.time() * 1000)}_{suffix}"


def build_document(prepared: PreparedFile, uploaded_by: str) -> PrescriptionDocument:
    return PrescriptionDocument(
        file_name=prepared.file_name,
        file_url='',
        file_content=file_to_base64(prepared.content),
        file_type=prepared.content_type,
        file_size=format_file_size(prepared.size),
        uploaded_at=now_iso(),
        uploaded_by=uploaded_by,
    )
