from typing import Any, Dict

from pydantic import BaseModel, field_validator

MAX_REFERENCE_IMAGES = 5
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif")


class ReferenceImageError(ValueError):
    pass


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"


class ReferenceImage(BaseModel):
    """
    A base64-encoded image sent alongside a clip request.

    Only JPEG, PNG, WebP and GIF images up to MAX_FILE_SIZE_BYTES are accepted.
    """

    data: str
    mime_type: str
    filename: str
    size: int

    @field_validator("data")
    @classmethod
    def _data_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("Failed to extract base64 data from image")
        return value

    @field_validator("mime_type")
    @classmethod
    def _mime_type_allowed(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ALLOWED_IMAGE_TYPES:
            raise ValueError("Invalid file type. Please upload images only (JPEG, PNG, WebP, or GIF).")
        return value

    @field_validator("size")
    @classmethod
    def _size_within_limit(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Image size cannot be negative")
        if value > MAX_FILE_SIZE_BYTES:
            raise ValueError(f"Image is too large. Maximum size is {format_file_size(MAX_FILE_SIZE_BYTES)}.")
        return value

    def to_payload(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "mimeType": self.mime_type,
            "filename": self.filename,
            "size": self.size,
        }


def reference_note(count: int) -> str:
    """Sentence appended to user-facing errors when images were attached."""
    plural = "s" if count != 1 else ""
    return f"(Note: This request included {count} reference image{plural}.)"
