"""
Image hosting on Cloudinary.
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

import cloudinary
import cloudinary.uploader

import config
from errors import MediaError, ValidationError

logger = logging.getLogger(__name__)

PROPERTY_IMAGE_MAX_BYTES = 10 * 1024 * 1024
PROFILE_IMAGE_MAX_BYTES = 5 * 1024 * 1024
PROPERTY_FOLDER = "BASHACHAI_properties"
PROFILE_FOLDER = "BASHACHAI_profile_pictures"

PROPERTY_TRANSFORMATION = [
    {"width": 1200, "height": 800, "crop": "fill"},
    {"quality": "auto"},
    {"fetch_format": "auto"},
]
PROFILE_TRANSFORMATION = [
    {"width": 400, "height": 400, "crop": "fill"},
    {"quality": "auto"},
    {"fetch_format": "auto"},
]

_configured = False
_lock = threading.Lock()


def media_enabled() -> bool:
    return bool(config.CLOUDINARY_CLOUD_NAME and config.CLOUDINARY_API_KEY and config.CLOUDINARY_API_SECRET)


def _configure() -> None:
    global _configured
    if _configured:
        return
    if not media_enabled():
        raise MediaError("Missing required Cloudinary environment variables")
    with _lock:
        cloudinary.config(
            cloud_name=config.CLOUDINARY_CLOUD_NAME,
            api_key=config.CLOUDINARY_API_KEY,
            api_secret=config.CLOUDINARY_API_SECRET,
            secure=True,
        )
        _configured = True


def validate_image(filename: Optional[str], content_type: Optional[str], size: int, max_bytes: int) -> None:
    if not (content_type or "").startswith("image/"):
        raise ValidationError(f"File {filename} is not an image" if filename else "Only image files are allowed")
    if size > max_bytes:
        raise ValidationError(f"File size must be less than {max_bytes // (1024 * 1024)}MB")


def upload_image(raw: bytes, folder: str, public_id: str,
                 transformation: Optional[List[Dict[str, Any]]] = None) -> Tuple[str, str]:
    """Upload image bytes and return (secure_url, public_id)."""
    _configure()
    try:
        result = cloudinary.uploader.upload(
            raw,
            resource_type="image",
            folder=folder,
            public_id=public_id,
            transformation=transformation,
        )
    except Exception as e:
        logger.exception("Cloudinary upload failed public_id=%s", public_id)
        raise MediaError("Failed to upload image", detail=str(e))
    return result["secure_url"], result["public_id"]


def destroy(public_id: Optional[str]) -> bool:
    """Best-effort removal of a hosted image; failures are logged, not raised."""
    if not public_id:
        return False
    try:
        _configure()
        cloudinary.uploader.destroy(public_id, resource_type="image")
    except Exception:
        logger.exception("Error deleting image %s from Cloudinary", public_id)
        return False
    return True


def destroy_all(public_ids: List[str]) -> int:
    return sum(1 for pid in public_ids if destroy(pid))
