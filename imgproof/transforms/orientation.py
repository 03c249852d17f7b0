"""EXIF orientation normalization"""

from io import BytesIO

from loguru import logger
from PIL import Image, UnidentifiedImageError

from imgproof.core.models import TransformationRecord, TransformType
from imgproof.transforms.chain import TransformChain

ORIENTATION_TAG = 0x0112
NORMAL_ORIENTATION = 1


def read_orientation(image_bytes: bytes) -> int:
    """
    Read the EXIF orientation of an image.

    Returns 1 (normal) for images without EXIF data or that Pillow cannot
    identify.
    """
    try:
        with Image.open(BytesIO(image_bytes)) as image:
            orientation = image.getexif().get(ORIENTATION_TAG, NORMAL_ORIENTATION)
    except (UnidentifiedImageError, OSError):
        return NORMAL_ORIENTATION
    try:
        return int(orientation)
    except (TypeError, ValueError):
        return NORMAL_ORIENTATION


def needs_rotation(orientation: int) -> bool:
    """Orientations 5-8 store the image rotated by a quarter turn"""
    return 5 <= orientation <= 8


def normalize_chain(image_bytes: bytes, chain: TransformChain) -> TransformChain:
    """
    Prepend a corrective Rotate90 when the source image needs one.

    Skipped when the chain already rotates explicitly. Always returns a new
    chain so the session's own audit trail is never changed.
    """
    orientation = read_orientation(image_bytes)
    if not needs_rotation(orientation) or chain.has_rotation():
        return chain.copy()

    logger.debug(
        "Injecting corrective rotation for EXIF orientation {orientation}",
        orientation=orientation,
    )
    return chain.prepend(TransformationRecord(type=TransformType.ROTATE_90))
