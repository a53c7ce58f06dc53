"""
Image transformation package.

Provides decoding, resizing, format resolution and re-encoding of proxied images.
"""

from .base import (
    DecodeError,
    EncodeError,
    ImageFormat,
    ImageProcessingError,
    TransformRequest,
    TransformResult,
)
from .pipeline import transform

__all__ = [
    "DecodeError",
    "EncodeError",
    "ImageFormat",
    "ImageProcessingError",
    "TransformRequest",
    "TransformResult",
    "transform",
]
