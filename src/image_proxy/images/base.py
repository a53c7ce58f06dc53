"""
Data models for image transformation.

Provides Pydantic models for transform requests and results, and the
pipeline's error types.
"""

from enum import Enum

from pydantic import BaseModel, Field


class ImageFormat(str, Enum):
    """Formats the pipeline can detect and encode."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    OTHER = "other"

    @property
    def content_type(self) -> str:
        return f"image/{self.value}"


class ImageProcessingError(Exception):
    """Base class for decode and encode failures."""


class DecodeError(ImageProcessingError):
    """Raised when the input bytes are not a decodable image."""


class EncodeError(ImageProcessingError):
    """Raised when the output image cannot be encoded."""


class TransformRequest(BaseModel):
    """Optional resize and recompression parameters for one image."""

    width: int | None = Field(default=None, gt=0, description="Maximum output width in pixels")
    height: int | None = Field(default=None, gt=0, description="Maximum output height in pixels")
    quality: int | None = Field(default=None, ge=0, le=100, description="Encoder quality (0-100)")
    format: str | None = Field(default=None, description="Requested output format")

    @property
    def resizes(self) -> bool:
        """Whether a bounding box was requested."""
        return self.width is not None or self.height is not None


class TransformResult(BaseModel):
    """Encoded output of the pipeline with diagnostic metadata."""

    data: bytes = Field(description="Encoded image bytes")
    output_format: ImageFormat = Field(description="Format the bytes are encoded in")
    content_type: str = Field(description="MIME type matching output_format")
    original_format: ImageFormat = Field(description="Format detected in the source")
    width: int = Field(description="Output width in pixels")
    height: int = Field(description="Output height in pixels")
    has_alpha: bool = Field(default=False, description="Whether the source carries transparency")
