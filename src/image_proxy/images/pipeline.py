"""
Image transformation pipeline.

Decodes source bytes, fits the image inside a requested box, resolves the
output format and re-encodes with format-specific settings.

Output format policy:
    - no format requested: keep the detected format (jpg is reported as jpeg);
      sources in any other format become PNG when they carry alpha, else JPEG
    - jpeg / jpg: always JPEG
    - webp: always WebP, PNG sources included
    - png: PNG only when the source has an alpha channel, otherwise keep
    - anything else: keep
"""

from io import BytesIO

from loguru import logger
from PIL import Image as PILImage

from .base import (
    DecodeError,
    EncodeError,
    ImageFormat,
    TransformRequest,
    TransformResult,
)

DEFAULT_QUALITY = 80
WEBP_METHOD = 6
PNG_COMPRESS_LEVEL = 9
PALETTE_MAX_COLORS = 256

# Pillow format names -> detected format
_PIL_FORMATS = {
    "JPEG": ImageFormat.JPEG,
    "MPO": ImageFormat.JPEG,  # multi-picture JPEG from cameras
    "PNG": ImageFormat.PNG,
    "WEBP": ImageFormat.WEBP,
}

_ALPHA_MODES = ("RGBA", "LA", "PA", "RGBa", "La")


def normalize_format(label: str | None) -> ImageFormat | None:
    """Map a format label such as ``"jpg"`` or ``"WEBP"`` to an encodable format."""
    if not label:
        return None
    label = label.strip().lower()
    if label == "jpg":
        label = "jpeg"
    try:
        fmt = ImageFormat(label)
    except ValueError:
        return None
    return None if fmt is ImageFormat.OTHER else fmt


def detect_format(img: PILImage.Image) -> ImageFormat:
    """Return the detected format of a decoded image."""
    return _PIL_FORMATS.get(img.format or "", ImageFormat.OTHER)


def has_alpha(img: PILImage.Image) -> bool:
    """Whether the image carries an alpha channel or a transparent palette entry."""
    return img.mode in _ALPHA_MODES or "transparency" in img.info


def decode(data: bytes) -> PILImage.Image:
    """
    Decode raw bytes into a fully loaded Pillow image.

    Raises:
        DecodeError: If the bytes are not a recognizable image
    """
    try:
        img = PILImage.open(BytesIO(data))
        img.load()
    except Exception as e:
        raise DecodeError(f"Cannot decode image: {e}") from e
    return img


def fit_inside(img: PILImage.Image, width: int | None, height: int | None) -> PILImage.Image:
    """
    Scale an image down to fit a bounding box, preserving aspect ratio.

    A missing dimension is bounded by the image's own size. Images already
    inside the box are returned unchanged; they are never enlarged.
    """
    orig_width, orig_height = img.size
    max_width = width or orig_width
    max_height = height or orig_height

    ratio = min(max_width / orig_width, max_height / orig_height)
    if ratio >= 1:
        return img

    new_width = max(1, round(orig_width * ratio))
    new_height = max(1, round(orig_height * ratio))
    return img.resize((new_width, new_height), PILImage.Resampling.LANCZOS)


def resolve_output_format(
    detected: ImageFormat,
    requested: str | None,
    alpha: bool,
) -> ImageFormat:
    """Pick the output format for a source (see module docstring for the policy)."""
    keep = detected
    if detected is ImageFormat.OTHER:
        keep = ImageFormat.PNG if alpha else ImageFormat.JPEG

    wanted = normalize_format(requested)
    if wanted is ImageFormat.JPEG or wanted is ImageFormat.WEBP:
        return wanted
    if wanted is ImageFormat.PNG and alpha:
        return ImageFormat.PNG
    return keep


def _normalize_mode(img: PILImage.Image, alpha: bool) -> PILImage.Image:
    if alpha:
        return img if img.mode == "RGBA" else img.convert("RGBA")
    if img.mode in ("RGB", "L"):
        return img
    return img.convert("RGB")


def _reduce_palette(img: PILImage.Image) -> PILImage.Image:
    # getcolors returns None when the image has more distinct colours than the limit
    if img.mode not in ("RGB", "RGBA"):
        return img
    colors = img.getcolors(PALETTE_MAX_COLORS)
    if colors is None:
        return img
    method = (
        PILImage.Quantize.FASTOCTREE if img.mode == "RGBA" else PILImage.Quantize.MEDIANCUT
    )
    return img.quantize(colors=len(colors), method=method)


def encode(img: PILImage.Image, fmt: ImageFormat, quality: int = DEFAULT_QUALITY) -> bytes:
    """
    Encode an image with the settings for *fmt*.

    Raises:
        EncodeError: If Pillow fails to write the image
    """
    output = BytesIO()
    try:
        if fmt is ImageFormat.JPEG:
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.save(output, format="JPEG", quality=quality, optimize=True, progressive=True)
        elif fmt is ImageFormat.WEBP:
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGB")
            img.save(output, format="WEBP", quality=quality, method=WEBP_METHOD)
        elif fmt is ImageFormat.PNG:
            img = _reduce_palette(img)
            img.save(output, format="PNG", optimize=True, compress_level=PNG_COMPRESS_LEVEL)
        else:
            raise EncodeError(f"Unsupported output format: {fmt.value}")
    except EncodeError:
        raise
    except Exception as e:
        raise EncodeError(f"Cannot encode {fmt.value}: {e}") from e
    return output.getvalue()


def transform(
    data: bytes,
    request: TransformRequest | None = None,
    default_quality: int = DEFAULT_QUALITY,
) -> TransformResult:
    """
    Decode, resize and re-encode an image.

    Args:
        data: Raw source bytes
        request: Optional width/height/quality/format parameters
        default_quality: Quality used when the request sets none

    Returns:
        TransformResult with the encoded bytes and format metadata

    Raises:
        DecodeError: If the source cannot be decoded
        EncodeError: If the output cannot be encoded
    """
    request = request or TransformRequest()

    img = decode(data)
    original = detect_format(img)
    alpha = has_alpha(img)
    source_size = img.size

    img = _normalize_mode(img, alpha)
    if request.resizes:
        img = fit_inside(img, request.width, request.height)

    output_format = resolve_output_format(original, request.format, alpha)
    quality = request.quality if request.quality is not None else default_quality
    payload = encode(img, output_format, quality)

    logger.debug(
        "Transformed image: {} {}x{} -> {} {}x{}, {} bytes",
        original.value,
        source_size[0],
        source_size[1],
        output_format.value,
        img.width,
        img.height,
        len(payload),
    )

    return TransformResult(
        data=payload,
        output_format=output_format,
        content_type=output_format.content_type,
        original_format=original,
        width=img.width,
        height=img.height,
        has_alpha=alpha,
    )
