import io
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageColor, ImageOps, UnidentifiedImageError

from focalcrop.crop_math import (
    Dimensions,
    FitMode,
    ResizeRequest,
    ResolvedGeometry,
    parse_aspect_ratio,
    resolve_geometry,
)
from focalcrop.log import get_logger

logger = get_logger()

_RESAMPLE = {
    "nearest": Image.Resampling.NEAREST,
    "box": Image.Resampling.BOX,
    "bilinear": Image.Resampling.BILINEAR,
    "hamming": Image.Resampling.HAMMING,
    "bicubic": Image.Resampling.BICUBIC,
    "lanczos": Image.Resampling.LANCZOS,
}


@dataclass
class EditConfig:
    resample: str = "lanczos"
    default_fit: FitMode = FitMode.COVER
    max_output_side: int = 8192
    background: str = "#000000"
    output_format: str = "PNG"


def load_config() -> EditConfig:
    config = EditConfig(
        resample=os.getenv("RESAMPLE", "lanczos").lower(),
        default_fit=FitMode.parse(os.getenv("DEFAULT_FIT", "cover")),
        max_output_side=int(os.getenv("MAX_OUTPUT_SIDE", "8192")),
        background=os.getenv("BACKGROUND", "#000000"),
        output_format=os.getenv("OUTPUT_FORMAT", "PNG").upper(),
    )
    if config.resample not in _RESAMPLE:
        raise ValueError(f"Unknown resample filter: {config.resample}")
    ImageColor.getrgb(config.background)
    Image.init()
    if config.output_format not in Image.SAVE:
        raise ValueError(f"Unknown output format: {config.output_format}")
    return config


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def request_from_params(
    width=None,
    height=None,
    fit=None,
    aspect_ratio=None,
    focal_x=None,
    focal_y=None,
) -> ResizeRequest:
    return ResizeRequest(
        width=_optional_int(width),
        height=_optional_int(height),
        fit=FitMode.parse(fit or None),
        aspect_ratio=parse_aspect_ratio(aspect_ratio) if aspect_ratio else None,
        focal_x=_optional_float(focal_x),
        focal_y=_optional_float(focal_y),
    )


def _check_output_size(width: Optional[int], height: Optional[int], max_side: int) -> None:
    for side in (width, height):
        if side is None:
            continue
        if side < 1:
            raise ValueError(f"Output dimensions must be positive: {width}x{height}")
        if max_side > 0 and side > max_side:
            raise ValueError(f"Output side {side} exceeds the limit of {max_side}")


def _resize_by(image: Image.Image, scale: float, config: EditConfig) -> Image.Image:
    size = max(1, int(round(image.width * scale))), max(1, int(round(image.height * scale)))
    _check_output_size(*size, config.max_output_side)
    return image.resize(size, _RESAMPLE[config.resample])


def _resize(image: Image.Image, width: int, height: int, fit: FitMode, config: EditConfig) -> Image.Image:
    resample = _RESAMPLE[config.resample]
    if fit is FitMode.COVER:
        return ImageOps.fit(image, (width, height), method=resample)
    if fit is FitMode.CONTAIN:
        background = None
        if image.mode in ("RGB", "RGBA", "L"):
            background = ImageColor.getcolor(config.background, image.mode)
        return ImageOps.pad(image, (width, height), method=resample, color=background)
    if fit is FitMode.FILL:
        return image.resize((width, height), resample)
    src_w, src_h = image.size
    if fit is FitMode.INSIDE:
        scale = min(width / src_w, height / src_h)
    else:
        scale = max(width / src_w, height / src_h)
    return _resize_by(image, scale, config)


def apply_edits(
    image: Image.Image,
    request: ResizeRequest,
    config: EditConfig,
) -> Tuple[Image.Image, ResolvedGeometry]:
    source = Dimensions(*image.size)
    geometry = resolve_geometry(source, request)
    _check_output_size(geometry.width, geometry.height, config.max_output_side)

    if geometry.crop is not None:
        image = image.crop(geometry.crop.box)

    width, height = geometry.width, geometry.height
    fit = geometry.fit or request.fit or config.default_fit
    if width is not None and height is not None:
        image = _resize(image, width, height, fit, config)
    elif width is not None:
        image = _resize_by(image, width / image.width, config)
    elif height is not None:
        image = _resize_by(image, height / image.height, config)

    logger.debug(
        "Edited %dx%d -> %dx%d (fit=%s, crop=%s)",
        source.width,
        source.height,
        image.width,
        image.height,
        fit.value,
        geometry.crop,
    )
    return image, geometry


def process_bytes(image_bytes: bytes, request: ResizeRequest, config: EditConfig) -> bytes:
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except UnidentifiedImageError as exc:
        raise ValueError("Invalid image") from exc
    image = ImageOps.exif_transpose(image)
    if config.output_format == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    edited, _ = apply_edits(image, request, config)
    output = io.BytesIO()
    edited.save(output, format=config.output_format)
    return output.getvalue()
