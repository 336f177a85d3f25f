import math
import re
from dataclasses import dataclass, replace
from enum import Enum
from fractions import Fraction
from typing import Optional, Tuple, Union

from focalcrop.log import get_logger

logger = get_logger()

_NUMBER = re.compile(r"^\s*(\d+(\.\d+)?|\.\d+)\s*$")


class GeometryError(ValueError):
    pass


class InvalidAspectRatio(GeometryError):
    pass


class MissingDimension(GeometryError):
    pass


class InvalidGeometry(GeometryError):
    pass


class FitMode(str, Enum):
    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    INSIDE = "inside"
    OUTSIDE = "outside"

    @classmethod
    def parse(cls, value: Union[str, "FitMode", None]) -> Optional["FitMode"]:
        if value is None or isinstance(value, FitMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown fit mode: {value!r}") from exc


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int


@dataclass(frozen=True)
class AspectRatio:
    width_units: Fraction
    height_units: Fraction

    def __str__(self) -> str:
        return f"{self.width_units}:{self.height_units}"


@dataclass(frozen=True)
class CropRectangle:
    left: int
    top: int
    width: int
    height: int

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """Pillow ``(left, upper, right, lower)`` box."""
        return self.left, self.top, self.left + self.width, self.top + self.height


@dataclass(frozen=True)
class ResizeRequest:
    width: Optional[int] = None
    height: Optional[int] = None
    fit: Optional[FitMode] = None
    aspect_ratio: Union[str, AspectRatio, None] = None
    focal_x: Optional[float] = None
    focal_y: Optional[float] = None


@dataclass(frozen=True)
class ResolvedGeometry:
    width: Optional[int]
    height: Optional[int]
    crop: Optional[CropRectangle] = None
    fit: Optional[FitMode] = None

    def apply(self, request: ResizeRequest) -> ResizeRequest:
        """Return a copy of ``request`` with the resolved values merged in."""
        return replace(
            request,
            width=self.width,
            height=self.height,
            fit=self.fit if self.fit is not None else request.fit,
        )


def round_half_up(value: Fraction) -> int:
    # Ties go toward +inf, i.e. away from zero for the non-negative values passed here.
    return math.floor(value + Fraction(1, 2))


def parse_aspect_ratio(token: Union[str, AspectRatio]) -> AspectRatio:
    if isinstance(token, AspectRatio):
        return token
    if not isinstance(token, str):
        raise InvalidAspectRatio(f"Aspect ratio must be a 'W:H' string, got {token!r}")
    parts = token.split(":")
    if len(parts) != 2:
        raise InvalidAspectRatio(f"Invalid aspect ratio format: {token!r}. Expected 'W:H' (e.g. '16:9')")
    if not all(_NUMBER.match(part) for part in parts):
        raise InvalidAspectRatio(f"Invalid aspect ratio values: {token!r}. Both values must be numbers")
    width_units, height_units = (Fraction(part.strip()) for part in parts)
    if width_units <= 0 or height_units <= 0:
        raise InvalidAspectRatio(f"Invalid aspect ratio values: {token!r}. Both values must be positive")
    return AspectRatio(width_units, height_units)


def resolve_output_dimensions(request: ResizeRequest) -> Tuple[Optional[int], Optional[int]]:
    width, height = request.width, request.height
    if height is not None or width is None or request.aspect_ratio is None:
        return width, height
    ratio = parse_aspect_ratio(request.aspect_ratio)
    target_w = _as_fraction(width, "Target width")
    if target_w <= 0:
        raise InvalidGeometry(f"Target width must be positive, got {width}")
    height = round_half_up(target_w * ratio.height_units / ratio.width_units)
    if height < 1:
        raise InvalidGeometry(f"Width {width} at aspect ratio {ratio} yields a zero height")
    logger.debug("Derived height %d from width %d and aspect ratio %s", height, width, ratio)
    return width, height


def _as_fraction(value, name: str) -> Fraction:
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidGeometry(f"{name} must be finite, got {value}")
    return Fraction(value)


def _clamp(value: Fraction, low: int, high: int) -> Fraction:
    return max(Fraction(low), min(Fraction(high), value))


def resolve_crop_rectangle(source: Dimensions, request: ResizeRequest) -> Optional[CropRectangle]:
    if request.focal_x is None or request.focal_y is None:
        return None
    if request.width is None or request.height is None:
        raise MissingDimension("Focal cropping needs both a target width and height")
    if source.width <= 0 or source.height <= 0:
        raise InvalidGeometry(f"Source dimensions must be positive: {source.width}x{source.height}")

    target_w = _as_fraction(request.width, "Target width")
    target_h = _as_fraction(request.height, "Target height")
    if target_w <= 0 or target_h <= 0:
        raise InvalidGeometry(f"Target dimensions must be positive: {request.width}x{request.height}")
    focal_x = _as_fraction(request.focal_x, "focal_x")
    focal_y = _as_fraction(request.focal_y, "focal_y")

    if source.width * target_h > target_w * source.height:
        crop_h = source.height
        crop_w = round_half_up(source.height * target_w / target_h)
    else:
        crop_w = source.width
        crop_h = round_half_up(source.width * target_h / target_w)
    crop_w = min(max(crop_w, 1), source.width)
    crop_h = min(max(crop_h, 1), source.height)

    ideal_left = focal_x * source.width - Fraction(crop_w, 2)
    ideal_top = focal_y * source.height - Fraction(crop_h, 2)
    left = round_half_up(_clamp(ideal_left, 0, source.width - crop_w))
    top = round_half_up(_clamp(ideal_top, 0, source.height - crop_h))

    return CropRectangle(left=left, top=top, width=crop_w, height=crop_h)


def resolve_geometry(source: Dimensions, request: ResizeRequest) -> ResolvedGeometry:
    width, height = resolve_output_dimensions(request)
    crop = resolve_crop_rectangle(source, replace(request, width=width, height=height))
    if crop is None:
        return ResolvedGeometry(width=width, height=height)
    logger.debug(
        "Focal crop (%s, %s) on %dx%d -> %s",
        request.focal_x,
        request.focal_y,
        source.width,
        source.height,
        crop,
    )
    return ResolvedGeometry(width=width, height=height, crop=crop, fit=FitMode.COVER)
