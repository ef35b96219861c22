"""Derivative geometry: proportional downscale and centre crop to an exact size."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from PIL import Image

RESAMPLE = Image.Resampling.LANCZOS

MAIN_MAX_DIMENSION = 1200
THUMB_SIZE = (150, 150)
CARD_SIZE = (300, 200)


class Variant(Enum):
    """The three files generated per upload, linked only by filename prefix."""

    MAIN = ""
    THUMB = "thumb_"
    CARD = "card_"

    @property
    def prefix(self) -> str:
        return self.value

    @property
    def target_size(self) -> tuple[int, int] | None:
        """Exact output size, or None for MAIN whose size depends on the source."""
        if self is Variant.THUMB:
            return THUMB_SIZE
        if self is Variant.CARD:
            return CARD_SIZE
        return None


DERIVATIVES: tuple[Variant, ...] = (Variant.THUMB, Variant.CARD)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class CropBox:
    x: int
    y: int
    width: int
    height: int

    def as_box(self) -> tuple[int, int, int, int]:
        """Pillow (left, upper, right, lower) tuple."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


def fit_within(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Size of a proportional downscale whose longer side is ``max_dimension``.

    Returns the input size unchanged when neither side exceeds the limit.
    """
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width >= height:
        new_width = max_dimension
        new_height = round_half_up(height * (max_dimension / width))
    else:
        new_height = max_dimension
        new_width = round_half_up(width * (max_dimension / height))
    return max(1, new_width), max(1, new_height)


def center_crop_box(width: int, height: int, target_width: int, target_height: int) -> CropBox:
    """Largest centred region of ``width`` x ``height`` with the target aspect ratio."""
    source_ratio = width / height
    target_ratio = target_width / target_height

    if source_ratio > target_ratio:
        crop_width = min(width, max(1, round_half_up(height * target_ratio)))
        return CropBox(x=round_half_up((width - crop_width) / 2), y=0, width=crop_width, height=height)

    crop_height = min(height, max(1, round_half_up(width / target_ratio)))
    return CropBox(x=0, y=round_half_up((height - crop_height) / 2), width=width, height=crop_height)


def resize_to_fit(image: Image.Image, max_dimension: int = MAIN_MAX_DIMENSION) -> Image.Image:
    """Downscale ``image`` so its longer side is at most ``max_dimension``.

    When no resize is needed the *same* object is returned (a borrowed
    result); callers must compare identity before closing it. Never enlarges.
    """
    size = fit_within(image.width, image.height, max_dimension)
    if size == image.size:
        return image
    return image.resize(size, RESAMPLE)


def crop_resize(image: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """Centre-crop to the target aspect ratio and resample to exactly the target size.

    Always returns a new image; the source is left untouched.
    """
    box = center_crop_box(image.width, image.height, target_width, target_height)
    return image.resize((target_width, target_height), RESAMPLE, box=box.as_box())


def render_variant(image: Image.Image, variant: Variant) -> Image.Image:
    target = variant.target_size
    if target is None:
        return resize_to_fit(image, MAIN_MAX_DIMENSION)
    return crop_resize(image, *target)
