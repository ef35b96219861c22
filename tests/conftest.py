"""Shared fixtures: synthetic images and isolated storage roots."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import ExifTags, Image

from photoingest.config import Settings


def encode_image(image: Image.Image, pil_format: str, **options: object) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=pil_format, **options)
    return buffer.getvalue()


def solid_image_bytes(
    width: int,
    height: int,
    pil_format: str = "JPEG",
    color: tuple[int, ...] = (200, 30, 30),
    orientation: int | None = None,
) -> bytes:
    mode = "RGB" if pil_format == "JPEG" else "RGBA"
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 255)
    image = Image.new(mode, (width, height), color)
    options: dict[str, object] = {}
    if orientation is not None:
        exif = Image.Exif()
        exif[ExifTags.Base.Orientation] = orientation
        options["exif"] = exif.tobytes()
    return encode_image(image, pil_format, **options)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings with staging and production roots under ``tmp_path``."""
    return Settings(
        staging_root=tmp_path / "www" / "uploads" / "temp",
        staging_url_prefix="/uploads/temp",
        production_root=tmp_path / "photo",
        upload_tmp_dir=tmp_path / "spool",
        max_concurrent=1,
    )


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return solid_image_bytes(2000, 1000, "JPEG")


@pytest.fixture()
def png_bytes() -> bytes:
    return solid_image_bytes(640, 480, "PNG", color=(10, 120, 200, 128))


@pytest.fixture()
def webp_bytes() -> bytes:
    return solid_image_bytes(500, 1500, "WEBP")


@pytest.fixture()
def gif_bytes() -> bytes:
    return encode_image(Image.new("P", (20, 20)), "GIF")


def files_under(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return sorted(path for path in root.rglob("*") if path.is_file())


@pytest.fixture()
def make_image_bytes():
    """Factory fixture around ``solid_image_bytes``."""
    return solid_image_bytes


@pytest.fixture()
def list_files():
    """Factory fixture around ``files_under``."""
    return files_under
