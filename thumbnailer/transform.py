"""
Thumbnail transform.

`make_thumbnail` is the default TransformFunction: bytes in -> decode ->
resize to a fixed width (aspect ratio kept) -> re-encode -> bytes out.
A deployment can swap it for any `transform(bytes) -> bytes` callable via
TRANSFORM_PATH.
"""

from __future__ import annotations

import functools
import importlib
from io import BytesIO
from typing import Callable, Tuple

from PIL import Image, UnidentifiedImageError

from .config import TransformConfig
from .constants import DEFAULT_THUMBNAIL_FORMAT, DEFAULT_THUMBNAIL_WIDTH

TransformFunction = Callable[[bytes], bytes]


def _compute_resize_dims(width: int, height: int, target_width: int) -> Tuple[int, int]:
    """Scale to target_width, preserving aspect ratio."""
    scale = target_width / width
    return target_width, max(1, round(height * scale))


def make_thumbnail(
    image_bytes: bytes,
    width: int = DEFAULT_THUMBNAIL_WIDTH,
    image_format: str = DEFAULT_THUMBNAIL_FORMAT,
) -> bytes:
    """
    Resize an encoded image to `width` pixels wide.

    Raises:
        ValueError: when the input is not a decodable image.
    """
    if width <= 0:
        raise ValueError(f"width must be positive, got {width}")

    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError("Invalid image data") from exc

    # JPEG has no alpha channel
    if image_format == "JPEG" and image.mode != "RGB":
        image = image.convert("RGB")
    elif image_format == "PNG" and image.mode not in ("RGB", "RGBA", "L", "LA"):
        image = image.convert("RGBA")

    new_size = _compute_resize_dims(image.width, image.height, width)
    if new_size != image.size:
        image = image.resize(new_size, Image.LANCZOS)

    out = BytesIO()
    if image_format == "JPEG":
        image.save(out, format="JPEG", quality=85)
    else:
        image.save(out, format=image_format)
    return out.getvalue()


def load_transform(path: str) -> TransformFunction:
    """Import a `module.attr` callable, the way worker hooks are loaded."""
    if not path or "." not in path:
        raise ValueError(f"transform path must be 'module.callable', got {path!r}")
    mod, attr = path.rsplit(".", 1)
    try:
        fn = getattr(importlib.import_module(mod), attr)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Cannot load transform {path}: {e}") from e
    if not callable(fn):
        raise ValueError(f"Transform {path} is not callable")
    return fn


def build_transform(cfg: TransformConfig) -> TransformFunction:
    if cfg.transform_path:
        return load_transform(cfg.transform_path)
    return functools.partial(make_thumbnail, width=cfg.width, image_format=cfg.image_format)


__all__ = ["TransformFunction", "make_thumbnail", "load_transform", "build_transform"]
