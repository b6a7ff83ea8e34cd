# core/image_source.py
"""
파일 → Raster 로더.

• TIFF  : tifffile 로 태그(BitsPerSample / SamplesPerPixel / Photometric / PlanarConfig) 검증 후 읽기
• 그 외 : cv2.imread(IMREAD_UNCHANGED)
• layout
    - "mono16" : 1 sample, 16 bit, MinIsBlack
    - "rgba8"  : 8-bit 컬러 (3채널이면 alpha=255 추가, OpenCV BGR(A) → RGBA)
    - None     : 데이터로부터 추정 (16-bit gray → mono16, 8-bit gray/color → rgba8)
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

import numpy as np
import cv2
import tifffile

from defect_errors import (
    AllocationFailure,
    FileNotFound,
    ImageLoadError,
    ImageTooSmall,
    ReadFailure,
    UnsupportedFormat,
)
from raster import Raster

logger = logging.getLogger(__name__)

LAYOUTS = ("mono16", "rgba8")
TIFF_SUFFIXES = (".tif", ".tiff")
MIN_IMAGE_SIZE = 5


# ─────────────────────────────────────────────────────────────────────────────
# TIFF 태그 검증
# ─────────────────────────────────────────────────────────────────────────────
def _check_tiff_page(page, layout: Optional[str]) -> None:
    bits = int(page.bitspersample)
    spp = int(page.samplesperpixel)
    photo = page.photometric
    planar = page.planarconfig

    if spp > 1 and planar != tifffile.TIFF.PLANARCONFIG.CONTIG:
        raise UnsupportedFormat("planar (non-contiguous) sample layout is not supported")

    is_gray = photo in (tifffile.TIFF.PHOTOMETRIC.MINISBLACK,)
    is_rgb = photo == tifffile.TIFF.PHOTOMETRIC.RGB

    if layout == "mono16":
        if bits != 16:
            raise UnsupportedFormat(f"expected 16 bits per sample, got {bits}")
        if spp != 1:
            raise UnsupportedFormat(f"expected 1 sample per pixel, got {spp}")
        if not is_gray:
            raise UnsupportedFormat(f"expected MinIsBlack photometric, got {getattr(photo, 'name', photo)}")
    elif layout == "rgba8":
        if bits != 8:
            raise UnsupportedFormat(f"expected 8 bits per sample, got {bits}")
        if spp not in (3, 4):
            raise UnsupportedFormat(f"expected 3 or 4 samples per pixel, got {spp}")
        if not is_rgb:
            raise UnsupportedFormat(f"expected RGB photometric, got {getattr(photo, 'name', photo)}")
    else:
        ok = (is_gray and spp == 1 and bits in (8, 16)) or (is_rgb and spp in (3, 4) and bits == 8)
        if not ok:
            raise UnsupportedFormat(
                f"unsupported TIFF: {bits} bit, {spp} sample(s), {getattr(photo, 'name', photo)}"
            )


def _read_tiff(path: Path, layout: Optional[str]) -> np.ndarray:
    try:
        with tifffile.TiffFile(str(path)) as tf:
            page = tf.pages[0]
            _check_tiff_page(page, layout)
            return page.asarray()
    except (ImageLoadError, MemoryError):
        raise
    except Exception as e:
        raise ReadFailure(f"failed to read TIFF {path}: {e}") from e


def _read_other(path: Path) -> np.ndarray:
    try:
        img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise ReadFailure(f"failed to decode {path}: {e}") from e
    if img is None:
        raise ReadFailure(f"failed to decode {path}")
    return img


# ─────────────────────────────────────────────────────────────────────────────
# 배열 → mono16 / rgba8
# ─────────────────────────────────────────────────────────────────────────────
def _to_layout(img: np.ndarray, layout: Optional[str], *, bgr: bool) -> np.ndarray:
    if img.ndim == 3 and img.shape[2] == 1:
        img = img[..., 0]

    if img.ndim == 2:
        if img.dtype == np.uint16 and layout in (None, "mono16"):
            return img
        if img.dtype == np.uint8 and layout in (None, "rgba8"):
            return cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
        raise UnsupportedFormat(f"single-channel {img.dtype} image does not match layout {layout or 'auto'}")

    if img.ndim == 3 and img.shape[2] in (3, 4):
        if img.dtype != np.uint8 or layout == "mono16":
            raise UnsupportedFormat(f"{img.shape[2]}-channel {img.dtype} image does not match layout {layout or 'auto'}")
        if img.shape[2] == 3:
            code = cv2.COLOR_BGR2RGBA if bgr else cv2.COLOR_RGB2RGBA
            return cv2.cvtColor(img, code)
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA) if bgr else img

    raise UnsupportedFormat(f"unsupported image shape {img.shape}")


def load_raster(path, layout: Optional[str] = None, min_size: int = MIN_IMAGE_SIZE) -> Raster:
    """
    이미지 파일을 읽어 Raster 로 반환.

    Raises
    ------
    FileNotFound, UnsupportedFormat, ImageTooSmall, AllocationFailure, ReadFailure
    """
    if layout is not None and layout not in LAYOUTS:
        raise ValueError(f"layout must be one of {LAYOUTS} or None, got {layout!r}")

    p = Path(path)
    if not p.is_file():
        raise FileNotFound(f"no such image file: {p}")

    try:
        if p.suffix.lower() in TIFF_SUFFIXES:
            img = _to_layout(_read_tiff(p, layout), layout, bgr=False)
        else:
            img = _to_layout(_read_other(p), layout, bgr=True)
        h, w = img.shape[:2]
        if w < min_size or h < min_size:
            raise ImageTooSmall(w, h, min_size)
        raster = Raster.from_array(img)
    except MemoryError as e:
        if isinstance(e, ImageLoadError):
            raise
        raise AllocationFailure(f"out of memory while loading {p}") from e

    logger.info("loaded %s: %dx%d, %d channel(s)", p.name, raster.width, raster.height, raster.channel_count)
    return raster


__all__ = ["LAYOUTS", "MIN_IMAGE_SIZE", "load_raster"]
