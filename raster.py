# -*- coding: utf-8 -*-
"""
raster.py
---------
In-memory pixel buffer handed to every detector.

• Flattened row-major storage: samples[index, channel]
• Mono16 (1 channel, uint16) or packed 8-bit RGBA (4 channels, uint8)
• The buffer is made read-only on construction; detectors only borrow it
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

import numpy as np


# channel count → (dtype, max sample value)
_LAYOUTS = {
    1: (np.uint16, 65535),
    4: (np.uint8, 255),
}


def _check_sample_range(src: np.ndarray, dtype) -> None:
    """정수 샘플만 허용. 대상 dtype 범위를 벗어나면 ValueError (조용한 wrap 금지)."""
    if np.can_cast(src.dtype, dtype, casting="safe"):
        return
    if src.dtype.kind not in "iu":
        raise ValueError(f"samples must be integers, got dtype {src.dtype}")
    if src.size:
        info = np.iinfo(dtype)
        lo, hi = int(src.min()), int(src.max())
        if lo < info.min or hi > info.max:
            raise ValueError(f"sample values {lo}..{hi} do not fit {np.dtype(dtype).name}")


@dataclass(frozen=True)
class Raster:
    width: int
    height: int
    samples: np.ndarray   # shape (width*height, channel_count)

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"raster dimensions must be positive, got {self.width}x{self.height}")
        if self.samples.ndim != 2:
            raise ValueError("samples must be a (pixel_count, channel_count) array")
        n, ch = self.samples.shape
        if ch not in _LAYOUTS:
            raise ValueError(f"channel count must be 1 or 4, got {ch}")
        if n != self.width * self.height:
            raise ValueError(
                f"buffer holds {n} pixels, expected {self.width}x{self.height}={self.width * self.height}"
            )
        dtype, _ = _LAYOUTS[ch]
        _check_sample_range(self.samples, dtype)
        buf = np.ascontiguousarray(self.samples, dtype=dtype)
        if buf is self.samples:
            buf = buf.view()
        buf.flags.writeable = False
        object.__setattr__(self, "samples", buf)

    # ───────── constructors ─────────
    @classmethod
    def from_array(cls, img: np.ndarray) -> "Raster":
        """
        H×W (mono16) 또는 H×W×4 (8-bit RGBA) 배열로부터 생성.
        """
        if img.ndim == 2:
            h, w = img.shape
            return cls(w, h, np.asarray(img).reshape(h * w, 1))
        if img.ndim == 3 and img.shape[2] == 4:
            h, w, _ = img.shape
            return cls(w, h, np.asarray(img).reshape(h * w, 4))
        raise ValueError(f"unsupported array shape {img.shape}; expected HxW or HxWx4")

    @classmethod
    def from_packed(cls, words: np.ndarray, width: int, height: int) -> "Raster":
        """
        32-bit packed words (TIFF RGBA reader layout) → 4 byte lanes.
        lane k = (word >> 8k) & 0xff
        """
        words = np.asarray(words, dtype=np.uint32).reshape(-1)
        lanes = np.empty((words.size, 4), dtype=np.uint8)
        for k in range(4):
            lanes[:, k] = (words >> np.uint32(8 * k)) & np.uint32(0xFF)
        return cls(width, height, lanes)

    # ───────── geometry ─────────
    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[1])

    @property
    def max_value(self) -> int:
        return _LAYOUTS[self.channel_count][1]

    def coordinates(self, position: int) -> Tuple[int, int]:
        """linear index → (row, col)"""
        return divmod(int(position), self.width)

    def position(self, row: int, col: int) -> int:
        return int(row) * self.width + int(col)

    # ───────── sample access ─────────
    def sample(self, index: int, channel: int = 0) -> int:
        return int(self.samples[index, channel])

    def channel_plane(self, channel: int) -> np.ndarray:
        """Flat read-only view of one channel (length pixel_count)."""
        return self.samples[:, channel]

    def planes(self):
        for c in range(self.channel_count):
            yield self.channel_plane(c)

    def to_image(self) -> np.ndarray:
        """H×W (mono) 또는 H×W×4 배열 (overlay 표시용)."""
        if self.channel_count == 1:
            return self.samples.reshape(self.height, self.width)
        return self.samples.reshape(self.height, self.width, self.channel_count)


__all__ = ["Raster"]
