# -*- coding: utf-8 -*-
"""
neighborhood.py
---------------
k×k 윈도우의 선형 인덱스 오프셋 테이블.

• offsets        : window origin(좌상단) 기준, 중심을 제외한 k²-1개 이웃 오프셋 (row-major)
• center_offset  : origin → 검사 대상 픽셀
• valid_column_bound : origin 의 (i % width) 가 이 값 미만이어야 행 경계를 넘지 않음

k=3 방향 순서 (이 순서가 pair 구성과 tie-break 기준):
    0 1 2
    3 . 4
    5 6 7
"""

from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

import numpy as np

from defect_errors import InvalidWindowSize, ImageTooSmall

SUPPORTED_WINDOW_SIZES = (3, 5)


@dataclass(frozen=True)
class NeighborhoodOffsetSet:
    window_size: int
    width: int
    offsets: Tuple[int, ...]
    center_offset: int
    valid_column_bound: int

    @property
    def margin(self) -> int:
        return self.window_size // 2

    @property
    def last_offset(self) -> int:
        return self.offsets[-1]

    def offset_array(self) -> np.ndarray:
        return np.asarray(self.offsets, dtype=np.int64)


@lru_cache(maxsize=64)
def neighborhood_geometry(window_size: int, width: int) -> NeighborhoodOffsetSet:
    """
    (window_size, width) → NeighborhoodOffsetSet.  순수 함수, 결과 캐시.
    """
    if window_size not in SUPPORTED_WINDOW_SIZES:
        raise InvalidWindowSize(window_size, SUPPORTED_WINDOW_SIZES)
    k = int(window_size)
    width = int(width)
    if width < k:
        raise ImageTooSmall(width, k, k)

    m = k // 2
    center = m * width + m
    offsets = tuple(
        r * width + c
        for r in range(k)
        for c in range(k)
        if not (r == m and c == m)
    )
    return NeighborhoodOffsetSet(
        window_size=k,
        width=width,
        offsets=offsets,
        center_offset=center,
        valid_column_bound=width - (k - 1),
    )


def window_origins(geom: NeighborhoodOffsetSet, height: int) -> np.ndarray:
    """
    검사 가능한 window origin 인덱스 배열 (오름차순).
      i < pixel_count - last_offset  그리고  i % width < valid_column_bound
    """
    k = geom.window_size
    if height < k:
        raise ImageTooSmall(geom.width, height, k)

    pixel_count = geom.width * height
    idx = np.arange(pixel_count - geom.last_offset, dtype=np.int64)
    return idx[(idx % geom.width) < geom.valid_column_bound]


__all__ = [
    "SUPPORTED_WINDOW_SIZES",
    "NeighborhoodOffsetSet",
    "neighborhood_geometry",
    "window_origins",
]
