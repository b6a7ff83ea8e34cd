# -*- coding: utf-8 -*-
"""
defect_detection.py
-------------------
Broken pixel (stuck / hot / dead) detectors over a flattened Raster.

• Mean      : |mean(ring) - center| > threshold  (3×3 / 5×5, 채널별, 하나라도 넘으면 검출)
• MedianPair: 4개 대향 쌍의 median3 → median-of-medians 기대값과 비교 (3×3 전용)
• Hierarchical: 3개 기준 가중 투표로 '대표 이웃'을 고른 뒤 그 값과 비교 (3×3 전용)
    - Pass 1: 픽셀별 이웃 합 / 같은 값 이웃 수 사전 계산
    - Pass 2: 방향별 가중치 P = W1 + W2 + W3, argmax(P) 방향의 이웃과 비교
• 모든 검출기는 검사 대상(윈도우 중심) 선형 인덱스의 frozenset 을 반환
• 임계값은 절대 DN 단위. 비교는 비대칭 분기형:
      (delta >= 0 and delta > thr) or (delta < 0 and delta < -thr)
"""

from __future__ import annotations
import logging
from typing import FrozenSet, Tuple

import numpy as np

from defect_errors import InvalidWindowSize
from neighborhood import neighborhood_geometry, window_origins
from raster import Raster

logger = logging.getLogger(__name__)

# 3×3 방향 인덱스 기준 대향 쌍: 상/하, 좌/우, 주대각, 부대각
#   0 1 2
#   3 . 4
#   5 6 7
OPPOSITE_PAIRS: Tuple[Tuple[int, int], ...] = ((1, 6), (3, 4), (0, 7), (2, 5))

# Pass 2 는 행 단위 밴드로 처리 (8×n float64 임시 배열 크기 제한)
_BAND_ROWS = 64


# ─────────────────────────────────────────────────────────────────────────────
# 공통 유틸
# ─────────────────────────────────────────────────────────────────────────────
def median3(a, b, c):
    """
    세 값의 중앙값. 스칼라/배열 모두 지원 (원소별).
    median3(5, 5, 9) == 5
    """
    return np.maximum(np.minimum(a, b), np.minimum(np.maximum(a, b), c))


def exceeds_threshold(delta, threshold: float):
    """비대칭 분기형 임계 비교. |delta| > threshold 와 동치."""
    delta = np.asarray(delta)
    return ((delta >= 0) & (delta > threshold)) | ((delta < 0) & (delta < -threshold))


def _check_threshold(threshold: float) -> float:
    thr = float(threshold)
    if not thr >= 0.0:
        raise ValueError(f"threshold must be a non-negative sample value, got {threshold!r}")
    return thr


def _require_3x3(window_size: int) -> None:
    if window_size != 3:
        raise InvalidWindowSize(window_size, (3,))


def _to_positions(positions: np.ndarray) -> FrozenSet[int]:
    return frozenset(int(p) for p in positions.tolist())


# ─────────────────────────────────────────────────────────────────────────────
# Mean neighborhood (3×3 / 5×5)
# ─────────────────────────────────────────────────────────────────────────────
def find_mean_defects(raster: Raster, window_size: int, threshold: float) -> FrozenSet[int]:
    """
    각 윈도우 중심에 대해 링 이웃(k²-1개)의 실수 평균과 중심값 차이를 채널별로 검사.
    """
    thr = _check_threshold(threshold)
    geom = neighborhood_geometry(window_size, raster.width)
    origins = window_origins(geom, raster.height)
    divisor = float(len(geom.offsets))

    flagged = np.zeros(origins.size, dtype=bool)
    for plane in raster.planes():
        p = plane.astype(np.int64)
        acc = np.zeros(origins.size, dtype=np.int64)
        for off in geom.offsets:
            acc += p[origins + off]
        delta = acc / divisor - p[origins + geom.center_offset]
        flagged |= exceeds_threshold(delta, thr)

    found = _to_positions(origins[flagged] + geom.center_offset)
    logger.debug("mean%d: %d of %d windows flagged", window_size, len(found), origins.size)
    return found


# ─────────────────────────────────────────────────────────────────────────────
# Median of diametric pairs (3×3)
# ─────────────────────────────────────────────────────────────────────────────
def median_pair_estimate(center, ring) -> np.ndarray:
    """
    center: (n,), ring: (8, n) → median-of-medians 기대값 (n,)
      m_k = median3(center, a_k, b_k)            (k = 0..3)
      r1  = median3(center, m_0, m_1)
      r2  = median3(center, m_2, m_3)
      exp = median3(center, r1, r2)
    """
    m = [median3(center, ring[a], ring[b]) for a, b in OPPOSITE_PAIRS]
    r1 = median3(center, m[0], m[1])
    r2 = median3(center, m[2], m[3])
    return median3(center, r1, r2)


def find_median_pair_defects(raster: Raster, threshold: float, window_size: int = 3) -> FrozenSet[int]:
    _require_3x3(window_size)
    thr = _check_threshold(threshold)
    geom = neighborhood_geometry(3, raster.width)
    origins = window_origins(geom, raster.height)

    flagged = np.zeros(origins.size, dtype=bool)
    for plane in raster.planes():
        p = plane.astype(np.int64)
        center = p[origins + geom.center_offset]
        ring = np.stack([p[origins + off] for off in geom.offsets])
        expected = median_pair_estimate(center, ring)
        flagged |= exceeds_threshold(expected - center, thr)

    found = _to_positions(origins[flagged] + geom.center_offset)
    logger.debug("median_pair: %d of %d windows flagged", len(found), origins.size)
    return found


# ─────────────────────────────────────────────────────────────────────────────
# Hierarchical weighted (3×3)
# ─────────────────────────────────────────────────────────────────────────────
def _ring_steps(width: int) -> Tuple[Tuple[int, int], ...]:
    """오프셋 테이블 순서 그대로 (drow, dcol)."""
    geom = neighborhood_geometry(3, width)
    return tuple((off // width - 1, off % width - 1) for off in geom.offsets)


def _precompute_ring_stats(p: np.ndarray, width: int, height: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Pass 1.  모든 픽셀마다 이미지 안에 있는 이웃만으로
      sums[i]  : 이웃 값의 합
      equal[i] : 자기 값과 같은 이웃 수
      count[i] : 이웃 수 (내부 8, 테두리 5, 모서리 3)
    배열 크기는 pixel_count.
    """
    img = p.reshape(height, width)
    sums = np.zeros((height, width), dtype=np.int64)
    equal = np.zeros((height, width), dtype=np.int64)
    count = np.zeros((height, width), dtype=np.int64)

    for dr, dc in _ring_steps(width):
        # 대상 영역 (y, x) 과 그 이웃 영역 (y+dr, x+dc)
        ty = slice(max(0, -dr), height - max(0, dr))
        tx = slice(max(0, -dc), width - max(0, dc))
        ny = slice(max(0, dr), height + min(0, dr))
        nx = slice(max(0, dc), width + min(0, dc))
        v = img[ny, nx]
        sums[ty, tx] += v
        equal[ty, tx] += (v == img[ty, tx])
        count[ty, tx] += 1

    return sums.reshape(-1), equal.reshape(-1), count.reshape(-1)


def _relative_offsets(width: int) -> np.ndarray:
    geom = neighborhood_geometry(3, width)
    return geom.offset_array() - geom.center_offset


def _scored_centers(width: int, height: int, row_start: int = 1, row_stop: int = None) -> np.ndarray:
    """Pass 2 대상: 내부 픽셀 (margin 1)."""
    if row_stop is None:
        row_stop = height - 1
    rows = np.arange(row_start, row_stop, dtype=np.int64)
    cols = np.arange(1, width - 1, dtype=np.int64)
    return (rows[:, None] * width + cols[None, :]).reshape(-1)


def _normalize(scores: np.ndarray, total: np.ndarray) -> np.ndarray:
    out = np.zeros(scores.shape, dtype=np.float64)
    np.divide(scores, total, out=out, where=total > 0)
    return out


def _criterion_weights_for(p, stats, centers, rel, max_value):
    """
    centers (n,) 에 대해 방향별 가중치 (W1, W2, W3) 와 이웃값 ring (8, n) 반환.

    W1: 이웃의 (중심 제외) 이웃 평균을 max 근접도 (max - mean) 로 변환, 방향 합으로 정규화
        테두리 이웃은 이미지 안의 이웃만으로 평균 (count - 1 개)
    W2: 이웃의 같은 값 이웃 수 (중심과 같으면 중심 제외), 방향 합으로 정규화
    W3: 대향 쌍 값 차이를 max 근접도 (max - |a-b|) 로 변환, 쌍 합의 2배로 정규화
        (같은 쌍 가중치가 두 방향에 모두 들어가므로 2배)
    """
    sums, equal, count = stats
    nb = centers[None, :] + rel[:, None]
    xc = p[centers].astype(np.float64)
    ring = p[nb]

    mean_n = (sums[nb] - xc) / np.maximum(count[nb] - 1, 1)
    s1 = float(max_value) - mean_n
    w1 = _normalize(s1, s1.sum(axis=0))

    s2 = (equal[nb] - (ring == p[centers])).astype(np.float64)
    w2 = _normalize(s2, s2.sum(axis=0))

    pair = np.stack([float(max_value) - np.abs(ring[a] - ring[b]) for a, b in OPPOSITE_PAIRS])
    pair_w = _normalize(pair, 2.0 * pair.sum(axis=0))
    w3 = np.zeros_like(w1)
    for k, (a, b) in enumerate(OPPOSITE_PAIRS):
        w3[a] = pair_w[k]
        w3[b] = pair_w[k]

    return w1, w2, w3, ring


def criterion_weights(raster: Raster, channel: int = 0):
    """
    채널 하나에 대해 Pass 1 + 가중치 계산만 수행 (검사/디버깅용).
    반환: (centers, W1, W2, W3)  — W* 는 (8, n)
    """
    w, h = raster.width, raster.height
    window_origins(neighborhood_geometry(3, w), h)
    p = raster.channel_plane(channel).astype(np.int64)
    stats = _precompute_ring_stats(p, w, h)
    centers = _scored_centers(w, h)
    w1, w2, w3, _ = _criterion_weights_for(p, stats, centers, _relative_offsets(w), raster.max_value)
    return centers, w1, w2, w3


def find_hierarchical_defects(raster: Raster, threshold: float, window_size: int = 3) -> FrozenSet[int]:
    """
    P[d] = W1[d] + W2[d] + W3[d] 최대 방향(동점이면 방향 순서상 첫 번째)의 이웃값과
    중심값 차이가 임계를 넘으면 검출.
    """
    _require_3x3(window_size)
    thr = _check_threshold(threshold)
    w, h = raster.width, raster.height
    window_origins(neighborhood_geometry(3, w), h)  # InvalidWindowSize / ImageTooSmall 선검사
    rel = _relative_offsets(w)

    hits = []
    for plane in raster.planes():
        p = plane.astype(np.int64)
        stats = _precompute_ring_stats(p, w, h)   # Pass 1 (전체 이미지) 완료 후 Pass 2

        for r0 in range(1, h - 1, _BAND_ROWS):
            r1 = min(r0 + _BAND_ROWS, h - 1)
            centers = _scored_centers(w, h, r0, r1)
            w1, w2, w3, ring = _criterion_weights_for(p, stats, centers, rel, raster.max_value)
            best = np.argmax(w1 + w2 + w3, axis=0)
            best_val = ring[best, np.arange(centers.size)]
            m = exceeds_threshold(best_val - p[centers], thr)
            if m.any():
                hits.append(centers[m])

    found = _to_positions(np.concatenate(hits)) if hits else frozenset()
    logger.debug("hierarchical: %d pixels flagged", len(found))
    return found

# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────
__all__ = [
    "OPPOSITE_PAIRS",
    "median3",
    "exceeds_threshold",
    "median_pair_estimate",
    "criterion_weights",
    "find_mean_defects",
    "find_median_pair_defects",
    "find_hierarchical_defects",
]
