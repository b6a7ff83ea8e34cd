# -*- coding: utf-8 -*-
"""
draw_overlay.py
---------------
DefectReport 시각화용 오버레이.

• DefectLoc : (RGB color, size grade 1~5, rect=(l,t,r,b) exclusive, optional label)
• DrawFigure:
    - insert / extend / clear / count / is_empty
    - render_on(image, alpha=0.6) → BGR 8U
• figure_from_report(): 레코드마다 픽셀 주변 사각형 1개, 색상은 confidence_style()
• 입력: Mono16 (H×W uint16) / RGBA8 (H×W×4) / Gray8 / BGR8
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np
import cv2

from defect_report import DefectReport, confidence_style


@dataclass
class DefectLoc:
    color: Tuple[int, int, int]       # RGB
    size: int                         # 1..5
    rect: Tuple[int, int, int, int]   # (left, top, right, bottom), right/bottom exclusive
    label: Optional[str] = None


class DrawFigure:
    """
    fig = figure_from_report(report)
    out = fig.render_on(raster.to_image(), alpha=0.6)
    """

    def __init__(self) -> None:
        self.items: List[DefectLoc] = []

    def clear(self) -> None:
        self.items.clear()

    def insert(self, loc: DefectLoc) -> None:
        self.items.append(loc)

    def extend(self, locs: Iterable[DefectLoc]) -> None:
        self.items.extend(locs)

    def count(self) -> int:
        return len(self.items)

    def is_empty(self) -> bool:
        return len(self.items) == 0

    # ───────── drawing helpers ─────────
    @staticmethod
    def _to_bgr8(img: np.ndarray) -> np.ndarray:
        """
        표시용 BGR 8U 변환.
          - 16U: 상위 8bit (>>8)
          - Gray: BGR 로 승격
          - 4채널: RGBA 로 간주, alpha 버림
        """
        if img.dtype == np.uint16:
            img = (img >> 8).astype(np.uint8)
        elif img.dtype != np.uint8:
            img = np.clip(img, 0, 255).astype(np.uint8)

        if img.ndim == 2:
            return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
        if img.shape[2] == 4:
            return cv2.cvtColor(img, cv2.COLOR_RGBA2BGR)
        return img.copy()

    @staticmethod
    def _thickness_from_size(size: int) -> int:
        size = int(max(1, min(5, size)))
        return {1: 1, 2: 1, 3: 2, 4: 2, 5: 3}[size]

    def _draw_rects(self, canvas: np.ndarray) -> None:
        h, w = canvas.shape[:2]
        for it in self.items:
            l, t, r, b = it.rect
            if r <= 0 or b <= 0 or l >= w or t >= h:
                continue
            l = max(0, l)
            t = max(0, t)
            r = min(w, r)
            b = min(h, b)

            red, green, blue = it.color
            color_bgr = (blue, green, red)
            cv2.rectangle(canvas, (l, t), (r - 1, b - 1), color_bgr,
                          self._thickness_from_size(it.size), lineType=cv2.LINE_8)
            if it.label:
                cv2.putText(canvas, it.label, (l, max(10, t - 2)),
                            cv2.FONT_HERSHEY_SIMPLEX, 0.35, color_bgr, 1, cv2.LINE_AA)

    def render_on(self, image: np.ndarray, *, alpha: float = 0.6) -> np.ndarray:
        """원본을 수정하지 않고 합성 결과(BGR 8U)를 반환."""
        if image is None:
            raise ValueError("image is None")

        base8 = self._to_bgr8(image)
        if self.is_empty():
            return base8

        overlay = base8.copy()
        self._draw_rects(overlay)

        alpha = float(np.clip(alpha, 0.0, 1.0))
        if alpha <= 0.0:
            return base8
        if alpha >= 1.0:
            return overlay
        return cv2.addWeighted(overlay, alpha, base8, 1.0 - alpha, 0.0)


def figure_from_report(report: DefectReport, pad: int = 0, labels: bool = False) -> DrawFigure:
    fig = DrawFigure()
    for rec, (row, col) in zip(report.records, report.coordinates()):
        color, size = confidence_style(rec)
        label = f"{rec.confidence:.2f}" if labels else None
        fig.insert(DefectLoc(color, size, (col - pad, row - pad, col + pad + 1, row + pad + 1), label))
    return fig


def save_overlay(report: DefectReport, image: np.ndarray, path, *, alpha: float = 0.6) -> None:
    out = figure_from_report(report).render_on(image, alpha=alpha)
    if not cv2.imwrite(str(path), out):
        raise OSError(f"failed to write overlay image {path}")


__all__ = ["DefectLoc", "DrawFigure", "figure_from_report", "save_overlay"]
