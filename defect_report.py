# -*- coding: utf-8 -*-
"""
defect_report.py
----------------
여러 검출기 결과를 하나의 DefectReport 로 병합.

• METHODS: 이름 → 검출기 (mean3 / mean5 / median_pair / hierarchical)
• aggregate(): 선택된 검출기 실행 → position → flags 매핑 → position 오름차순 정렬
• confidence = 검출한 방법 수 / 전체 방법 수
• save_csv(): 헤더 블록 + x,y,confidence,방법별 플래그
• confidence_style(): 오버레이 색상/굵기 등급
"""

from __future__ import annotations
import csv
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple

from defect_detection import (
    find_hierarchical_defects,
    find_mean_defects,
    find_median_pair_defects,
)
from raster import Raster

logger = logging.getLogger(__name__)

Detector = Callable[[Raster, float], FrozenSet[int]]

METHODS: Dict[str, Detector] = {
    "mean3": lambda r, thr: find_mean_defects(r, 3, thr),
    "mean5": lambda r, thr: find_mean_defects(r, 5, thr),
    "median_pair": find_median_pair_defects,
    "hierarchical": find_hierarchical_defects,
}
DEFAULT_METHODS: Tuple[str, ...] = tuple(METHODS)


# ─────────────────────────────────────────────────────────────────────────────
# Dataclasses
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class DefectRecord:
    position: int
    flags: Dict[str, bool]
    confidence: float

    @property
    def flagged_methods(self) -> List[str]:
        return [name for name, hit in self.flags.items() if hit]


@dataclass
class DefectReport:
    width: int
    height: int
    methods: Tuple[str, ...]
    records: List[DefectRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[DefectRecord]:
        return iter(self.records)

    def positions(self) -> List[int]:
        return [r.position for r in self.records]

    def coordinates(self) -> List[Tuple[int, int]]:
        """(row, col) per record, report order."""
        return [divmod(r.position, self.width) for r in self.records]

    def by_method(self, name: str) -> List[DefectRecord]:
        if name not in self.methods:
            raise KeyError(name)
        return [r for r in self.records if r.flags[name]]


# ─────────────────────────────────────────────────────────────────────────────
# Threshold / method helpers
# ─────────────────────────────────────────────────────────────────────────────
def threshold_from_fraction(fraction: float, max_value: int) -> float:
    """0 < fraction < 1 인 비율 임계 → 절대 DN 임계."""
    f = float(fraction)
    if not 0.0 < f < 1.0:
        raise ValueError(f"threshold fraction must lie strictly between 0 and 1, got {fraction!r}")
    return f * float(max_value)


def resolve_methods(methods: Optional[Sequence[str]]) -> Tuple[str, ...]:
    if methods is None:
        return DEFAULT_METHODS
    names = tuple(dict.fromkeys(methods))  # 순서 유지 중복 제거
    if not names:
        raise ValueError("at least one detection method is required")
    unknown = [m for m in names if m not in METHODS]
    if unknown:
        raise ValueError(f"unknown detection method(s): {', '.join(unknown)} "
                         f"(choose from {', '.join(METHODS)})")
    return names


# ─────────────────────────────────────────────────────────────────────────────
# Aggregation
# ─────────────────────────────────────────────────────────────────────────────
def merge_detections(width: int, height: int, detections: Dict[str, FrozenSet[int]]) -> DefectReport:
    """
    방법별 position 집합 → DefectReport.
    union 후 재탐색 없이 position → flags 매핑을 바로 구성.
    """
    methods = tuple(detections)
    total = len(methods)
    table: Dict[int, Dict[str, bool]] = {}
    for name, found in detections.items():
        for pos in found:
            flags = table.get(pos)
            if flags is None:
                flags = table[pos] = dict.fromkeys(methods, False)
            flags[name] = True

    records = [
        DefectRecord(position=pos, flags=flags, confidence=sum(flags.values()) / total)
        for pos, flags in sorted(table.items())
    ]
    return DefectReport(width=width, height=height, methods=methods, records=records)


def aggregate(raster: Raster, threshold: float, methods: Optional[Sequence[str]] = None) -> DefectReport:
    """
    선택된 검출기를 모두 실행해 병합.  검출기 예외(InvalidWindowSize 등)는 그대로 전파.
    """
    names = resolve_methods(methods)
    detections: Dict[str, FrozenSet[int]] = {}
    for name in names:
        t0 = time.perf_counter()
        detections[name] = METHODS[name](raster, threshold)
        logger.info("%s: %d defects (%.1f ms)", name, len(detections[name]),
                    (time.perf_counter() - t0) * 1000.0)
    return merge_detections(raster.width, raster.height, detections)


# ─────────────────────────────────────────────────────────────────────────────
# Output helpers
# ─────────────────────────────────────────────────────────────────────────────
def confidence_style(record: DefectRecord) -> Tuple[Tuple[int, int, int], int]:
    """
    confidence 기준 색상(RGB) / 굵기 등급(1~5).
      <0.5 Blue, <0.75 Green, <1.0 Orange, 1.0 Red
    """
    c = float(record.confidence)
    if c < 0.5:
        color = (0, 0, 255)
    elif c < 0.75:
        color = (0, 180, 0)
    elif c < 1.0:
        color = (255, 140, 0)
    else:
        color = (255, 0, 0)
    size = int(max(1, min(5, round(c * 5))))
    return color, size


def save_csv(report: DefectReport, path) -> Path:
    """
    :Defective Pixel Data
    :Image Size,W,H
    :Methods,mean3,...
    x,y,confidence,<method...>
    """
    path = Path(path)
    with path.open("w", newline="") as f:
        f.write(":Defective Pixel Data\n")
        f.write(f":Image Size,{report.width},{report.height}\n")
        f.write(":Methods," + ",".join(report.methods) + "\n")
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(["x", "y", "confidence", *report.methods])
        for rec, (row, col) in zip(report.records, report.coordinates()):
            writer.writerow([col, row, f"{rec.confidence:.4f}",
                             *(int(rec.flags[m]) for m in report.methods)])
    return path


__all__ = [
    "METHODS",
    "DEFAULT_METHODS",
    "DefectRecord",
    "DefectReport",
    "threshold_from_fraction",
    "resolve_methods",
    "merge_detections",
    "aggregate",
    "confidence_style",
    "save_csv",
]
