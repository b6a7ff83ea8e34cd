# -*- coding: utf-8 -*-
"""
main.py — Defect Pixel Finder (command line)

실행:
    defect-pixel-finder white_2.tif --threshold 0.08
    python main.py white_2.tif --methods mean3 median_pair --csv defects.csv --log-level INFO
"""

from __future__ import annotations
import argparse
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

from core.image_source import LAYOUTS, load_raster
from defect_errors import DefectPixelError
from defect_report import (
    DEFAULT_METHODS,
    METHODS,
    DefectReport,
    aggregate,
    save_csv,
    threshold_from_fraction,
)

logger = logging.getLogger("defect_pixel_finder")


@dataclass
class AnalysisConfig:
    """Runtime configuration derived from CLI arguments."""

    image: Path
    threshold: float
    methods: Tuple[str, ...]
    layout: Optional[str]
    csv_path: Optional[Path]
    overlay_path: Optional[Path]


def _fraction(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}")
    if not 0.0 < value < 1.0:
        raise argparse.ArgumentTypeError("threshold must lie strictly between 0 and 1")
    return value


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Defect Pixel Finder — stuck / hot / dead pixel search")
    p.add_argument("image", type=Path, help="입력 이미지 (TIFF mono16 / 8-bit color)")
    p.add_argument("--threshold", type=_fraction, default=0.1,
                   help="최대 샘플값 대비 임계 비율 (0..1, 기본 0.1)")
    p.add_argument("--methods", nargs="+", choices=list(METHODS), default=list(DEFAULT_METHODS),
                   help="사용할 검출 방법")
    p.add_argument("--layout", choices=list(LAYOUTS), default=None,
                   help="기대 픽셀 포맷 (미지정 시 자동)")
    p.add_argument("--csv", dest="csv_path", type=Path, default=None, help="결과 CSV 경로")
    p.add_argument("--overlay", dest="overlay_path", type=Path, default=None,
                   help="오버레이 이미지 저장 경로 (.png)")
    p.add_argument("--log-level", default="WARNING",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   help="로깅 레벨 설정")
    return p.parse_args(argv)


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def config_from_args(args) -> AnalysisConfig:
    return AnalysisConfig(
        image=args.image,
        threshold=args.threshold,
        methods=tuple(args.methods),
        layout=args.layout,
        csv_path=args.csv_path,
        overlay_path=args.overlay_path,
    )


def format_report(report: DefectReport) -> str:
    header = ["row", "col", "confidence", *report.methods]
    lines = ["\t".join(header)]
    for rec, (row, col) in zip(report.records, report.coordinates()):
        marks = ["x" if rec.flags[m] else "." for m in report.methods]
        lines.append("\t".join([str(row), str(col), f"{rec.confidence:.2f}", *marks]))
    return "\n".join(lines)


def run(cfg: AnalysisConfig) -> DefectReport:
    start = time.perf_counter()
    raster = load_raster(cfg.image, layout=cfg.layout)
    thr = threshold_from_fraction(cfg.threshold, raster.max_value)
    report = aggregate(raster, thr, cfg.methods)
    logger.info("analysis finished: %d defects in %.1f ms",
                len(report), (time.perf_counter() - start) * 1000.0)

    if cfg.csv_path is not None:
        save_csv(report, cfg.csv_path)
        logger.info("CSV saved: %s", cfg.csv_path)
    if cfg.overlay_path is not None:
        from draw_overlay import save_overlay
        save_overlay(report, raster.to_image(), cfg.overlay_path)
        logger.info("overlay saved: %s", cfg.overlay_path)
    return report


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        report = run(config_from_args(args))
    except DefectPixelError as e:
        logger.error("%s", e)
        return 2

    print(format_report(report))
    return 0


if __name__ == "__main__":
    sys.exit(main())
