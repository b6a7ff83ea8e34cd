# -*- coding: utf-8 -*-
"""
defect_errors.py
----------------
Error taxonomy shared by the detectors, the aggregator and the image loader.

• InvalidWindowSize : detector asked for a window it does not support
• ImageLoadError    : everything the image source can fail with
    - FileNotFound / UnsupportedFormat / ImageTooSmall
    - AllocationFailure / ReadFailure
"""

from __future__ import annotations


class DefectPixelError(Exception):
    """Base class for every error raised by this package."""


class InvalidWindowSize(DefectPixelError, ValueError):
    def __init__(self, window_size: int, supported=(3, 5)):
        self.window_size = window_size
        self.supported = tuple(supported)
        super().__init__(
            f"window size {window_size!r} not supported (expected one of {self.supported})"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Image source failures
# ─────────────────────────────────────────────────────────────────────────────
class ImageLoadError(DefectPixelError):
    """Raised by the image source; the core only propagates these."""


class FileNotFound(ImageLoadError, FileNotFoundError):
    pass


class UnsupportedFormat(ImageLoadError):
    pass


class ImageTooSmall(ImageLoadError):
    def __init__(self, width: int, height: int, min_size: int):
        self.width = width
        self.height = height
        self.min_size = min_size
        super().__init__(
            f"image {width}x{height} is smaller than the {min_size}x{min_size} minimum"
        )


class AllocationFailure(ImageLoadError, MemoryError):
    pass


class ReadFailure(ImageLoadError, OSError):
    pass


__all__ = [
    "DefectPixelError",
    "InvalidWindowSize",
    "ImageLoadError",
    "FileNotFound",
    "UnsupportedFormat",
    "ImageTooSmall",
    "AllocationFailure",
    "ReadFailure",
]
