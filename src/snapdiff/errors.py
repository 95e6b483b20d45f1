from __future__ import annotations

from enum import StrEnum


class SnapdiffError(Exception):
    pass


class ShapeError(SnapdiffError, IndexError):
    pass


class FormatError(SnapdiffError, ValueError):
    pass


class InvalidFormatError(FormatError):
    pass


class CaptureError(SnapdiffError):
    pass


class SnapshotErrorCode(StrEnum):
    UNKNOWN = "unknown"
    PNG_CREATION_FAILED = "png_creation_failed"
    IMAGES_DIFFERENT_SIZES = "images_different_sizes"
    IMAGES_DIFFERENT_SCALES = "images_different_scales"
    IMAGES_DIFFERENT = "images_different"
    RECORD_MODE = "record_mode"


class BaselineStoreError(SnapdiffError):
    def __init__(
        self, message: str, code: SnapshotErrorCode = SnapshotErrorCode.UNKNOWN
    ) -> None:
        super().__init__(message)
        self.code = code


class SnapshotMismatchError(SnapdiffError, AssertionError):
    def __init__(self, message: str, code: SnapshotErrorCode, reason: str = "") -> None:
        super().__init__(f"{message}: {reason}" if reason else message)
        self.code = code
        self.reason = reason
