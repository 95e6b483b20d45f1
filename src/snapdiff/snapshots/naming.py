from __future__ import annotations

import re
from enum import Flag, StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

_INVALID_CHARACTERS = re.compile(r"[\W]+")


class FileNameKind(StrEnum):
    REFERENCE = "reference"
    FAILED_REFERENCE = "failed_reference"
    FAILED_TEST = "failed_test"
    FAILED_TEST_DIFF = "failed_test_diff"


_PREFIXES: dict[FileNameKind, str] = {
    FileNameKind.REFERENCE: "",
    FileNameKind.FAILED_REFERENCE: "reference_",
    FileNameKind.FAILED_TEST: "failed_",
    FileNameKind.FAILED_TEST_DIFF: "diff_",
}


class AgnosticOptions(Flag):
    """Which details of the running environment are appended to file names.

    Each set flag keys references by that detail, so a suite can run on several
    devices / OS versions / screen sizes and keep one reference per variant.
    """

    NONE = 0
    DEVICE = auto()
    OS = auto()
    SCREEN_SIZE = auto()


class DeviceEnvironment(BaseModel):
    model_config = ConfigDict(frozen=True)

    device_model: str = ""
    os_version: str = ""
    screen_width: int = Field(default=0, ge=0)
    screen_height: int = Field(default=0, ge=0)


def normalize_file_name(name: str) -> str:
    return _INVALID_CHARACTERS.sub("_", name).strip("_")


class SnapshotIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    test_name: str = Field(min_length=1)
    selector: str = Field(min_length=1)
    identifier: str | None = None

    def __str__(self) -> str:
        base = f"{self.test_name}.{self.selector}"
        return f"{base}[{self.identifier}]" if self.identifier else base

    def file_name(
        self,
        kind: FileNameKind = FileNameKind.REFERENCE,
        scale: float = 1.0,
        agnostic: AgnosticOptions | None = None,
        environment: DeviceEnvironment | None = None,
    ) -> str:
        name = _PREFIXES[kind] + self.selector
        if self.identifier:
            name += f"_{self.identifier}"

        if agnostic and environment is not None:
            parts = [name]
            if agnostic & AgnosticOptions.DEVICE and environment.device_model:
                parts.append(environment.device_model)
            if agnostic & AgnosticOptions.OS and environment.os_version:
                parts.append(environment.os_version)
            if agnostic & AgnosticOptions.SCREEN_SIZE and environment.screen_width:
                parts.append(f"{environment.screen_width}x{environment.screen_height}")
            name = normalize_file_name("_".join(parts))

        if scale > 1:
            name += f"@{scale:.0f}x"
        return f"{name}.png"

    def path_in(self, directory: Path, file_name: str) -> Path:
        return directory / self.test_name / file_name
