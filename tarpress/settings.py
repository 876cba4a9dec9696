from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union

from .constants import (
    TAG_GZIP,
    TAG_BZIP2,
    TAG_BROTLI,
    TAG_LZMA,
    MIME_TYPES,
    DEFAULT_LEVEL,
    MIN_LEVEL,
    MAX_LEVEL,
    LONG_NAMES_TRUNCATE,
    LONG_NAMES_REJECT,
)
from .errors import InvalidSettingsError


class Algorithm(str, Enum):
    GZIP = TAG_GZIP      # standard
    BZIP2 = TAG_BZIP2    # higher ratio
    BROTLI = TAG_BROTLI  # best ratio
    LZMA = TAG_LZMA      # maximum

    @classmethod
    def parse(cls, value: Union[str, "Algorithm"]) -> "Algorithm":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(a.value for a in cls)
            raise InvalidSettingsError(f"unknown algorithm {value!r} (choose from {choices})") from None

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self.value]

    @property
    def extension(self) -> str:
        return "." + self.value


@dataclass(frozen=True)
class ConversionSettings:
    """Immutable per-job configuration. Validated on construction."""

    algorithm: Algorithm = Algorithm.GZIP
    level: int = DEFAULT_LEVEL
    enable_deduplication: bool = True
    enable_integrity_check: bool = True
    long_names: str = LONG_NAMES_TRUNCATE

    def __post_init__(self):
        object.__setattr__(self, "algorithm", Algorithm.parse(self.algorithm))
        if isinstance(self.level, bool) or not isinstance(self.level, int):
            raise InvalidSettingsError(f"level must be an integer, got {self.level!r}")
        if not (MIN_LEVEL <= self.level <= MAX_LEVEL):
            raise InvalidSettingsError(f"level must be {MIN_LEVEL}..{MAX_LEVEL}, got {self.level}")
        if self.long_names not in (LONG_NAMES_TRUNCATE, LONG_NAMES_REJECT):
            raise InvalidSettingsError(f"long_names must be 'truncate' or 'reject', got {self.long_names!r}")

    @classmethod
    def from_mapping(cls, m: Mapping[str, Any]) -> "ConversionSettings":
        """Build settings from a plain mapping (camelCase or snake_case keys)."""
        aliases = {
            "format": "algorithm",
            "algorithmTag": "algorithm",
            "enableDeduplication": "enable_deduplication",
            "enableIntegrityCheck": "enable_integrity_check",
            "longNames": "long_names",
        }
        kwargs = {}
        for key, value in m.items():
            name = aliases.get(key, key)
            if name not in cls.__dataclass_fields__:
                raise InvalidSettingsError(f"unknown setting {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {
            "algorithm": self.algorithm.value,
            "level": self.level,
            "enable_deduplication": self.enable_deduplication,
            "enable_integrity_check": self.enable_integrity_check,
            "long_names": self.long_names,
        }


def output_name(source_name: str, algorithm: Union[str, Algorithm]) -> str:
    """``photos.ZIP`` -> ``photos.tar.gz``; names without ``.zip`` get the extension appended."""
    ext = Algorithm.parse(algorithm).extension
    if source_name.lower().endswith(".zip"):
        return source_name[:-4] + ext
    return source_name + ext
