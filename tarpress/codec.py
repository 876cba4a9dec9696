from __future__ import annotations

import bz2
import gzip
import lzma
import zlib
from dataclasses import dataclass
from typing import Dict, Optional, Type

from .constants import TAG_GZIP, TAG_BZIP2, TAG_BROTLI, TAG_LZMA, MIN_LEVEL, MAX_LEVEL
from .errors import CompressionError

_HAS_BROTLI = False
_brotli_mod = None
_BrotliError = RuntimeError
try:
    import brotli as _brotli_mod  # type: ignore
    from brotli import error as _BrotliError  # type: ignore
    _HAS_BROTLI = True
except ImportError:
    _brotli_mod = None
    _HAS_BROTLI = False

_GZIP_MAGIC = b"\x1f\x8b"
_LZMA_MIN_DICT = 1 << 12
_LZMA_MAX_DICT = 1 << 26  # preset 9 dictionary


def _check_level(level: int) -> int:
    if not (MIN_LEVEL <= level <= MAX_LEVEL):
        raise CompressionError(f"compression level must be {MIN_LEVEL}..{MAX_LEVEL}, got {level}")
    return level


class Compressor:
    """Compression strategy selected by algorithm tag."""

    tag = ""

    def __init__(self):
        self.fallback_used = False

    def compress(self, data: bytes, level: int) -> bytes:
        raise NotImplementedError

    def decompress(self, data: bytes) -> bytes:
        raise NotImplementedError


class GzipCompressor(Compressor):
    tag = TAG_GZIP

    def compress(self, data: bytes, level: int) -> bytes:
        try:
            return gzip.compress(data, compresslevel=_check_level(level), mtime=0)
        except (zlib.error, MemoryError, OSError) as e:
            raise CompressionError(f"gzip compression failed: {e}") from e

    def decompress(self, data: bytes) -> bytes:
        try:
            return gzip.decompress(data)
        except (zlib.error, EOFError, OSError) as e:
            raise CompressionError(f"gzip decompression failed: {e}") from e


class Bzip2Compressor(Compressor):
    tag = TAG_BZIP2

    def compress(self, data: bytes, level: int) -> bytes:
        try:
            return bz2.compress(data, compresslevel=_check_level(level))
        except (MemoryError, OSError, ValueError) as e:
            raise CompressionError(f"bzip2 compression failed: {e}") from e

    def decompress(self, data: bytes) -> bytes:
        try:
            return bz2.decompress(data)
        except (EOFError, OSError, ValueError) as e:
            raise CompressionError(f"bzip2 decompression failed: {e}") from e


class BrotliCompressor(Compressor):
    """Brotli when the backend is importable and succeeds; gzip level 9 otherwise.

    ``fallback_used`` is set after ``compress`` when the gzip branch produced
    the output.
    """

    tag = TAG_BROTLI

    def __init__(self, fallback: Optional[Compressor] = None):
        super().__init__()
        self.fallback = fallback or GzipCompressor()

    @staticmethod
    def available() -> bool:
        return _HAS_BROTLI and _brotli_mod is not None

    @staticmethod
    def quality_for(level: int) -> int:
        # 1..9 onto Brotli's 0..11 quality scale; level 9 is the densest setting
        return min(11, round(_check_level(level) * 11 / 9))

    def compress(self, data: bytes, level: int) -> bytes:
        self.fallback_used = False
        quality = self.quality_for(level)
        if self.available():
            try:
                return _brotli_mod.compress(data, quality=quality, mode=_brotli_mod.MODE_GENERIC)
            except (_BrotliError, MemoryError):
                pass
        self.fallback_used = True
        return self.fallback.compress(data, MAX_LEVEL)

    def decompress(self, data: bytes) -> bytes:
        if data[:2] == _GZIP_MAGIC:
            try:
                return self.fallback.decompress(data)
            except CompressionError:
                if not self.available():
                    raise
        if not self.available():
            raise CompressionError("brotli stream found but the brotli module is not available")
        try:
            return _brotli_mod.decompress(data)
        except _BrotliError as e:
            raise CompressionError(f"brotli decompression failed: {e}") from e


class LzmaCompressor(Compressor):
    """Legacy ``.lzma`` container at preset 9 with the extreme flag.

    This is the "maximum" strategy, so the requested level is validated but
    otherwise ignored. The dictionary is sized to the input (capped at the
    preset 9 size) to keep encoder memory proportional to the data.
    """

    tag = TAG_LZMA

    @staticmethod
    def dict_size_for(n: int) -> int:
        size = _LZMA_MIN_DICT
        while size < n and size < _LZMA_MAX_DICT:
            size <<= 1
        return size

    def compress(self, data: bytes, level: int) -> bytes:
        _check_level(level)
        filters = [{
            "id": lzma.FILTER_LZMA1,
            "preset": 9 | lzma.PRESET_EXTREME,
            "dict_size": self.dict_size_for(len(data)),
        }]
        try:
            return lzma.compress(data, format=lzma.FORMAT_ALONE, filters=filters)
        except (lzma.LZMAError, MemoryError) as e:
            raise CompressionError(f"lzma compression failed: {e}") from e

    def decompress(self, data: bytes) -> bytes:
        try:
            return lzma.decompress(data, format=lzma.FORMAT_ALONE)
        except (lzma.LZMAError, EOFError) as e:
            raise CompressionError(f"lzma decompression failed: {e}") from e


_STRATEGIES: Dict[str, Type[Compressor]] = {
    TAG_GZIP: GzipCompressor,
    TAG_BZIP2: Bzip2Compressor,
    TAG_BROTLI: BrotliCompressor,
    TAG_LZMA: LzmaCompressor,
}


def compressor_for(algorithm) -> Compressor:
    """Return a fresh strategy for ``algorithm`` (tag string or Algorithm).

    Unknown tags get the gzip strategy.
    """
    tag = getattr(algorithm, "value", algorithm)
    return _STRATEGIES.get(tag, GzipCompressor)()


@dataclass
class CompressedPayload:
    data: bytes
    algorithm: str
    fallback_used: bool = False


def compress_data(data: bytes, algorithm, level: int) -> CompressedPayload:
    c = compressor_for(algorithm)
    out = c.compress(data, level)
    return CompressedPayload(out, c.tag, c.fallback_used)


def decompress_data(data: bytes, algorithm) -> bytes:
    return compressor_for(algorithm).decompress(data)
