"""
tarpress: repackage ZIP archives as deduplicated, checksummed tape-archives.

Features:

- Member extraction from a ZIP archive held in memory (directories skipped).
- Content-addressed deduplication (SHA-256); duplicates are recorded in a
  ``<name>.duplicates.json`` alias manifest instead of being stored again.
- v7 tape-archive framing: 512-byte headers with octal ASCII fields and header
  checksums, block padding and a two-block end marker.
- Output compression selected by tag: tar.gz, tar.bz2, tar.br (falls back to
  gzip when Brotli is unavailable) and tar.lzma.
- Per-job progress events, cancellation between steps, SHA-256 checksums of
  the source and output.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "settings",
    "source",
    "dedup",
    "tarframe",
    "codec",
    "pipeline",
]

# Programmatic API: tarpress.pipeline.convert_archive (bytes in, ConversionResult
# out) and the CLI functions in tarpress.cli (cmd_convert/cmd_verify).
