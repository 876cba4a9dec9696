from __future__ import annotations

from Cryptodome.Hash import SHA256

from .errors import IntegrityComputeError


def fingerprint(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of ``data``.

    Used both as the dedup key and as the integrity checksum reported for the
    source and the compressed output.
    """
    try:
        return SHA256.new(data).hexdigest()
    except (MemoryError, TypeError, ValueError) as exc:
        raise IntegrityComputeError(f"hashing failed: {exc}") from exc
