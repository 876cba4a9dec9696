from __future__ import annotations

import io
import json
import time
from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence, Union

from .cancel import CancelToken
from .constants import (
    BLOCK_SIZE,
    END_OF_ARCHIVE_BLOCKS,
    NAME_OFFSET,
    NAME_LEN,
    MODE_OFFSET,
    UID_OFFSET,
    GID_OFFSET,
    SIZE_OFFSET,
    SIZE_LEN,
    MTIME_OFFSET,
    MTIME_LEN,
    CHKSUM_OFFSET,
    CHKSUM_LEN,
    CHKSUM_DIGITS,
    TYPEFLAG_OFFSET,
    FILE_MODE_FIELD,
    OWNER_ID_FIELD,
    GROUP_ID_FIELD,
    REGTYPE,
    OCTAL_DIGITS,
    MAX_OCTAL_SIZE,
    MANIFEST_SUFFIX,
    LONG_NAMES_TRUNCATE,
    LONG_NAMES_REJECT,
)
from .errors import (
    ContainerError,
    ContentTooLargeError,
    HeaderChecksumError,
    InvalidSettingsError,
    NameCollisionError,
    NameTooLongError,
    TerminatorError,
    TruncatedRecordError,
)
from .members import UniqueMember


# Header block (512 bytes, v7 layout, all integers as octal ASCII)
#  - name[100]      truncated UTF-8, NUL padded
#  - mode[8]        "0000644 "
#  - uid[8]         "0000000 "
#  - gid[8]         "0000000 "
#  - size[12]       11 octal digits + space
#  - mtime[12]      11 octal digits + space
#  - chksum[8]      6 octal digits + NUL + space
#  - typeflag[1]    '0'
#  - remaining 355 bytes zero
_ZERO_BLOCK = bytes(BLOCK_SIZE)
_CHKSUM_BLANK = b" " * CHKSUM_LEN


def _octal_field(value: int, digits: int = OCTAL_DIGITS) -> bytes:
    return format(value, "o").zfill(digits).encode("ascii") + b" "


def _parse_octal(field: bytes, what: str, offset: int) -> int:
    text = field.replace(b"\x00", b" ").strip()
    if not text:
        return 0
    try:
        return int(text, 8)
    except ValueError:
        raise ContainerError(f"bad {what} field in header at offset {offset}: {field!r}")


def padding_len(size: int) -> int:
    """Zero bytes needed after ``size`` payload bytes to reach a block boundary."""
    return -size % BLOCK_SIZE


def header_checksum(header: bytes) -> int:
    """Unsigned byte sum of a header with the checksum field counted as spaces."""
    if len(header) != BLOCK_SIZE:
        raise ValueError("header must be exactly one block")
    return sum(header[:CHKSUM_OFFSET]) + sum(_CHKSUM_BLANK) + sum(header[CHKSUM_OFFSET + CHKSUM_LEN:])


def encode_name(name: str, long_names: str = LONG_NAMES_TRUNCATE) -> bytes:
    raw = name.encode("utf-8")
    if len(raw) <= NAME_LEN:
        return raw
    if long_names == LONG_NAMES_REJECT:
        raise NameTooLongError(f"member name exceeds {NAME_LEN} bytes: {name!r}")
    if long_names != LONG_NAMES_TRUNCATE:
        raise InvalidSettingsError(f"unknown long-name policy: {long_names!r}")
    return raw[:NAME_LEN]


def build_header(name: Union[str, bytes], size: int, mtime: int) -> bytes:
    """Build one 512-byte header block for a regular file record."""
    raw = name.encode("utf-8") if isinstance(name, str) else name
    if size > MAX_OCTAL_SIZE:
        raise ContentTooLargeError(
            f"record {raw[:NAME_LEN]!r} is {size} bytes; the size field holds at most {MAX_OCTAL_SIZE}"
        )
    hdr = bytearray(BLOCK_SIZE)
    hdr[NAME_OFFSET:NAME_OFFSET + NAME_LEN] = raw[:NAME_LEN].ljust(NAME_LEN, b"\x00")
    hdr[MODE_OFFSET:MODE_OFFSET + 8] = FILE_MODE_FIELD
    hdr[UID_OFFSET:UID_OFFSET + 8] = OWNER_ID_FIELD
    hdr[GID_OFFSET:GID_OFFSET + 8] = GROUP_ID_FIELD
    hdr[SIZE_OFFSET:SIZE_OFFSET + SIZE_LEN] = _octal_field(size)
    hdr[MTIME_OFFSET:MTIME_OFFSET + MTIME_LEN] = _octal_field(mtime)
    hdr[TYPEFLAG_OFFSET:TYPEFLAG_OFFSET + 1] = REGTYPE
    chk = header_checksum(bytes(hdr))
    hdr[CHKSUM_OFFSET:CHKSUM_OFFSET + CHKSUM_LEN] = format(chk, "o").zfill(CHKSUM_DIGITS).encode("ascii") + b"\x00 "
    return bytes(hdr)


def write_record(f: BinaryIO, name: Union[str, bytes], payload: bytes, mtime: int) -> int:
    """Write header, payload and padding; return the record's starting offset."""
    off = f.tell()
    f.write(build_header(name, len(payload), mtime))
    f.write(payload)
    pad = padding_len(len(payload))
    if pad:
        f.write(bytes(pad))
    return off


def alias_manifest(unique: UniqueMember) -> bytes:
    doc = {"duplicates": unique.duplicates, "originalFile": unique.alias_names[0]}
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def manifest_name(primary_name: str) -> str:
    return primary_name + MANIFEST_SUFFIX


class _HeaderNames:
    """Tracks header names already used in one container."""

    def __init__(self, long_names: str):
        self.long_names = long_names
        self._seen: Dict[bytes, str] = {}

    def claim(self, name: str) -> bytes:
        raw = encode_name(name, self.long_names)
        prev = self._seen.get(raw)
        if prev is not None:
            how = "" if prev == name else f" after truncation to {NAME_LEN} bytes"
            raise NameCollisionError(f"{name!r} and {prev!r} share the header name {raw!r}{how}")
        self._seen[raw] = name
        return raw


def frame(
    uniques: Sequence[UniqueMember],
    *,
    mtime: Optional[int] = None,
    long_names: str = LONG_NAMES_TRUNCATE,
    cancel: Optional[CancelToken] = None,
) -> bytes:
    """Serialize unique members into a tape-archive byte buffer.

    Each member becomes a content record; members with aliases are followed by
    a ``<name>.duplicates.json`` manifest record. The buffer always ends with
    two zero blocks.

    Args:
        uniques: Records to store, in output order.
        mtime: Modification time stamped on every header; defaults to now.
        long_names: "truncate" (100-byte cut, collisions rejected) or "reject".
        cancel: Checked before each record.
    """
    if mtime is None:
        mtime = int(time.time())
    names = _HeaderNames(long_names)
    buf = io.BytesIO()
    for u in uniques:
        if cancel is not None:
            cancel.raise_if_cancelled("framing " + u.primary_name)
        write_record(buf, names.claim(u.primary_name), u.content, mtime)
        if len(u.alias_names) > 1:
            write_record(buf, names.claim(manifest_name(u.primary_name)), alias_manifest(u), mtime)
    buf.write(_ZERO_BLOCK * END_OF_ARCHIVE_BLOCKS)
    return buf.getvalue()


# -------- Reading --------

@dataclass
class TarRecord:
    name: str
    size: int
    mtime: int
    checksum: int
    offset: int
    payload: bytes

    @property
    def is_manifest(self) -> bool:
        return self.name.endswith(MANIFEST_SUFFIX)


def parse_header(block: bytes, offset: int = 0):
    """Validate one header block.

    Returns:
        (name, size, mtime, checksum)
    """
    stored = _parse_octal(block[CHKSUM_OFFSET:CHKSUM_OFFSET + CHKSUM_LEN], "checksum", offset)
    calc = header_checksum(block)
    if stored != calc:
        raise HeaderChecksumError(f"header checksum mismatch at offset {offset}: stored {stored:o}, computed {calc:o}")
    name = block[NAME_OFFSET:NAME_OFFSET + NAME_LEN].split(b"\x00", 1)[0].decode("utf-8", errors="replace")
    size = _parse_octal(block[SIZE_OFFSET:SIZE_OFFSET + SIZE_LEN], "size", offset)
    mtime = _parse_octal(block[MTIME_OFFSET:MTIME_OFFSET + MTIME_LEN], "mtime", offset)
    return name, size, mtime, stored


def iter_records(data: bytes) -> Iterator[TarRecord]:
    """Yield every record of a framed container, checking headers and terminator.

    Raises:
        HeaderChecksumError: a header's stored checksum does not match.
        TruncatedRecordError: the buffer ends inside a record.
        TerminatorError: the two-block end marker is missing or followed by data.
    """
    if len(data) % BLOCK_SIZE:
        raise TruncatedRecordError(f"container length {len(data)} is not a multiple of {BLOCK_SIZE}")
    off = 0
    n = len(data)
    while True:
        if off + BLOCK_SIZE > n:
            raise TerminatorError("missing end-of-archive marker")
        block = data[off:off + BLOCK_SIZE]
        if block == _ZERO_BLOCK:
            if data[off:] != _ZERO_BLOCK * END_OF_ARCHIVE_BLOCKS:
                raise TerminatorError(f"end-of-archive marker at offset {off} is malformed or followed by data")
            return
        name, size, mtime, chk = parse_header(block, off)
        start = off + BLOCK_SIZE
        end = start + size
        if end > n:
            raise TruncatedRecordError(f"record {name!r} at offset {off} runs past the end of the container")
        yield TarRecord(name=name, size=size, mtime=mtime, checksum=chk, offset=off, payload=data[start:end])
        off = end + padding_len(size)


def read_records(data: bytes) -> List[TarRecord]:
    return list(iter_records(data))


def parse_manifest(record: TarRecord) -> Dict:
    try:
        doc = json.loads(record.payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ContainerError(f"malformed alias manifest {record.name!r}: {exc}") from exc
    if not isinstance(doc, dict) or "originalFile" not in doc or not isinstance(doc.get("duplicates"), list):
        raise ContainerError(f"malformed alias manifest {record.name!r}")
    return doc
