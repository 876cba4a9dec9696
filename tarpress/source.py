from __future__ import annotations

import io
import lzma
import zipfile
import zlib
from typing import Callable, Dict, List, Optional

from .cancel import CancelToken
from .errors import ExtractionError, SourceFormatError
from .members import Member


def open_source(data: bytes) -> zipfile.ZipFile:
    """Open ``data`` as a ZIP archive held in memory.

    Raises:
        SourceFormatError: the bytes are not a readable ZIP archive.
    """
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, OSError, ValueError) as exc:
        raise SourceFormatError(f"not a valid ZIP archive: {exc}") from exc


def extract_members(
    data: bytes,
    *,
    on_member: Optional[Callable[[int, int], None]] = None,
    cancel: Optional[CancelToken] = None,
) -> List[Member]:
    """Extract every non-directory member in central-directory order.

    A name stored more than once keeps the position of its first entry and
    the content of its last one.

    Args:
        data: Raw ZIP bytes.
        on_member: Called as ``on_member(index, total)`` after each entry
            (directories included) so callers can report fractional progress.
        cancel: Checked before each entry is read.
    """
    members: List[Member] = []
    slots: Dict[str, int] = {}
    with open_source(data) as zf:
        infos = zf.infolist()
        total = len(infos)
        for i, info in enumerate(infos):
            if cancel is not None:
                cancel.raise_if_cancelled("extracting " + info.filename)
            if not info.is_dir():
                member = Member(info.filename, _read_member(zf, info))
                slot = slots.get(info.filename)
                if slot is None:
                    slots[info.filename] = len(members)
                    members.append(member)
                else:
                    members[slot] = member
            if on_member is not None:
                on_member(i + 1, total)
    return members


def _read_member(zf: zipfile.ZipFile, info: zipfile.ZipInfo) -> bytes:
    try:
        return zf.read(info)
    except (zipfile.BadZipFile, zlib.error, lzma.LZMAError, EOFError, OSError) as exc:
        raise ExtractionError(info.filename, f"failed to decompress: {exc}") from exc
    except NotImplementedError as exc:
        raise ExtractionError(info.filename, f"unsupported compression method: {exc}") from exc
    except RuntimeError as exc:
        # zipfile raises RuntimeError for encrypted members without a password
        raise ExtractionError(info.filename, str(exc)) from exc
