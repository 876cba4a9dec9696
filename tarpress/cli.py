from __future__ import annotations

import os
import sys
import argparse
import json as _json
import threading

from typing import Dict, List, Optional

from tarpress.codec import decompress_data
from tarpress.constants import DEFAULT_LEVEL, LONG_NAMES_TRUNCATE, LONG_NAMES_REJECT, MIN_LEVEL, MAX_LEVEL
from tarpress.errors import TarpressError, ContainerError, CompressionError
from tarpress.hashutil import fingerprint
from tarpress.pipeline import ProgressEvent, Stage, convert_files
from tarpress.settings import Algorithm, ConversionSettings
from tarpress.tarframe import parse_manifest, read_records


def _algorithm_for_path(path: str, explicit: Optional[str] = None) -> Algorithm:
    """Pick the algorithm from --format or the archive's extension."""
    if explicit:
        return Algorithm.parse(explicit)
    lower = path.lower()
    for alg in Algorithm:
        if lower.endswith(alg.extension):
            return alg
    raise ValueError(f"Cannot tell the format of {path}; pass --format")


def _human_size(n: int) -> str:
    size = float(n)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024.0 or unit == "GiB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{n} B"


def _load_container(archive: str, fmt: Optional[str]):
    alg = _algorithm_for_path(archive, fmt)
    with open(archive, "rb") as f:
        raw = f.read()
    return alg, raw, decompress_data(raw, alg)


# -------- convert --------

def cmd_convert(
    inputs: List[str],
    *,
    algorithm: str = "tar.gz",
    level: int = DEFAULT_LEVEL,
    dedup: bool = True,
    integrity: bool = True,
    long_names: str = LONG_NAMES_TRUNCATE,
    outdir: Optional[str] = None,
    jobs: int = 4,
    as_json: bool = False,
    quiet: bool = False,
) -> bool:
    """Convert ZIP archives into compressed tape-archives.

    Args:
        inputs: ZIP file paths.
        algorithm: Output format tag (tar.gz, tar.bz2, tar.br, tar.lzma).
        level: Compression level 1..9.
        dedup: Store identical member contents once.
        integrity: Report a SHA-256 checksum of each output.
        long_names: "truncate" or "reject" names longer than 100 bytes.
        outdir: Output directory; defaults to each input's directory.
        jobs: Maximum parallel conversions.
        as_json: Print a JSON summary instead of text.
        quiet: Limit output to summaries.

    Returns:
        True when every input converted, False otherwise.
    """
    settings = ConversionSettings(
        algorithm=algorithm,
        level=level,
        enable_deduplication=dedup,
        enable_integrity_check=integrity,
        long_names=long_names,
    )
    lock = threading.Lock()
    last: Dict[str, int] = {}

    def _progress(ev: ProgressEvent) -> None:
        if quiet or as_json:
            return
        # one line per stage change or 10% step, per job
        bucket = int(ev.percent // 10)
        key = f"{ev.job_id}:{ev.stage.value}"
        with lock:
            if last.get(key) == bucket and ev.stage is not Stage.ERROR:
                return
            last[key] = bucket
            print(f" {ev.percent:6.2f}% {ev.stage.value:<13} {os.path.basename(ev.job_id)}", flush=True)

    outcomes = convert_files(inputs, settings, outdir=outdir, jobs=jobs, on_progress=_progress)
    failed = sum(1 for o in outcomes if not o.ok)
    if as_json:
        print(_json.dumps({
            "settings": settings.to_dict(),
            "results": [o.to_dict() for o in outcomes],
            "ok": len(outcomes) - failed,
            "failed": failed,
        }))
        return failed == 0
    for o in outcomes:
        if not o.ok:
            print(f"ERROR    {o.source}: [{o.error_kind}] {o.message}", file=sys.stderr)
            continue
        r = o.result
        print(f"DONE     {o.source} -> {o.output_path}")
        print(
            f"  {_human_size(r.original_size)} -> {_human_size(r.compressed_size)} "
            f"({r.compression_ratio_percent:.1f}% saved) in {r.elapsed_ms:.1f} ms; "
            f"{r.member_count} files, {r.unique_count} stored; {r.algorithm} level {settings.level}"
        )
        print(f"  source sha256: {r.original_checksum}")
        if r.compressed_checksum:
            print(f"  output sha256: {r.compressed_checksum}")
        for line in r.duplicate_summaries:
            print(f"  {line}")
        if r.fallback_used:
            print(f"Warning: brotli unavailable for {o.source}; wrote gzip data instead", file=sys.stderr)
    print(f"Summary: ok={len(outcomes) - failed} failed={failed}")
    return failed == 0


# -------- list / verify / info --------

def cmd_list(archive: str, *, fmt: Optional[str] = None) -> bool:
    """List records of a converted archive.

    Args:
        archive: Path to a .tar.gz/.tar.bz2/.tar.br/.tar.lzma file.
        fmt: Format tag overriding the extension.
    """
    _alg, _raw, container = _load_container(archive, fmt)
    for rec in read_records(container):
        if rec.is_manifest:
            doc = parse_manifest(rec)
            print(f"aliases\t{len(doc['duplicates'])}\t{rec.name}")
        else:
            print(f"file\t{rec.size}\t{rec.name}")
    return True


def cmd_verify(archive: str, *, fmt: Optional[str] = None, checksum: Optional[str] = None) -> bool:
    """Verify a converted archive.

    Decompresses the file, checks every header checksum and the end-of-archive
    marker, and optionally compares the file's SHA-256 with ``checksum``.

    Prints:
        "OK" on success, "FAIL" on mismatch or errors.
    """
    try:
        _alg, raw, container = _load_container(archive, fmt)
        if checksum is not None and fingerprint(raw) != checksum.strip().lower():
            print("Checksum mismatch", file=sys.stderr)
            print("FAIL")
            return False
        for rec in read_records(container):
            if rec.is_manifest:
                parse_manifest(rec)
    except (ContainerError, CompressionError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        print("FAIL")
        return False
    print("OK")
    return True


def cmd_info(archive: str, *, fmt: Optional[str] = None) -> bool:
    """Show archive information."""
    alg, raw, container = _load_container(archive, fmt)
    records = read_records(container)
    files = [r for r in records if not r.is_manifest]
    manifests = [r for r in records if r.is_manifest]
    aliases = sum(len(parse_manifest(r)["duplicates"]) for r in manifests)
    print(f"Archive: {archive}")
    print(f"  Format: {alg.value} ({alg.mime_type})")
    print(f"  Compressed size: {len(raw)}")
    print(f"  Container size: {len(container)}")
    print(f"  SHA-256: {fingerprint(raw)}")
    print(f"  Records: {len(records)}")
    print(f"    Files: {len(files)}")
    print(f"    Alias manifests: {len(manifests)} ({aliases} deduplicated name(s))")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="tarpress",
        description="Repackage ZIP archives as deduplicated, compressed tape-archives",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)
    formats = [a.value for a in Algorithm]

    ap_convert = sub.add_parser("convert", help="Convert ZIP archives")
    ap_convert.add_argument("inputs", nargs="+", help="Input .zip files")
    ap_convert.add_argument("--format", choices=formats, default=Algorithm.GZIP.value, help="Output format (default tar.gz)")
    ap_convert.add_argument(
        "--level",
        type=int,
        default=DEFAULT_LEVEL,
        help=f"Compression level {MIN_LEVEL}-{MAX_LEVEL} (default {DEFAULT_LEVEL}; tar.lzma always uses its maximum preset)",
    )
    ap_convert.add_argument("--no-dedup", action="store_true", help="Store duplicate contents separately")
    ap_convert.add_argument("--no-integrity", action="store_true", help="Skip the output SHA-256 checksum")
    ap_convert.add_argument(
        "--long-names",
        choices=[LONG_NAMES_TRUNCATE, LONG_NAMES_REJECT],
        default=LONG_NAMES_TRUNCATE,
        help="Names over 100 bytes: truncate (collisions are errors) or reject",
    )
    ap_convert.add_argument("--outdir", help="Output directory (default: next to each input)")
    ap_convert.add_argument("--jobs", "-j", type=int, default=4, help="Parallel jobs (default 4)")
    ap_convert.add_argument("--json", action="store_true", help="Emit JSON result summary")
    ap_convert.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")
    ap_list.add_argument("--format", choices=formats, help="Format (default: from extension)")

    ap_verify = sub.add_parser("verify", help="Verify archive headers and checksum")
    ap_verify.add_argument("archive", help="Archive path")
    ap_verify.add_argument("--format", choices=formats, help="Format (default: from extension)")
    ap_verify.add_argument("--checksum", help="Expected SHA-256 of the archive file")

    ap_info = sub.add_parser("info", help="Show archive information")
    ap_info.add_argument("archive", help="Archive path")
    ap_info.add_argument("--format", choices=formats, help="Format (default: from extension)")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "convert":
            success = cmd_convert(
                args.inputs,
                algorithm=args.format,
                level=args.level,
                dedup=not args.no_dedup,
                integrity=not args.no_integrity,
                long_names=args.long_names,
                outdir=args.outdir,
                jobs=args.jobs,
                as_json=args.json,
                quiet=args.quiet,
            )
            sys.exit(0 if success else 1)
        elif args.cmd == "list":
            cmd_list(args.archive, fmt=args.format)
        elif args.cmd == "verify":
            ok = cmd_verify(args.archive, fmt=args.format, checksum=args.checksum)
            sys.exit(0 if ok else 1)
        elif args.cmd == "info":
            cmd_info(args.archive, fmt=args.format)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (TarpressError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
