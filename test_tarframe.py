from __future__ import annotations

import io
import json
import tarfile
import unittest

from tarpress.constants import BLOCK_SIZE, MAX_OCTAL_SIZE
from tarpress.errors import (
    ContentTooLargeError,
    HeaderChecksumError,
    NameCollisionError,
    NameTooLongError,
    TerminatorError,
    TruncatedRecordError,
)
from tarpress.members import UniqueMember
from tarpress.tarframe import (
    alias_manifest,
    build_header,
    frame,
    header_checksum,
    padding_len,
    parse_manifest,
    read_records,
)

MTIME = 0o1234567


def _stored_checksum(header: bytes) -> int:
    return int(header[148:154], 8)


class HeaderLayoutTests(unittest.TestCase):
    def test_fixed_fields(self):
        hdr = build_header("docs/a.txt", 5, MTIME)
        self.assertEqual(len(hdr), BLOCK_SIZE)
        self.assertEqual(hdr[:10], b"docs/a.txt")
        self.assertEqual(hdr[10:100], bytes(90))
        self.assertEqual(hdr[100:108], b"0000644 ")
        self.assertEqual(hdr[108:116], b"0000000 ")
        self.assertEqual(hdr[116:124], b"0000000 ")
        self.assertEqual(hdr[124:136], b"00000000005 ")
        self.assertEqual(hdr[136:148], b"00001234567 ")
        self.assertEqual(hdr[156:157], b"0")
        self.assertEqual(hdr[157:], bytes(BLOCK_SIZE - 157))

    def test_checksum_recomputes(self):
        for name, size in (("a", 0), ("x" * 100, 1), ("dir/ü.bin", 123456789)):
            hdr = build_header(name, size, MTIME)
            self.assertEqual(hdr[154:156], b"\x00 ")
            independent = sum(hdr[:148]) + 8 * 0x20 + sum(hdr[156:])
            self.assertEqual(_stored_checksum(hdr), independent)
            self.assertEqual(header_checksum(hdr), independent)

    def test_name_truncated_to_100_bytes(self):
        hdr = build_header("n" * 150, 0, MTIME)
        self.assertEqual(hdr[:100], b"n" * 100)
        self.assertEqual(hdr[100:108], b"0000644 ")

    def test_size_ceiling(self):
        build_header("max", MAX_OCTAL_SIZE, MTIME)
        with self.assertRaises(ContentTooLargeError):
            build_header("big", MAX_OCTAL_SIZE + 1, MTIME)


class FrameTests(unittest.TestCase):
    def test_empty_input_is_only_terminator(self):
        data = frame([], mtime=MTIME)
        self.assertEqual(data, bytes(2 * BLOCK_SIZE))
        self.assertEqual(read_records(data), [])

    def test_padding(self):
        self.assertEqual(padding_len(0), 0)
        self.assertEqual(padding_len(1), 511)
        self.assertEqual(padding_len(512), 0)
        self.assertEqual(padding_len(513), 511)
        for size, expected in ((0, 512), (1, 1024), (512, 1024), (513, 1536)):
            data = frame([UniqueMember("f", b"\x01" * size, ["f"])], mtime=MTIME)
            self.assertEqual(len(data), expected + 2 * BLOCK_SIZE, size)
            self.assertEqual(len(data) % BLOCK_SIZE, 0)
            self.assertEqual(data[-2 * BLOCK_SIZE:], bytes(2 * BLOCK_SIZE))

    def test_alias_manifest_follows_its_record(self):
        uniques = [
            UniqueMember("a.txt", b"hello", ["a.txt", "b.txt", "sub/c.txt"]),
            UniqueMember("d.txt", b"world", ["d.txt"]),
        ]
        records = read_records(frame(uniques, mtime=MTIME))
        self.assertEqual([r.name for r in records], ["a.txt", "a.txt.duplicates.json", "d.txt"])
        self.assertEqual(records[0].payload, b"hello")
        self.assertTrue(records[1].is_manifest)
        doc = parse_manifest(records[1])
        self.assertEqual(doc, {"duplicates": ["b.txt", "sub/c.txt"], "originalFile": "a.txt"})
        self.assertEqual(list(json.loads(alias_manifest(uniques[0])).keys()), ["duplicates", "originalFile"])
        self.assertTrue(all(r.mtime == MTIME for r in records))

    def test_readable_by_tarfile(self):
        uniques = [
            UniqueMember("a.txt", b"hello", ["a.txt", "b.txt"]),
            UniqueMember("big.bin", bytes(range(256)) * 9, ["big.bin"]),
        ]
        data = frame(uniques, mtime=MTIME)
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tf:
            names = tf.getnames()
            self.assertEqual(names, ["a.txt", "a.txt.duplicates.json", "big.bin"])
            self.assertEqual(tf.extractfile("a.txt").read(), b"hello")
            self.assertEqual(tf.extractfile("big.bin").read(), bytes(range(256)) * 9)
            member = tf.getmember("a.txt")
            self.assertEqual(member.mode, 0o644)
            self.assertEqual(member.mtime, MTIME)

    def test_truncated_name_collision_is_rejected(self):
        long_a = "p" * 100 + "-a.txt"
        long_b = "p" * 100 + "-b.txt"
        with self.assertRaises(NameCollisionError):
            frame([UniqueMember(long_a, b"1", [long_a]), UniqueMember(long_b, b"2", [long_b])], mtime=MTIME)

    def test_long_primary_with_aliases_collides_with_its_manifest(self):
        name = "q" * 120
        with self.assertRaises(NameCollisionError):
            frame([UniqueMember(name, b"x", [name, "short"])], mtime=MTIME)

    def test_manifest_name_clash_reports_no_truncation(self):
        uniques = [
            UniqueMember("a.txt", b"1", ["a.txt", "b.txt"]),
            UniqueMember("a.txt.duplicates.json", b"{}", ["a.txt.duplicates.json"]),
        ]
        with self.assertRaises(NameCollisionError) as cm:
            frame(uniques, mtime=MTIME)
        self.assertNotIn("truncation", str(cm.exception))
        long_a = "p" * 100 + "-a.txt"
        long_b = "p" * 100 + "-b.txt"
        with self.assertRaises(NameCollisionError) as cm:
            frame([UniqueMember(long_a, b"1", [long_a]), UniqueMember(long_b, b"2", [long_b])], mtime=MTIME)
        self.assertIn("truncation to 100 bytes", str(cm.exception))

    def test_long_name_without_collision_is_truncated(self):
        name = "r" * 130
        records = read_records(frame([UniqueMember(name, b"x", [name])], mtime=MTIME))
        self.assertEqual(records[0].name, "r" * 100)

    def test_reject_policy(self):
        name = "s" * 101
        with self.assertRaises(NameTooLongError):
            frame([UniqueMember(name, b"x", [name])], mtime=MTIME, long_names="reject")
        frame([UniqueMember("s" * 100, b"x", ["s" * 100])], mtime=MTIME, long_names="reject")


class ReadRecordsTests(unittest.TestCase):
    def setUp(self):
        self.data = frame([UniqueMember("a.txt", b"hello", ["a.txt"])], mtime=MTIME)

    def test_corrupt_header_detected(self):
        bad = bytearray(self.data)
        bad[0] ^= 0x01
        with self.assertRaises(HeaderChecksumError):
            read_records(bytes(bad))

    def test_zero_content_block_is_not_a_terminator(self):
        data = frame([UniqueMember("zeros", bytes(1024), ["zeros"])], mtime=MTIME)
        records = read_records(data)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].payload, bytes(1024))

    def test_missing_terminator(self):
        with self.assertRaises(TerminatorError):
            read_records(self.data[:-BLOCK_SIZE])

    def test_data_after_terminator(self):
        with self.assertRaises(TerminatorError):
            read_records(self.data + bytes(BLOCK_SIZE))

    def test_truncated(self):
        with self.assertRaises(TruncatedRecordError):
            read_records(self.data[:700])
        with self.assertRaises(TruncatedRecordError):
            read_records(self.data[:BLOCK_SIZE])


if __name__ == "__main__":
    unittest.main()
