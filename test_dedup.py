from __future__ import annotations

import hashlib
import os
import unittest

from tarpress.dedup import deduplicate, group_members, summarize
from tarpress.hashutil import fingerprint
from tarpress.members import Member, UniqueMember

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class FingerprintTests(unittest.TestCase):
    def test_deterministic_and_matches_sha256(self):
        data = os.urandom(4096)
        self.assertEqual(fingerprint(data), fingerprint(bytes(data)))
        self.assertEqual(fingerprint(data), hashlib.sha256(data).hexdigest())
        self.assertEqual(len(fingerprint(data)), 64)

    def test_empty_input(self):
        self.assertEqual(fingerprint(b""), EMPTY_SHA256)

    def test_distinct_inputs(self):
        self.assertNotEqual(fingerprint(b"hello"), fingerprint(b"hellp"))


class DeduplicateTests(unittest.TestCase):
    def test_basic_groups(self):
        members = [Member("a.txt", b"hello"), Member("b.txt", b"hello"), Member("c.txt", b"world")]
        res = deduplicate(members)
        self.assertEqual([u.primary_name for u in res.uniques], ["a.txt", "c.txt"])
        self.assertEqual(res.uniques[0].alias_names, ["a.txt", "b.txt"])
        self.assertEqual(res.uniques[1].alias_names, ["c.txt"])
        self.assertEqual(res.duplicate_summaries, ["2 duplicates of a.txt"])
        self.assertEqual(res.uniques[0].duplicates, ["b.txt"])

    def test_group_order_follows_first_sighting(self):
        members = [
            Member("x", b"1"),
            Member("y", b"2"),
            Member("z", b"1"),
            Member("w", b"3"),
            Member("v", b"2"),
        ]
        groups = group_members(members)
        self.assertEqual([[m.name for m in g.members] for g in groups], [["x", "z"], ["y", "v"], ["w"]])
        self.assertEqual(groups[0].fingerprint, fingerprint(b"1"))

    def test_summary_cap_does_not_limit_dedup(self):
        members = []
        for i in range(7):
            members.append(Member(f"orig{i}", f"content-{i}".encode()))
            members.append(Member(f"copy{i}", f"content-{i}".encode()))
        res = deduplicate(members)
        self.assertEqual(len(res.uniques), 7)
        self.assertTrue(all(len(u.alias_names) == 2 for u in res.uniques))
        self.assertEqual(len(res.duplicate_summaries), 5)
        self.assertEqual(res.duplicate_summaries[0], "2 duplicates of orig0")
        self.assertEqual(len(summarize(group_members(members), limit=100)), 7)

    def test_disabled_is_identity(self):
        members = [Member("a", b"same"), Member("b", b"same"), Member("c", b"other")]
        res = deduplicate(members, enabled=False)
        self.assertEqual(len(res.uniques), len(members))
        self.assertEqual(res.duplicate_summaries, [])
        for m, u in zip(members, res.uniques):
            self.assertEqual(u.primary_name, m.name)
            self.assertEqual(u.alias_names, [m.name])
            self.assertEqual(u.content, m.content)

    def test_idempotent(self):
        members = [Member(f"f{i}", bytes([i % 3]) * 10) for i in range(9)]
        first = deduplicate(members)
        again = deduplicate([Member(u.primary_name, u.content) for u in first.uniques])
        self.assertEqual([u.primary_name for u in again.uniques], [u.primary_name for u in first.uniques])
        self.assertEqual(again.duplicate_summaries, [])
        self.assertTrue(all(u.alias_names == [u.primary_name] for u in again.uniques))

    def test_alias_invariants(self):
        members = [Member(f"n{i}", os.urandom(8) if i % 2 else b"dup") for i in range(10)]
        for u in deduplicate(members).uniques:
            self.assertTrue(u.alias_names)
            self.assertEqual(u.alias_names[0], u.primary_name)

    def test_parallel_and_serial_agree(self):
        members = [Member(f"m{i}", bytes([i % 5]) * 2048) for i in range(40)]
        serial = deduplicate(members, workers=1)
        parallel = deduplicate(members, workers=8)
        self.assertEqual(
            [u.alias_names for u in serial.uniques],
            [u.alias_names for u in parallel.uniques],
        )

    def test_empty(self):
        res = deduplicate([])
        self.assertEqual(res.uniques, [])
        self.assertEqual(res.duplicate_summaries, [])

    def test_unique_member_validation(self):
        self.assertEqual(UniqueMember("a", b"").alias_names, ["a"])
        with self.assertRaises(ValueError):
            UniqueMember("a", b"", ["b", "a"])


if __name__ == "__main__":
    unittest.main()
