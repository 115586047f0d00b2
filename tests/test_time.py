import unittest
from datetime import datetime, timezone

from subscription_sync.core.time import epoch_to_iso, parse_iso


class TestTime(unittest.TestCase):
    def test_epoch_to_iso(self):
        self.assertEqual(epoch_to_iso(0), "1970-01-01T00:00:00.000Z")
        self.assertEqual(epoch_to_iso(1700000000), "2023-11-14T22:13:20.000Z")

    def test_parse_iso_round_trip_and_naive(self):
        self.assertEqual(parse_iso("2023-11-14T22:13:20.000Z"), datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc))
        self.assertEqual(parse_iso("2023-11-14T22:13:20").tzinfo, timezone.utc)

    def test_parse_iso_rejects_garbage(self):
        self.assertIsNone(parse_iso(None))
        self.assertIsNone(parse_iso("tomorrow"))
