"""
Tests for the shared helpers.
"""
import unittest
from datetime import datetime, timezone, timedelta

from cryptography.hazmat.primitives import hashes

from localca import utils

from helpers import cached_key, expired_root_certificate, make_certificate, root_subject


class TestFingerprint(unittest.TestCase):
    """Test cases for calculate_fingerprint."""

    def setUp(self):
        self.certificate = expired_root_certificate(cached_key())

    def test_sha256_format(self):
        fingerprint = utils.calculate_fingerprint(self.certificate)

        self.assertEqual(len(fingerprint), 95)
        self.assertEqual(fingerprint, fingerprint.upper())
        self.assertEqual(
            bytes.fromhex(fingerprint.replace(":", "")),
            self.certificate.fingerprint(hashes.SHA256())
        )

    def test_sha1(self):
        fingerprint = utils.calculate_fingerprint(self.certificate, "SHA1")
        self.assertEqual(len(fingerprint.split(":")), 20)

    def test_distinct_certificates(self):
        name = root_subject().to_x509_name()
        now = datetime.now(timezone.utc)
        other = make_certificate(cached_key(), name, name, cached_key().public_key,
                                 now, now + timedelta(days=1), serial=2)

        self.assertNotEqual(utils.calculate_fingerprint(other), utils.calculate_fingerprint(self.certificate))

    def test_unknown_algorithm(self):
        with self.assertRaises(ValueError):
            utils.calculate_fingerprint(self.certificate, "md5")


class TestDates(unittest.TestCase):

    def test_now_truncated_to_second(self):
        self.assertEqual(utils.now_utc().microsecond, 0)
        self.assertEqual(utils.now_utc().tzinfo, timezone.utc)

    def test_naive_date_is_utc(self):
        naive = datetime(2030, 1, 1, 12, 0)
        self.assertEqual(utils.as_utc(naive), naive.replace(tzinfo=timezone.utc))


if __name__ == '__main__':
    unittest.main()
