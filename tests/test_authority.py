"""
Tests for RootAuthority: root creation, rotation and leaf signing.
"""
import random
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from cryptography import x509

from localca import config, utils
from localca.authority import RootAuthority
from localca.csr import CertificateRequestBuilder
from localca.exceptions import (
    AuthorityStateError,
    ClockSkewError,
    ExpiredAuthorityError,
    RequestConsumedError,
    RootAlreadyInitializedError,
    RootNotInitializedError,
    SerialExhaustedError,
    StorageError,
    ValidityWindowError,
    WeakParameterError,
)
from localca.models import ArtifactRole, AuthorityState, Subject
from localca.registry import IssuanceRegistry
from localca.store import MaterialStore
from localca.validator import ChainValidator

from helpers import cached_key, expired_root_certificate, leaf_subject, root_subject, weak_rsa_key


def _basic_constraints(certificate):
    return certificate.extensions.get_extension_for_class(x509.BasicConstraints).value


class AuthorityTestCase(unittest.TestCase):

    def setUp(self):
        utils.set_quiet(True)
        self.builder = CertificateRequestBuilder()
        self.root_key = cached_key(slot=0)
        self.leaf_key = cached_key(slot=1)
        self.authority = RootAuthority()
        self.root = self.authority.initialize_root(self.root_key, root_subject(), 365)

    def new_csr(self, common_name="test.local"):
        return self.builder.build(self.leaf_key, leaf_subject(common_name))


class TestRootInitialization(AuthorityTestCase):
    """Test cases for initialize_root and rotate_root."""

    def test_root_is_self_signed_ca(self):
        self.assertEqual(self.root.issuer, self.root.subject)
        self.assertTrue(_basic_constraints(self.root).ca)
        key_usage = self.root.extensions.get_extension_for_class(x509.KeyUsage).value
        self.assertTrue(key_usage.key_cert_sign)

    def test_root_validity_window(self):
        delta = self.root.not_valid_after_utc - self.root.not_valid_before_utc
        self.assertEqual(delta.days, 365)

    def test_zero_validity_days(self):
        with self.assertRaises(ClockSkewError):
            RootAuthority().initialize_root(self.root_key, root_subject(), 0)

    def test_negative_validity_days(self):
        with self.assertRaises(ClockSkewError):
            RootAuthority().initialize_root(self.root_key, root_subject(), -5)

    def test_same_key_is_idempotent(self):
        again = self.authority.initialize_root(self.root_key, root_subject(), 365)
        self.assertEqual(again, self.root)

    def test_different_key_requires_rotation(self):
        with self.assertRaises(RootAlreadyInitializedError):
            self.authority.initialize_root(cached_key(slot=2), root_subject(), 365)
        self.assertEqual(self.authority.certificate, self.root)

    def test_rotation_replaces_root_and_keeps_serial(self):
        self.authority.sign(self.new_csr(), 30)
        new_root = self.authority.rotate_root(cached_key(slot=2), root_subject(), 365)

        self.assertNotEqual(new_root, self.root)
        self.assertEqual(self.authority.certificate, new_root)
        self.assertEqual(self.authority.sign(self.new_csr(), 30).serial_number, 2)

    def test_rotation_invalidates_previous_leaves(self):
        leaf = self.authority.sign(self.new_csr(), 30)
        new_root = self.authority.rotate_root(cached_key(slot=2), root_subject(), 365)

        self.assertFalse(ChainValidator().verify(leaf, new_root).valid)


class TestSigning(AuthorityTestCase):
    """Test cases for RootAuthority.sign."""

    def test_scenario_rsa_root_and_leaf(self):
        authority = RootAuthority()
        root = authority.initialize_root(cached_key("rsa", 2048, slot=0), root_subject(), 365)
        self.assertEqual(root.issuer, root.subject)
        self.assertTrue(_basic_constraints(root).ca)

        csr = self.builder.build(cached_key("rsa", 2048, slot=1), Subject(common_name="test.local"))
        leaf = authority.sign(csr, 90)

        self.assertEqual(leaf.issuer, root.subject)
        self.assertFalse(_basic_constraints(leaf).ca)
        self.assertEqual(leaf.serial_number, 1)
        self.assertTrue(ChainValidator().verify(leaf, root).valid)

    def test_leaf_extensions(self):
        leaf = self.authority.sign(self.new_csr(), 90)

        san = leaf.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        self.assertEqual(san.get_values_for_type(x509.DNSName), ["test.local"])
        eku = leaf.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        self.assertIn(x509.oid.ExtendedKeyUsageOID.SERVER_AUTH, list(eku))

    def test_leaf_outliving_root_rejected(self):
        csr = self.new_csr()
        with self.assertRaises(ValidityWindowError):
            self.authority.sign(csr, 400)

        self.assertEqual(self.authority.serial, 0)
        self.assertFalse(csr.consumed)

    def test_zero_days_rejected(self):
        with self.assertRaises(ClockSkewError):
            self.authority.sign(self.new_csr(), 0)

    def test_serials_strictly_increase(self):
        serials = [self.authority.sign(self.new_csr(), 30).serial_number for _ in range(5)]
        self.assertEqual(serials, [1, 2, 3, 4, 5])

    def test_concurrent_signing_never_collides(self):
        serials = []
        errors = []
        lock = threading.Lock()
        csrs = [self.new_csr(f"host{i}.test.local") for i in range(16)]

        def worker(csr):
            try:
                cert = self.authority.sign(csr, 30)
            except Exception as e:
                errors.append(e)
                return
            with lock:
                serials.append(cert.serial_number)

        threads = [threading.Thread(target=worker, args=(csr,)) for csr in csrs]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertEqual(sorted(serials), list(range(1, 17)))
        self.assertEqual(self.authority.serial, 16)

    def test_request_consumed_once(self):
        csr = self.new_csr()
        self.authority.sign(csr, 30)

        self.assertTrue(csr.consumed)
        with self.assertRaises(RequestConsumedError):
            self.authority.sign(csr, 30)
        self.assertEqual(self.authority.serial, 1)

    def test_weak_request_key_rejected(self):
        csr = self.builder.build(weak_rsa_key(), leaf_subject())
        with self.assertRaises(WeakParameterError):
            self.authority.sign(csr, 30)

    def test_sign_without_root(self):
        with self.assertRaises(RootNotInitializedError):
            RootAuthority().sign(self.new_csr(), 30)

    def test_expired_root(self):
        state = AuthorityState(key_pair=self.root_key, certificate=expired_root_certificate(self.root_key))
        authority = RootAuthority(state=state)

        with self.assertRaises(ExpiredAuthorityError):
            authority.sign(self.new_csr(), 1)
        self.assertEqual(state.serial, 0)

    def test_serial_exhausted(self):
        state = AuthorityState(key_pair=self.root_key, certificate=self.root, serial=config.MAX_SERIAL)
        authority = RootAuthority(state=state)
        csr = self.new_csr()

        with self.assertRaises(SerialExhaustedError):
            authority.sign(csr, 30)
        self.assertEqual(state.serial, config.MAX_SERIAL)
        self.assertFalse(csr.consumed)

    def test_check_validity(self):
        self.authority.check_validity(30)
        with self.assertRaises(ValidityWindowError):
            self.authority.check_validity(400)
        with self.assertRaises(ClockSkewError):
            self.authority.check_validity(0)
        with self.assertRaises(RootNotInitializedError):
            RootAuthority().check_validity(30)
        self.assertEqual(self.authority.serial, 0)

    def test_leaf_never_outlives_root(self):
        rng = random.Random(1234)
        for _ in range(40):
            days = rng.randint(1, 800)
            try:
                leaf = self.authority.sign(self.new_csr(), days)
            except ValidityWindowError:
                self.assertGreaterEqual(days, 365)
                continue
            self.assertLessEqual(leaf.not_valid_after_utc, self.root.not_valid_after_utc)


class TestPersistentAuthority(unittest.TestCase):
    """Test cases for an authority backed by a MaterialStore."""

    def setUp(self):
        utils.set_quiet(True)
        self.tmp = tempfile.TemporaryDirectory()
        self.store = MaterialStore(Path(self.tmp.name))
        self.builder = CertificateRequestBuilder()
        self.authority = RootAuthority(store=self.store)
        self.authority.initialize_root(cached_key(slot=0), root_subject(), 365)

    def tearDown(self):
        self.tmp.cleanup()

    def new_csr(self):
        return self.builder.build(cached_key(slot=1), leaf_subject())

    def test_root_material_persisted(self):
        self.assertEqual(self.store.load(ArtifactRole.ROOT_KEY), cached_key(slot=0))
        self.assertEqual(self.store.load(ArtifactRole.ROOT_CERT), self.authority.certificate)
        self.assertEqual(self.store.read_serial(), 0)

    def test_serial_survives_reload(self):
        self.authority.sign(self.new_csr(), 30)
        self.authority.sign(self.new_csr(), 30)

        reloaded = RootAuthority.load(self.store)
        self.assertEqual(reloaded.serial, 2)
        self.assertEqual(reloaded.sign(self.new_csr(), 30).serial_number, 3)

    def test_existing_root_on_disk_blocks_new_key(self):
        fresh = RootAuthority(store=self.store)
        with self.assertRaises(RootAlreadyInitializedError):
            fresh.initialize_root(cached_key(slot=2), root_subject(), 365)

    def test_failed_serial_write_leaves_counter(self):
        csr = self.new_csr()
        with patch.object(self.store, "write_serial", side_effect=StorageError("disk full")):
            with self.assertRaises(StorageError):
                self.authority.sign(csr, 30)

        self.assertEqual(self.authority.serial, 0)
        self.assertFalse(csr.consumed)
        self.assertEqual(self.authority.sign(csr, 30).serial_number, 1)

    def test_load_without_root(self):
        empty = MaterialStore(Path(self.tmp.name) / "empty")
        with self.assertRaises(RootNotInitializedError):
            RootAuthority.load(empty)

    def test_load_with_mismatched_key(self):
        self.store.save(ArtifactRole.ROOT_KEY, cached_key(slot=2))
        with self.assertRaises(AuthorityStateError):
            RootAuthority.load(self.store)

    def test_interrupted_rotation_keeps_previous_root(self):
        old_root = self.authority.certificate
        original_save = self.store.save

        def failing_save(role, material):
            if role == ArtifactRole.ROOT_CERT:
                raise StorageError("disk full")
            return original_save(role, material)

        with patch.object(self.store, "save", side_effect=failing_save):
            with self.assertRaises(StorageError):
                self.authority.rotate_root(cached_key(slot=2), root_subject(), 365)

        self.assertEqual(self.authority.certificate, old_root)
        reloaded = RootAuthority.load(self.store)
        self.assertEqual(reloaded.certificate, old_root)
        self.assertEqual(self.store.load(ArtifactRole.ROOT_KEY), cached_key(slot=0))


class TestAuthorityRegistry(unittest.TestCase):
    """Test cases for an authority whose registry becomes unavailable."""

    def setUp(self):
        utils.set_quiet(True)
        self.tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self.tmp.name)
        self.store = MaterialStore(self.directory)
        self.registry = IssuanceRegistry.for_directory(self.directory)
        self.authority = RootAuthority(store=self.store, registry=self.registry)
        self.authority.initialize_root(cached_key(slot=0), root_subject(), 365)

    def tearDown(self):
        self.tmp.cleanup()

    def break_registry(self):
        self.registry.db_path.unlink()
        self.registry.db_path.mkdir()

    def test_issued_certificate_survives_registry_failure(self):
        self.break_registry()
        csr = CertificateRequestBuilder().build(cached_key(slot=1), leaf_subject())

        leaf = self.authority.sign(csr, 30)

        self.assertEqual(leaf.serial_number, 1)
        self.assertEqual(self.store.read_serial(), 1)
        self.assertTrue(csr.consumed)

    def test_rotation_survives_registry_failure(self):
        self.break_registry()
        new_root = self.authority.rotate_root(cached_key(slot=2), root_subject(), 365)
        self.assertEqual(RootAuthority.load(self.store).certificate, new_root)


if __name__ == '__main__':
    unittest.main()
