"""
Shared fixtures for the localca test suite.
"""
from datetime import datetime, timezone, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa

from localca.keygen import KeyGenerator, key_pair_from_private_key
from localca.models import Subject

_KEY_CACHE = {}


def cached_key(algorithm="ec", strength=256, slot=0):
    """Generate a key pair once per (algorithm, strength, slot)."""
    cache_key = (algorithm, strength, slot)
    if cache_key not in _KEY_CACHE:
        _KEY_CACHE[cache_key] = KeyGenerator().generate(algorithm, strength)
    return _KEY_CACHE[cache_key]


def weak_rsa_key():
    """A 1024-bit RSA key, built directly since KeyGenerator refuses it."""
    if "weak" not in _KEY_CACHE:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=1024)
        _KEY_CACHE["weak"] = key_pair_from_private_key(private_key)
    return _KEY_CACHE["weak"]


def root_subject(common_name="Test Root CA"):
    return Subject(common_name=common_name, organization="localca tests", country="US")


def leaf_subject(common_name="test.local", dns_names=()):
    return Subject(common_name=common_name, organization="localca tests", country="US",
                   dns_names=tuple(dns_names))


def make_certificate(signing_key, subject_name, issuer_name, public_key,
                     not_before, not_after, ca=False, serial=1):
    """Build an arbitrary certificate for validator edge cases."""
    return (
        x509.CertificateBuilder()
        .subject_name(subject_name)
        .issuer_name(issuer_name)
        .public_key(public_key)
        .serial_number(serial)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(signing_key.private_key, hashes.SHA256())
    )


def expired_root_certificate(key_pair, subject=None):
    """Self-signed CA certificate whose window ended yesterday."""
    name = (subject or root_subject()).to_x509_name()
    now = datetime.now(timezone.utc)
    return make_certificate(
        key_pair, name, name, key_pair.public_key,
        not_before=now - timedelta(days=30),
        not_after=now - timedelta(days=1),
        ca=True
    )
