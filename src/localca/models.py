"""
Modèles de données de localca
Classes représentant les entités manipulées par l'autorité locale
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, List

from cryptography import x509
from cryptography.x509.oid import NameOID
from cryptography.hazmat.primitives import serialization

from . import exceptions


class ArtifactRole(str, Enum):
    """
    Rôles des artefacts persistés par le MaterialStore
    """
    ROOT_KEY = "root_key"
    ROOT_CERT = "root_cert"
    LEAF_KEY = "leaf_key"
    LEAF_CSR = "leaf_csr"
    LEAF_CERT = "leaf_cert"

    @property
    def is_private(self) -> bool:
        return self in (ArtifactRole.ROOT_KEY, ArtifactRole.LEAF_KEY)


@dataclass(eq=False)
class KeyPair:
    """
    Paire de clés asymétriques
    La clé privée n'apparaît jamais dans repr()
    """
    algorithm: str
    strength: int
    private_key: object = field(repr=False)
    public_key: object = field(repr=False)

    def private_der(self) -> bytes:
        """Sérialisation DER non chiffrée, pour comparaison uniquement"""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )

    def public_der(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )

    def __eq__(self, other):
        if not isinstance(other, KeyPair):
            return NotImplemented
        return (
                self.algorithm == other.algorithm
                and self.strength == other.strength
                and self.private_der() == other.private_der()
        )

    __hash__ = None


# Ordre des attributs dans le DN (comme openssl req)
_NAME_FIELDS = [
    ("country", NameOID.COUNTRY_NAME),
    ("state", NameOID.STATE_OR_PROVINCE_NAME),
    ("locality", NameOID.LOCALITY_NAME),
    ("organization", NameOID.ORGANIZATION_NAME),
    ("organizational_unit", NameOID.ORGANIZATIONAL_UNIT_NAME),
    ("common_name", NameOID.COMMON_NAME),
    ("email", NameOID.EMAIL_ADDRESS),
]


@dataclass(frozen=True)
class Subject:
    """
    Identité (Distinguished Name) liée à une clé publique
    """
    common_name: str
    organization: Optional[str] = None
    country: Optional[str] = None
    organizational_unit: Optional[str] = None
    state: Optional[str] = None
    locality: Optional[str] = None
    email: Optional[str] = None
    dns_names: Tuple[str, ...] = ()

    def to_x509_name(self) -> x509.Name:
        """Convertit le sujet en x509.Name (champs absents omis)"""
        attributes = []
        for attr_name, oid in _NAME_FIELDS:
            value = getattr(self, attr_name)
            if value:
                attributes.append(x509.NameAttribute(oid, value))
        return x509.Name(attributes)

    @classmethod
    def from_x509_name(cls, name: x509.Name, dns_names: Tuple[str, ...] = ()) -> "Subject":
        values = {}
        for attr_name, oid in _NAME_FIELDS:
            found = name.get_attributes_for_oid(oid)
            if found:
                values[attr_name] = found[0].value
        if "common_name" not in values:
            raise exceptions.InvalidSubjectError(
                f"Nom sans Common Name: {name.rfc4514_string()}"
            )
        return cls(dns_names=tuple(dns_names), **values)

    def to_string(self) -> str:
        """Convertit le DN en chaîne RFC4514"""
        return self.to_x509_name().rfc4514_string()


@dataclass(eq=False)
class CertificateSigningRequest:
    """
    Demande de certificat: sujet + clé publique + extensions demandées
    Consommée une seule fois par RootAuthority.sign
    """
    subject: Subject
    public_key: object = field(repr=False)
    request: x509.CertificateSigningRequest = field(repr=False)
    extensions: List[x509.Extension] = field(default_factory=list, repr=False)
    consumed: bool = False

    def to_pem(self) -> bytes:
        return self.request.public_bytes(serialization.Encoding.PEM)

    @classmethod
    def from_x509(cls, request: x509.CertificateSigningRequest) -> "CertificateSigningRequest":
        """
        Reconstruit une demande depuis un PKCS#10

        Raises:
            InvalidSubjectError: Si l'auto-signature du CSR est invalide
        """
        if not request.is_signature_valid:
            raise exceptions.InvalidSubjectError("Signature du CSR invalide")

        try:
            san = request.extensions.get_extension_for_class(x509.SubjectAlternativeName)
            dns_names = tuple(san.value.get_values_for_type(x509.DNSName))
        except x509.ExtensionNotFound:
            dns_names = ()

        return cls(
            subject=Subject.from_x509_name(request.subject, dns_names),
            public_key=request.public_key(),
            extensions=list(request.extensions),
            request=request
        )

    @classmethod
    def from_pem(cls, data: bytes) -> "CertificateSigningRequest":
        return cls.from_x509(x509.load_pem_x509_csr(data))

    def __eq__(self, other):
        if not isinstance(other, CertificateSigningRequest):
            return NotImplemented
        return (
                self.subject == other.subject
                and self.request.public_bytes(serialization.Encoding.DER)
                == other.request.public_bytes(serialization.Encoding.DER)
        )

    __hash__ = None


@dataclass
class AuthorityState:
    """
    État de l'autorité: clé racine, certificat racine, compteur de série
    """
    key_pair: KeyPair
    certificate: x509.Certificate
    serial: int = 0


class ValidationFailure(str, Enum):
    """Motifs d'échec de ChainValidator, dans l'ordre des vérifications"""
    SIGNATURE_MISMATCH = "signature_mismatch"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"
    ISSUER_MISMATCH = "issuer_mismatch"
    UNEXPECTED_CA_FLAG = "unexpected_ca_flag"

    @property
    def error_class(self):
        return {
            ValidationFailure.SIGNATURE_MISMATCH: exceptions.SignatureMismatchError,
            ValidationFailure.NOT_YET_VALID: exceptions.NotYetValidError,
            ValidationFailure.EXPIRED: exceptions.ExpiredCertificateError,
            ValidationFailure.ISSUER_MISMATCH: exceptions.IssuerMismatchError,
            ValidationFailure.UNEXPECTED_CA_FLAG: exceptions.UnexpectedCAFlagError,
        }[self]


@dataclass
class ValidationResult:
    """
    Rapport de ChainValidator.verify
    checks: liste (nom, résultat, détails) dans l'ordre d'exécution
    """
    at_time: datetime
    failures: List[ValidationFailure] = field(default_factory=list)
    checks: List[Tuple[str, bool, str]] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.failures

    def __bool__(self) -> bool:
        return self.valid

    def raise_for_failure(self) -> None:
        """Lève l'erreur correspondant au premier échec"""
        if self.failures:
            failure = self.failures[0]
            details = next((d for _, ok, d in self.checks if not ok), failure.value)
            raise failure.error_class(details)


__all__ = [
    'ArtifactRole',
    'KeyPair',
    'Subject',
    'CertificateSigningRequest',
    'AuthorityState',
    'ValidationFailure',
    'ValidationResult'
]
