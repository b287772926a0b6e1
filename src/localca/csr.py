"""
Construction des demandes de certificat (CSR)
Lie la clé publique d'une KeyPair à un sujet validé
"""

import re

from cryptography import x509
from cryptography.x509.oid import NameOID

from . import utils
from .exceptions import InvalidSubjectError
from .keygen import signature_hash_for
from .models import KeyPair, Subject, CertificateSigningRequest

# Étiquettes DNS (joker autorisé en tête)
_DNS_LABEL = re.compile(r"^(\*|[A-Za-z0-9_]([A-Za-z0-9_-]{0,61}[A-Za-z0-9_])?)$")


class CertificateRequestBuilder:
    """
    Construit un CSR à partir d'une paire de clés et d'un sujet
    """

    def __init__(self, require_organization: bool = False, require_country: bool = False):
        """
        Args:
            require_organization: Rendre le champ O obligatoire
            require_country: Rendre le champ C obligatoire
        """
        self.require_organization = require_organization
        self.require_country = require_country

    # ============================================
    # 🔍 VALIDATION DU SUJET
    # ============================================

    def validate_subject(self, subject: Subject) -> None:
        """
        Vérifie le sujet selon la politique de nommage

        Raises:
            InvalidSubjectError: Champ requis manquant ou malformé
        """
        if not subject.common_name or not subject.common_name.strip():
            raise InvalidSubjectError("Champ requis manquant dans le DN: common_name")

        if self.require_organization and not subject.organization:
            raise InvalidSubjectError("Champ requis manquant dans le DN: organization")

        if self.require_country and not subject.country:
            raise InvalidSubjectError("Champ requis manquant dans le DN: country")

        for field_name in ("organization", "country", "organizational_unit",
                           "state", "locality", "email"):
            value = getattr(subject, field_name)
            if value is not None and not value.strip():
                raise InvalidSubjectError(f"Le champ '{field_name}' ne peut pas être vide")

        # Code pays ISO 3166-1 alpha-2
        if subject.country is not None and not (
                len(subject.country) == 2 and subject.country.isalpha()
        ):
            raise InvalidSubjectError(
                "Le code pays doit contenir exactement 2 lettres (ISO 3166-1 alpha-2)"
            )

        for name in subject.dns_names:
            if not self._is_dns_name(name):
                raise InvalidSubjectError(f"Nom DNS invalide: {name!r}")

    @staticmethod
    def _is_dns_name(name: str) -> bool:
        if not name or len(name) > 253:
            return False
        labels = name.rstrip(".").split(".")
        return all(_DNS_LABEL.match(label) for label in labels) and "*" not in labels[1:]

    def requested_dns_names(self, subject: Subject) -> list:
        """Noms DNS demandés: ceux du sujet, plus le CN s'il ressemble à un nom d'hôte"""
        names = list(subject.dns_names)
        if subject.common_name not in names and self._is_dns_name(subject.common_name):
            names.insert(0, subject.common_name)
        return names

    # ============================================
    # 📝 CONSTRUCTION
    # ============================================

    def build(self, key_pair: KeyPair, subject: Subject) -> CertificateSigningRequest:
        """
        Construit un CSR

        Seule la clé publique est liée à la demande; la clé privée sert
        uniquement à l'auto-signature PKCS#10 et n'est pas conservée.

        Args:
            key_pair: Paire de clés du demandeur
            subject: Identité à lier

        Returns:
            CertificateSigningRequest: Demande prête à être signée
        """
        self.validate_subject(subject)

        builder = x509.CertificateSigningRequestBuilder().subject_name(subject.to_x509_name())

        dns_names = self.requested_dns_names(subject)
        if dns_names:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
                critical=False
            )

        try:
            request = builder.sign(key_pair.private_key, signature_hash_for(key_pair.private_key))
        except ValueError as e:
            raise InvalidSubjectError(f"Sujet refusé: {e}") from e

        cn = request.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
        utils.print_success(f"CSR créé pour {cn}")

        return CertificateSigningRequest(
            subject=Subject(
                common_name=subject.common_name,
                organization=subject.organization,
                country=subject.country,
                organizational_unit=subject.organizational_unit,
                state=subject.state,
                locality=subject.locality,
                email=subject.email,
                dns_names=tuple(dns_names)
            ),
            public_key=key_pair.public_key,
            extensions=list(request.extensions),
            request=request
        )


__all__ = ['CertificateRequestBuilder']
