"""
Root CA (Certificate Authority)
Crée la racine auto-signée et signe les certificats serveur
"""

import threading
from datetime import timedelta, datetime
from typing import Optional

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID
from cryptography.hazmat.primitives import serialization

from . import config, utils
from .csr import CertificateRequestBuilder
from .exceptions import (
    AuthorityStateError,
    ClockSkewError,
    ExpiredAuthorityError,
    RequestConsumedError,
    RootAlreadyInitializedError,
    RootNotInitializedError,
    SerialExhaustedError,
    StorageError,
    ValidityWindowError,
)
from .keygen import KeyGenerator, describe_public_key, signature_hash_for
from .models import ArtifactRole, AuthorityState, CertificateSigningRequest, KeyPair, Subject
from .registry import IssuanceRegistry
from .store import MaterialStore


def _check_validity_days(validity_days: int) -> None:
    if validity_days <= 0:
        raise ClockSkewError(f"Durée de validité invalide: {validity_days} jours")


class RootAuthority:
    """
    Autorité racine unique

    Possède exclusivement son AuthorityState (clé, certificat, compteur de
    série). Toutes les opérations qui touchent l'état sont sérialisées par un
    verrou: deux signatures concurrentes attendent leur tour.
    """

    def __init__(
            self,
            store: Optional[MaterialStore] = None,
            registry: Optional[IssuanceRegistry] = None,
            state: Optional[AuthorityState] = None
    ):
        """
        Args:
            store: Stockage des artefacts (optionnel, sinon tout reste en mémoire)
            registry: Registre d'émission (optionnel)
            state: État déjà chargé
        """
        self.store = store
        self.registry = registry
        self._state = state
        self._lock = threading.Lock()
        self._subject_policy = CertificateRequestBuilder()
        self._key_policy = KeyGenerator()

    @classmethod
    def load(cls, store: MaterialStore, registry: Optional[IssuanceRegistry] = None) -> "RootAuthority":
        """
        Restaure l'autorité depuis rootCA.key, rootCA.crt et rootCA.srl

        Raises:
            RootNotInitializedError: Aucune racine dans le store
        """
        state = cls._read_state(store)
        if state is None:
            raise RootNotInitializedError(f"Aucune Root CA dans {store.directory}")
        utils.print_success(f"Root CA chargée (dernier N° série: {state.serial})")
        return cls(store=store, registry=registry, state=state)

    @staticmethod
    def _read_state(store: MaterialStore) -> Optional[AuthorityState]:
        if not store.exists(ArtifactRole.ROOT_CERT):
            return None
        if not store.exists(ArtifactRole.ROOT_KEY):
            raise AuthorityStateError(
                f"Certificat racine présent sans sa clé privée: {store.path_for(ArtifactRole.ROOT_CERT)}"
            )

        certificate = store.load(ArtifactRole.ROOT_CERT)
        key_pair = store.load(ArtifactRole.ROOT_KEY)
        if certificate.public_key().public_bytes(
                serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        ) != key_pair.public_der():
            raise AuthorityStateError("La clé racine ne correspond pas au certificat racine")

        return AuthorityState(key_pair=key_pair, certificate=certificate, serial=store.read_serial())

    # ============================================
    # 🔎 ÉTAT
    # ============================================

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> AuthorityState:
        if self._state is None:
            raise RootNotInitializedError("Root CA non initialisée")
        return self._state

    @property
    def certificate(self) -> x509.Certificate:
        return self.state.certificate

    @property
    def subject(self) -> x509.Name:
        return self.state.certificate.subject

    @property
    def serial(self) -> int:
        """Dernier numéro de série émis (0 si aucun)"""
        return self.state.serial

    def _current_state(self) -> Optional[AuthorityState]:
        if self._state is None and self.store is not None:
            self._state = self._read_state(self.store)
        return self._state

    # ============================================
    # 👑 CRÉATION ROOT CA
    # ============================================

    def initialize_root(self, key_pair: KeyPair, subject: Subject, validity_days: int) -> x509.Certificate:
        """
        Crée le certificat racine auto-signé

        Un second appel avec la même paire de clés renvoie la racine existante.
        Avec une autre paire, l'appel échoue: le remplacement passe
        obligatoirement par rotate_root().

        Args:
            key_pair: Paire de clés racine
            subject: Sujet (= émetteur) de la racine
            validity_days: Durée de validité en jours

        Returns:
            x509.Certificate: Certificat racine

        Raises:
            ClockSkewError: validity_days <= 0
            InvalidSubjectError: Sujet refusé
            RootAlreadyInitializedError: Une autre racine existe déjà
        """
        _check_validity_days(validity_days)
        self._subject_policy.validate_subject(subject)

        with self._lock:
            existing = self._current_state()
            if existing is not None:
                if existing.key_pair == key_pair:
                    utils.print_info("Root CA déjà initialisée avec cette clé")
                    return existing.certificate
                raise RootAlreadyInitializedError(
                    "Une Root CA existe déjà avec une autre clé; utilisez rotate_root()"
                )

            serial = self.store.read_serial() if self.store is not None else 0
            state = self._install_root(key_pair, subject, validity_days, serial)

        utils.print_success("✨ Root CA créée avec succès!")
        self._audit("ROOT_INITIALIZED", state.certificate)
        return state.certificate

    def rotate_root(self, key_pair: KeyPair, subject: Subject, validity_days: int) -> x509.Certificate:
        """
        Remplace explicitement la racine

        Tous les certificats émis par l'ancienne racine deviennent invalides.
        Le compteur de série est conservé (jamais réutilisé, jamais décrémenté).

        Returns:
            x509.Certificate: Nouveau certificat racine
        """
        _check_validity_days(validity_days)
        self._subject_policy.validate_subject(subject)

        with self._lock:
            previous = self._current_state()
            if previous is not None:
                serial = previous.serial
            else:
                serial = self.store.read_serial() if self.store is not None else 0
            state = self._install_root(key_pair, subject, validity_days, serial, previous)

        if previous is not None:
            old_fingerprint = utils.calculate_fingerprint(previous.certificate)
            utils.print_warning(
                f"Root CA remplacée: tous les certificats émis par {old_fingerprint[:23]}... sont invalides"
            )
            self._audit("ROOT_ROTATED", state.certificate, f"Ancienne racine: {old_fingerprint}")
        else:
            self._audit("ROOT_INITIALIZED", state.certificate)
        return state.certificate

    def _install_root(
            self,
            key_pair: KeyPair,
            subject: Subject,
            validity_days: int,
            serial: int,
            previous: Optional[AuthorityState] = None
    ) -> AuthorityState:
        """
        Construit et persiste la racine

        Si l'écriture du certificat échoue après celle de la clé, la clé
        précédente est remise en place pour que rootCA.key et rootCA.crt
        restent appariés.
        """
        certificate = self._build_root_certificate(key_pair, subject, validity_days)
        state = AuthorityState(key_pair=key_pair, certificate=certificate, serial=serial)

        if self.store is not None:
            self.store.save(ArtifactRole.ROOT_KEY, key_pair)
            try:
                self.store.save(ArtifactRole.ROOT_CERT, certificate)
            except StorageError:
                if previous is not None:
                    self.store.save(ArtifactRole.ROOT_KEY, previous.key_pair)
                raise
            self.store.write_serial(serial)

        self._state = state
        return state

    def _build_root_certificate(self, key_pair: KeyPair, subject: Subject, validity_days: int) -> x509.Certificate:
        """
        Construit un certificat X.509v3 auto-signé

        Extensions: BasicConstraints CA=TRUE pathLength=0 (pas d'intermédiaire),
        KeyUsage keyCertSign + cRLSign, SKI, AKI
        """
        name = subject.to_x509_name()
        public_key = key_pair.public_key
        not_before = utils.now_utc()
        not_after = not_before + timedelta(days=validity_days)

        cert_builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(public_key)
            .serial_number(utils.generate_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=0),
                critical=True
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=False,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False
                ),
                critical=True
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key),
                critical=False
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(public_key),
                critical=False
            )
        )

        certificate = cert_builder.sign(key_pair.private_key, signature_hash_for(key_pair.private_key))
        utils.print_success(f"Certificat racine construit (SN: {certificate.serial_number:X})")
        return certificate

    # ============================================
    # 📜 SIGNATURE DES CERTIFICATS SERVEUR
    # ============================================

    def sign(self, csr: CertificateSigningRequest, validity_days: int) -> x509.Certificate:
        """
        Émet un certificat serveur à partir d'un CSR

        Le numéro de série suit strictement le précédent. Il n'est engagé
        (fichier de série écrit, compteur avancé) qu'une fois le certificat
        signé: tout échec laisse le compteur intact.

        Args:
            csr: Demande à signer (consommée par cet appel)
            validity_days: Durée de validité en jours

        Returns:
            x509.Certificate: Certificat serveur

        Raises:
            ClockSkewError: validity_days <= 0
            RequestConsumedError: CSR déjà signé
            WeakParameterError: Clé du CSR sous le seuil
            RootNotInitializedError: Pas de racine
            ExpiredAuthorityError: Racine hors de sa période de validité
            ValidityWindowError: Le certificat survivrait à la racine
            SerialExhaustedError: Compteur de série épuisé
        """
        _check_validity_days(validity_days)
        self._key_policy.check_strength(*describe_public_key(csr.public_key))

        with self._lock:
            if csr.consumed:
                raise RequestConsumedError(f"CSR déjà signé: {csr.subject.common_name}")

            state = self._current_state()
            if state is None:
                raise RootNotInitializedError("Root CA non initialisée")

            now = utils.now_utc()
            not_after = self._check_signing_window(state.certificate, now, validity_days)

            serial = state.serial + 1
            if serial > config.MAX_SERIAL:
                raise SerialExhaustedError("Plus aucun numéro de série disponible")

            certificate = self._build_leaf_certificate(csr, state, serial, now, not_after)

            if self.store is not None:
                self.store.write_serial(serial)
            state.serial = serial
            csr.consumed = True

        utils.print_success(f"Certificat signé par la Root CA (SN: {serial:X})")
        self._audit("CERTIFICATE_ISSUED", certificate, kind="server")
        return certificate

    def check_validity(self, validity_days: int) -> None:
        """
        Vérifie, sans rien émettre, qu'une signature de validity_days jours
        serait acceptée maintenant

        Raises:
            ClockSkewError: validity_days <= 0
            RootNotInitializedError: Pas de racine
            ExpiredAuthorityError: Racine hors de sa période de validité
            ValidityWindowError: Le certificat survivrait à la racine
        """
        _check_validity_days(validity_days)
        with self._lock:
            state = self._current_state()
            if state is None:
                raise RootNotInitializedError("Root CA non initialisée")
            self._check_signing_window(state.certificate, utils.now_utc(), validity_days)

    @classmethod
    def _check_signing_window(cls, root: x509.Certificate, now: datetime, validity_days: int) -> datetime:
        cls._check_authority_window(root, now)
        not_after = now + timedelta(days=validity_days)
        if not_after > root.not_valid_after_utc:
            raise ValidityWindowError(
                f"Validité demandée ({validity_days} jours, jusqu'au {not_after:%Y-%m-%d}) "
                f"au-delà de celle de la Root CA ({root.not_valid_after_utc:%Y-%m-%d})"
            )
        return not_after

    @staticmethod
    def _check_authority_window(root: x509.Certificate, now: datetime) -> None:
        if now < root.not_valid_before_utc:
            raise ExpiredAuthorityError(
                f"Root CA pas encore valide (à partir du {root.not_valid_before_utc:%Y-%m-%d %H:%M:%S})"
            )
        if now > root.not_valid_after_utc:
            raise ExpiredAuthorityError(
                f"Root CA expirée depuis le {root.not_valid_after_utc:%Y-%m-%d %H:%M:%S}"
            )

    def _build_leaf_certificate(
            self,
            csr: CertificateSigningRequest,
            state: AuthorityState,
            serial: int,
            not_before: datetime,
            not_after: datetime
    ) -> x509.Certificate:
        """Construit et signe le certificat serveur (extensions de v3.ext)"""
        root_public_key = state.certificate.public_key()
        algorithm, _ = describe_public_key(csr.public_key)

        cert_builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject.to_x509_name())
            .issuer_name(state.certificate.subject)
            .public_key(csr.public_key)
            .serial_number(serial)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=algorithm == "rsa",
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False
                ),
                critical=True
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(csr.public_key),
                critical=False
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(root_public_key),
                critical=False
            )
        )

        if csr.subject.dns_names:
            cert_builder = cert_builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName(name) for name in csr.subject.dns_names]),
                critical=False
            )

        private_key = state.key_pair.private_key
        return cert_builder.sign(private_key, signature_hash_for(private_key))

    # ============================================
    # 📊 AUDIT
    # ============================================

    def _audit(self, action: str, certificate: x509.Certificate, details: Optional[str] = None,
               kind: str = "root_ca") -> None:
        """
        Journalise l'action dans le registre

        Le certificat est déjà émis et persisté: un registre indisponible
        est signalé mais ne fait pas échouer l'opération.
        """
        if self.registry is None:
            return
        try:
            # record_certificate journalise déjà CERTIFICATE_ISSUED
            self.registry.record_certificate(certificate, kind)
            if action != "CERTIFICATE_ISSUED":
                self.registry.add_audit_log(
                    action=action,
                    entity_id=f"{certificate.serial_number:X}",
                    details=details or certificate.subject.rfc4514_string()
                )
        except StorageError as e:
            utils.print_warning(f"{action} non journalisé (SN: {certificate.serial_number:X}): {e}")


__all__ = ['RootAuthority']
