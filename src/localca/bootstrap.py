"""
Workflow complet: Root CA + certificat serveur
Équivalent de test/make_keys.sh, sans openssl
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography import x509

from . import config, utils
from .exceptions import ClockSkewError, ValidityWindowError
from .authority import RootAuthority
from .csr import CertificateRequestBuilder
from .keygen import KeyGenerator
from .models import ArtifactRole, KeyPair, Subject, CertificateSigningRequest, ValidationResult
from .registry import IssuanceRegistry
from .store import MaterialStore
from .validator import ChainValidator


@dataclass
class BootstrapResult:
    """Artefacts produits par bootstrap()"""
    root_certificate: x509.Certificate
    leaf_key: KeyPair
    leaf_csr: CertificateSigningRequest
    leaf_certificate: x509.Certificate
    validation: ValidationResult
    directory: Path


def bootstrap(
        store: MaterialStore,
        root_subject: Subject,
        leaf_subject: Subject,
        root_days: int = config.VALIDITY_PERIODS["root_ca"],
        leaf_days: int = config.VALIDITY_PERIODS["server"],
        algorithm: str = config.DEFAULT_ALGORITHM,
        strength: int = config.DEFAULT_KEY_STRENGTH,
        registry: Optional[IssuanceRegistry] = None,
        show_progress: bool = False
) -> BootstrapResult:
    """
    Monte une racine locale et émet le certificat serveur

    Étapes: clé racine -> certificat racine -> clé serveur -> CSR ->
    signature -> persistance -> vérification. Si une racine existe déjà dans
    le store, elle est réutilisée (jamais remplacée).

    Args:
        store: Stockage des artefacts
        root_subject: Sujet de la racine
        leaf_subject: Sujet du certificat serveur
        root_days: Validité de la racine (jours)
        leaf_days: Validité du certificat serveur (jours)
        algorithm: "rsa" ou "ec"
        strength: Robustesse des clés
        registry: Registre d'émission (optionnel)
        show_progress: Barres de progression tqdm

    Returns:
        BootstrapResult: Artefacts produits et rapport de validation

    Raises:
        ParameterError: Paramètre invalide (vérifié avant toute écriture)
        ValidationError: Si la chaîne produite ne se vérifie pas
    """
    key_gen = KeyGenerator()
    builder = CertificateRequestBuilder()
    # Paramètres validés avant toute génération ou écriture
    key_gen.check_strength(algorithm, strength)
    builder.validate_subject(root_subject)
    builder.validate_subject(leaf_subject)
    for days in (root_days, leaf_days):
        if days <= 0:
            raise ClockSkewError(f"Durée de validité invalide: {days} jours")

    reuse_root = store.exists(ArtifactRole.ROOT_CERT)
    if reuse_root:
        authority = RootAuthority.load(store, registry=registry)
        authority.check_validity(leaf_days)
    elif leaf_days > root_days:
        raise ValidityWindowError(
            f"Validité serveur ({leaf_days} jours) au-delà de celle de la Root CA ({root_days} jours)"
        )

    # Étape 1: Root CA
    utils.print_header(f"{config.CLI_SYMBOLS['root']} Étape 1/4 : Root CA")
    if reuse_root:
        root_certificate = authority.certificate
        utils.print_info("Root CA existante réutilisée")
    else:
        authority = RootAuthority(store=store, registry=registry)
        root_key = key_gen.generate(algorithm, strength, show_progress=show_progress)
        root_certificate = authority.initialize_root(root_key, root_subject, root_days)

    # Étape 2: clé et CSR serveur (en mémoire jusqu'à la signature)
    utils.print_header(f"{config.CLI_SYMBOLS['csr']} Étape 2/4 : Clé et CSR serveur")
    leaf_key = key_gen.generate(algorithm, strength, show_progress=show_progress)
    leaf_csr = builder.build(leaf_key, leaf_subject)

    # Étape 3: signature, puis publication des artefacts serveur
    utils.print_header(f"{config.CLI_SYMBOLS['server']} Étape 3/4 : Signature")
    leaf_certificate = authority.sign(leaf_csr, leaf_days)
    store.save(ArtifactRole.LEAF_KEY, leaf_key)
    store.save(ArtifactRole.LEAF_CSR, leaf_csr)
    store.save(ArtifactRole.LEAF_CERT, leaf_certificate)
    utils.display_cert_info(leaf_certificate)

    # Étape 4: vérification côté client
    utils.print_header(f"{config.CLI_SYMBOLS['verify']} Étape 4/4 : Vérification")
    validator = ChainValidator()
    validation = validator.verify(leaf_certificate, root_certificate)
    validator.display_report(validation)
    validation.raise_for_failure()

    return BootstrapResult(
        root_certificate=root_certificate,
        leaf_key=leaf_key,
        leaf_csr=leaf_csr,
        leaf_certificate=leaf_certificate,
        validation=validation,
        directory=store.directory
    )


__all__ = ['BootstrapResult', 'bootstrap']
