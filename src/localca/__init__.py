"""
localca - Autorité de certification locale
===========================================

Monte une racine de confiance pour un serveur de test TLS:
- Génération de clés RSA et ECC
- CSR et certificat serveur signé par la Root CA
- Vérification de chaîne racine -> serveur
- Persistance atomique (rootCA.key, rootCA.crt, server.key, server.csr, server.crt)

Modules principaux:
- config: Configuration globale
- keygen: Génération de clés
- csr: Construction des CSR
- authority: Root CA et signature
- validator: Validation de chaîne
- store: Persistance des artefacts
- registry: Registre d'émission SQLite
"""

__version__ = "1.0.0"

from . import config
from . import utils
from .exceptions import *  # noqa: F401,F403
from .models import (
    ArtifactRole,
    KeyPair,
    Subject,
    CertificateSigningRequest,
    AuthorityState,
    ValidationFailure,
    ValidationResult,
)
from .keygen import KeyGenerator, keygen
from .csr import CertificateRequestBuilder
from .store import MaterialStore
from .registry import IssuanceRegistry
from .authority import RootAuthority
from .validator import ChainValidator, chain_validator
from .bootstrap import BootstrapResult, bootstrap
from . import exceptions

__all__ = [
    'config',
    'utils',
    'exceptions',
    'ArtifactRole',
    'KeyPair',
    'Subject',
    'CertificateSigningRequest',
    'AuthorityState',
    'ValidationFailure',
    'ValidationResult',
    'KeyGenerator',
    'keygen',
    'CertificateRequestBuilder',
    'MaterialStore',
    'IssuanceRegistry',
    'RootAuthority',
    'ChainValidator',
    'chain_validator',
    'BootstrapResult',
    'bootstrap',
] + exceptions.__all__
