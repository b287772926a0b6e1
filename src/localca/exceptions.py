"""
Exceptions de localca
Chaque famille d'erreur porte son propre code de sortie CLI
"""

from . import config


class LocalCAError(Exception):
    """Erreur de base de localca"""

    exit_code = config.EXIT_CODES["unexpected"]


# ============================================
# ⚙️ PARAMÈTRES
# ============================================

class ParameterError(LocalCAError):
    """Paramètre invalide (taille de clé, fenêtre de validité...)"""

    exit_code = config.EXIT_CODES["parameter"]


class WeakParameterError(ParameterError):
    """Robustesse de clé inférieure au seuil configuré"""


class UnsupportedAlgorithmError(ParameterError):
    """Algorithme ou taille de clé non supporté"""


class ClockSkewError(ParameterError):
    """Durée de validité nulle ou négative"""


class ValidityWindowError(ParameterError):
    """La validité demandée dépasse celle de l'autorité émettrice"""


class RequestConsumedError(ParameterError):
    """Le CSR a déjà été signé"""


# ============================================
# 🪪 SUJET
# ============================================

class SubjectError(LocalCAError):
    """Champs d'identité invalides"""

    exit_code = config.EXIT_CODES["subject"]


class InvalidSubjectError(SubjectError):
    """Sujet refusé par la politique de nommage"""


# ============================================
# 👑 AUTORITÉ
# ============================================

class AuthorityStateError(LocalCAError):
    """État de l'autorité incompatible avec l'opération"""

    exit_code = config.EXIT_CODES["authority"]


class RootNotInitializedError(AuthorityStateError):
    """Aucune Root CA n'a été initialisée"""


class RootAlreadyInitializedError(AuthorityStateError):
    """Une Root CA différente existe déjà (utiliser rotate_root)"""


class ExpiredAuthorityError(AuthorityStateError):
    """La Root CA est hors de sa période de validité"""


class SerialExhaustedError(AuthorityStateError):
    """Plus aucun numéro de série disponible"""


# ============================================
# 🔍 VALIDATION
# ============================================

class ValidationError(LocalCAError):
    """Échec de validation de chaîne"""

    exit_code = config.EXIT_CODES["validation"]


class SignatureMismatchError(ValidationError):
    """La signature ne correspond pas à la clé de la Root CA"""


class ExpiredCertificateError(ValidationError):
    """Certificat expiré"""


class NotYetValidError(ValidationError):
    """Certificat pas encore valide"""


class IssuerMismatchError(ValidationError):
    """L'émetteur ne correspond pas au sujet de la Root CA"""


class UnexpectedCAFlagError(ValidationError):
    """Certificat final portant CA=TRUE"""


# ============================================
# 💾 STOCKAGE
# ============================================

class StorageError(LocalCAError):
    """Erreur de persistance"""

    exit_code = config.EXIT_CODES["storage"]


class StoragePermissionError(StorageError, PermissionError):
    """Impossible de garantir un accès réservé au propriétaire"""


class ArtifactNotFoundError(StorageError, FileNotFoundError):
    """Artefact jamais sauvegardé"""


class CorruptArtifactError(StorageError):
    """Contenu illisible (écriture partielle ou fichier altéré)"""


__all__ = [
    'LocalCAError',
    'ParameterError', 'WeakParameterError', 'UnsupportedAlgorithmError',
    'ClockSkewError', 'ValidityWindowError', 'RequestConsumedError',
    'SubjectError', 'InvalidSubjectError',
    'AuthorityStateError', 'RootNotInitializedError', 'RootAlreadyInitializedError',
    'ExpiredAuthorityError', 'SerialExhaustedError',
    'ValidationError', 'SignatureMismatchError', 'ExpiredCertificateError',
    'NotYetValidError', 'IssuerMismatchError', 'UnexpectedCAFlagError',
    'StorageError', 'StoragePermissionError', 'ArtifactNotFoundError',
    'CorruptArtifactError'
]
