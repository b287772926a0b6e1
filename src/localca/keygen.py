"""
Générateur de clés cryptographiques (RSA et ECC)
Refuse toute robustesse inférieure au seuil configuré
"""

from typing import Optional, Union, Dict
from cryptography.hazmat.primitives.asymmetric import rsa, ec
from cryptography.hazmat.primitives import hashes, serialization
from tqdm import tqdm

from . import config
from . import utils
from .exceptions import WeakParameterError, UnsupportedAlgorithmError, CorruptArtifactError
from .models import KeyPair

# Types de clés supportés
PrivateKeyTypes = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]
PublicKeyTypes = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey]

_CURVE_CLASSES = {
    "secp256r1": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
    "secp521r1": ec.SECP521R1
}


class KeyGenerator:
    """
    Génère des paires de clés RSA ou ECC d'une robustesse donnée
    Sans état: une instance peut servir à plusieurs threads
    """

    def __init__(self, min_strength: Optional[Dict[str, int]] = None):
        """
        Args:
            min_strength: Seuils par algorithme (défaut: config.MIN_KEY_STRENGTH)
        """
        self.min_strength = dict(config.MIN_KEY_STRENGTH)
        if min_strength:
            self.min_strength.update(min_strength)

    @staticmethod
    def normalize_algorithm(algorithm: str) -> str:
        try:
            return config.ALGORITHM_ALIASES[algorithm.lower()]
        except KeyError:
            raise UnsupportedAlgorithmError(
                f"Type de clé non supporté: {algorithm}. Utilisez 'rsa' ou 'ec'."
            )

    def check_strength(self, algorithm: str, strength: int) -> str:
        """
        Valide le couple (algorithme, robustesse) sans rien générer

        Returns:
            str: Nom d'algorithme normalisé

        Raises:
            WeakParameterError: Robustesse sous le seuil
            UnsupportedAlgorithmError: Algorithme ou taille inconnus
        """
        algorithm = self.normalize_algorithm(algorithm)
        floor = self.min_strength[algorithm]

        if strength < floor:
            raise WeakParameterError(
                f"Clé {algorithm.upper()} de {strength} bits refusée: minimum {floor} bits"
            )

        if algorithm == "rsa":
            if strength > config.MAX_RSA_KEY_SIZE or strength % 8:
                raise UnsupportedAlgorithmError(
                    f"Taille de clé RSA non supportée: {strength}"
                )
        elif strength not in config.ECC_CURVES:
            raise UnsupportedAlgorithmError(
                f"Courbe ECC non supportée: {strength} bits. "
                f"Tailles autorisées: {sorted(config.ECC_CURVES)}"
            )

        return algorithm

    # ============================================
    # 🔐 GÉNÉRATION
    # ============================================

    def generate(self, algorithm: str, strength: int, show_progress: bool = False) -> KeyPair:
        """
        Génère une paire de clés

        Args:
            algorithm: "rsa" ou "ec"
            strength: Taille RSA en bits, ou taille de courbe (256, 384, 521)
            show_progress: Afficher une barre de progression

        Returns:
            KeyPair: Paire générée
        """
        algorithm = self.check_strength(algorithm, strength)
        label = f"{algorithm.upper()} {strength}"
        utils.print_info(f"Génération d'une clé {label} bits...")

        with tqdm(total=100, desc=label, disable=not show_progress,
                  bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt}") as pbar:
            if algorithm == "rsa":
                private_key = rsa.generate_private_key(
                    public_exponent=config.RSA_PUBLIC_EXPONENT,
                    key_size=strength
                )
            else:
                curve = _CURVE_CLASSES[config.ECC_CURVES[strength]]
                private_key = ec.generate_private_key(curve())
            pbar.update(100)

        utils.print_success(f"Clé {label} bits générée")
        return KeyPair(
            algorithm=algorithm,
            strength=strength,
            private_key=private_key,
            public_key=private_key.public_key()
        )


# ============================================
# 💾 SÉRIALISATION
# ============================================

def key_pair_from_private_key(private_key: PrivateKeyTypes) -> KeyPair:
    """Reconstruit une KeyPair depuis une clé privée chargée"""
    if isinstance(private_key, rsa.RSAPrivateKey):
        algorithm, strength = "rsa", private_key.key_size
    elif isinstance(private_key, ec.EllipticCurvePrivateKey):
        algorithm, strength = "ec", private_key.curve.key_size
    else:
        raise UnsupportedAlgorithmError(f"Type de clé non supporté: {type(private_key).__name__}")

    return KeyPair(
        algorithm=algorithm,
        strength=strength,
        private_key=private_key,
        public_key=private_key.public_key()
    )


def private_key_to_pem(key_pair: KeyPair, passphrase: Optional[str] = None) -> bytes:
    """
    Sérialise la clé privée au format PEM (PKCS#8)

    Args:
        key_pair: Paire de clés
        passphrase: Mot de passe de chiffrement (optionnel)
    """
    if passphrase:
        encryption = serialization.BestAvailableEncryption(passphrase.encode())
    else:
        encryption = serialization.NoEncryption()

    return key_pair.private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption
    )


def load_private_key_pem(data: bytes, passphrase: Optional[str] = None) -> KeyPair:
    """
    Charge une clé privée PEM

    Raises:
        CorruptArtifactError: Mot de passe incorrect ou clé illisible
    """
    password_bytes = passphrase.encode() if passphrase else None

    try:
        private_key = serialization.load_pem_private_key(data, password=password_bytes)
    except (ValueError, TypeError) as e:
        raise CorruptArtifactError(f"Clé privée illisible: {e}") from e

    return key_pair_from_private_key(private_key)


def describe_public_key(public_key: PublicKeyTypes) -> tuple:
    """
    Retourne (algorithme, robustesse) d'une clé publique

    Raises:
        UnsupportedAlgorithmError: Type de clé inconnu
    """
    if isinstance(public_key, rsa.RSAPublicKey):
        return "rsa", public_key.key_size
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return "ec", public_key.curve.key_size
    raise UnsupportedAlgorithmError(f"Type de clé non supporté: {type(public_key).__name__}")


def signature_hash_for(private_key: PrivateKeyTypes) -> hashes.HashAlgorithm:
    """Algorithme de hachage de signature dérivé du type de clé"""
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        size = private_key.curve.key_size
        if size >= 521:
            return hashes.SHA512()
        if size >= 384:
            return hashes.SHA384()
    return hashes.SHA256()


# Instance par défaut pour utilisation directe
keygen = KeyGenerator()

__all__ = [
    'KeyGenerator',
    'keygen',
    'PrivateKeyTypes',
    'PublicKeyTypes',
    'key_pair_from_private_key',
    'private_key_to_pem',
    'load_private_key_pem',
    'describe_public_key',
    'signature_hash_for'
]
