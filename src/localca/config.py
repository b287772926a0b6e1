"""
Configuration globale de localca
Contient les constantes et paramètres de l'autorité locale
"""

import os
from pathlib import Path

# ============================================
# 📁 CHEMINS
# ============================================

# Répertoire de travail par défaut (surchargé par $LOCALCA_HOME ou --dir)
DEFAULT_STORE_DIR = Path(os.environ.get("LOCALCA_HOME", "ca"))

# Base de données du registre d'émission (dans le répertoire du store)
REGISTRY_FILENAME = "localca.db"

# ============================================
# 🔐 PARAMÈTRES CRYPTOGRAPHIQUES
# ============================================

# Seuils minimaux de robustesse (bits)
MIN_KEY_STRENGTH = {
    "rsa": 2048,
    "ec": 256
}

# Taille RSA maximale acceptée
MAX_RSA_KEY_SIZE = 16384

# Courbes ECC supportées (taille -> nom de courbe)
ECC_CURVES = {
    256: "secp256r1",  # NIST P-256
    384: "secp384r1",  # NIST P-384
    521: "secp521r1"  # NIST P-521
}

# Alias acceptés pour les algorithmes
ALGORITHM_ALIASES = {
    "rsa": "rsa",
    "ec": "ec",
    "ecc": "ec",
    "ecdsa": "ec"
}

# Exposant public RSA (standard)
RSA_PUBLIC_EXPONENT = 65537

# Valeurs par défaut (équivalent de `openssl genrsa 2048`)
DEFAULT_ALGORITHM = "rsa"
DEFAULT_KEY_STRENGTH = 2048

# ============================================
# 📜 PARAMÈTRES DES CERTIFICATS X.509
# ============================================

# Durées de validité par défaut (en jours)
VALIDITY_PERIODS = {
    "root_ca": 365,
    "server": 90
}

# Plus grand numéro de série autorisé (RFC 5280: 20 octets, positif)
MAX_SERIAL = (1 << 159) - 1

# Template pour les Distinguished Names
DN_TEMPLATE = {
    "country": "US",
    "organization": "localca",
    "root_common_name": "localca Root CA",
    "server_common_name": "test.local"
}

# ============================================
# 🗂️ DISPOSITION DES FICHIERS
# ============================================

# Rôle -> nom de fichier (convention de make_keys.sh)
DEFAULT_LAYOUT = {
    "root_key": "rootCA.key",
    "root_cert": "rootCA.crt",
    "leaf_key": "server.key",
    "leaf_csr": "server.csr",
    "leaf_cert": "server.crt"
}

# Fichier de numéro de série (équivalent de -CAcreateserial)
SERIAL_FILENAME = "rootCA.srl"

# ============================================
# 🔒 SÉCURITÉ
# ============================================

# Permissions des fichiers (Unix)
PRIVATE_KEY_PERMISSIONS = 0o600  # rw------- (propriétaire seulement)
CERT_PERMISSIONS = 0o644  # rw-r--r-- (lecture publique)

# ============================================
# 🗄️ REGISTRE D'ÉMISSION
# ============================================

DB_TABLES = {
    "certificates": """
        CREATE TABLE IF NOT EXISTS certificates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            serial_number TEXT NOT NULL,
            subject_dn TEXT NOT NULL,
            issuer_dn TEXT NOT NULL,
            kind TEXT NOT NULL,
            not_before TEXT NOT NULL,
            not_after TEXT NOT NULL,
            fingerprint TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """,
    "audit_log": """
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            action TEXT NOT NULL,
            entity_id TEXT,
            details TEXT,
            success BOOLEAN NOT NULL
        )
    """
}

# ============================================
# 🎨 PARAMÈTRES D'AFFICHAGE CLI
# ============================================

CLI_SYMBOLS = {
    "success": "✓",
    "error": "✗",
    "warning": "⚠",
    "info": "ℹ",
    "cert": "📜",
    "key": "🔑",
    "root": "👑",
    "server": "🖥️",
    "csr": "📝",
    "verify": "🔍"
}

# ============================================
# 🚦 CODES DE SORTIE
# ============================================

EXIT_CODES = {
    "success": 0,
    "unexpected": 1,
    "parameter": 2,
    "subject": 3,
    "authority": 4,
    "validation": 5,
    "storage": 6
}


def get_validity_period(kind: str) -> int:
    """
    Retourne la période de validité par défaut en jours

    Args:
        kind: Type de certificat (root_ca, server)

    Returns:
        int: Nombre de jours de validité
    """
    return VALIDITY_PERIODS.get(kind, VALIDITY_PERIODS["server"])


__all__ = [
    'DEFAULT_STORE_DIR', 'REGISTRY_FILENAME',
    'MIN_KEY_STRENGTH', 'MAX_RSA_KEY_SIZE', 'ECC_CURVES', 'ALGORITHM_ALIASES',
    'RSA_PUBLIC_EXPONENT', 'DEFAULT_ALGORITHM', 'DEFAULT_KEY_STRENGTH',
    'VALIDITY_PERIODS', 'MAX_SERIAL', 'DN_TEMPLATE',
    'DEFAULT_LAYOUT', 'SERIAL_FILENAME',
    'PRIVATE_KEY_PERMISSIONS', 'CERT_PERMISSIONS',
    'DB_TABLES', 'CLI_SYMBOLS', 'EXIT_CODES',
    'get_validity_period'
]
