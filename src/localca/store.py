"""
MaterialStore
Persistance des clés, CSR et certificats par rôle, avec publication atomique
"""

import os
import stat
import tempfile
import threading
from pathlib import Path
from typing import Optional, Dict, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from . import config, utils
from .exceptions import (
    StorageError,
    StoragePermissionError,
    ArtifactNotFoundError,
    CorruptArtifactError,
)
from .keygen import private_key_to_pem, load_private_key_pem
from .models import ArtifactRole, KeyPair, CertificateSigningRequest

Material = Union[KeyPair, x509.Certificate, CertificateSigningRequest]

_EXPECTED_TYPES = {
    ArtifactRole.ROOT_KEY: KeyPair,
    ArtifactRole.LEAF_KEY: KeyPair,
    ArtifactRole.ROOT_CERT: x509.Certificate,
    ArtifactRole.LEAF_CERT: x509.Certificate,
    ArtifactRole.LEAF_CSR: CertificateSigningRequest,
}


class MaterialStore:
    """
    Stockage des artefacts de l'autorité dans un répertoire

    Chaque rôle correspond à un fichier (voir config.DEFAULT_LAYOUT).
    Les écritures passent par un fichier temporaire publié avec os.replace:
    un lecteur voit l'ancien contenu ou le nouveau, jamais un fichier tronqué.
    """

    def __init__(
            self,
            directory: Optional[Path] = None,
            layout: Optional[Dict[Union[ArtifactRole, str], str]] = None,
            passphrase: Optional[str] = None,
            serial_filename: str = config.SERIAL_FILENAME
    ):
        """
        Args:
            directory: Répertoire de stockage (défaut: config.DEFAULT_STORE_DIR)
            layout: Surcharge rôle -> nom de fichier
            passphrase: Mot de passe de chiffrement des clés privées
            serial_filename: Nom du fichier de numéro de série
        """
        self.directory = Path(directory or config.DEFAULT_STORE_DIR)
        self.passphrase = passphrase
        self.serial_filename = serial_filename

        self.layout = {ArtifactRole(role): name for role, name in config.DEFAULT_LAYOUT.items()}
        for role, name in (layout or {}).items():
            self.layout[ArtifactRole(role)] = name

        self._locks = {role: threading.Lock() for role in ArtifactRole}
        self._serial_lock = threading.Lock()

    # ============================================
    # 🗂️ CHEMINS
    # ============================================

    def path_for(self, role: Union[ArtifactRole, str]) -> Path:
        return self.directory / self.layout[ArtifactRole(role)]

    @property
    def serial_path(self) -> Path:
        return self.directory / self.serial_filename

    def exists(self, role: Union[ArtifactRole, str]) -> bool:
        return self.path_for(role).exists()

    # ============================================
    # 💾 SAUVEGARDE / CHARGEMENT
    # ============================================

    def save(self, role: Union[ArtifactRole, str], material: Material) -> Path:
        """
        Sauvegarde un artefact

        Args:
            role: Rôle de l'artefact
            material: KeyPair, x509.Certificate ou CertificateSigningRequest

        Returns:
            Path: Chemin du fichier publié

        Raises:
            TypeError: Matériel incompatible avec le rôle
            StoragePermissionError: Accès propriétaire seul impossible à garantir
            StorageError: Échec d'écriture
        """
        role = ArtifactRole(role)
        expected = _EXPECTED_TYPES[role]
        if not isinstance(material, expected):
            raise TypeError(
                f"Le rôle {role.value} attend {expected.__name__}, reçu {type(material).__name__}"
            )

        data = self._encode(role, material)
        path = self.path_for(role)
        permissions = config.PRIVATE_KEY_PERMISSIONS if role.is_private else config.CERT_PERMISSIONS

        with self._locks[role]:
            self._atomic_write(path, data, permissions, private=role.is_private)

        file_info = utils.get_file_info(path)
        utils.print_success(f"{role.value} sauvegardé: {path.name} ({file_info.get('size', 'N/A')})")
        return path

    def load(self, role: Union[ArtifactRole, str]) -> Material:
        """
        Charge un artefact

        Raises:
            ArtifactNotFoundError: Rôle jamais sauvegardé
            CorruptArtifactError: Contenu illisible
        """
        role = ArtifactRole(role)
        path = self.path_for(role)

        with self._locks[role]:
            try:
                data = path.read_bytes()
            except FileNotFoundError:
                raise ArtifactNotFoundError(f"Artefact introuvable ({role.value}): {path}")
            except OSError as e:
                raise StorageError(f"Lecture impossible de {path}: {e}") from e

        return self._decode(role, data)

    def _encode(self, role: ArtifactRole, material: Material) -> bytes:
        if role.is_private:
            return private_key_to_pem(material, self.passphrase)
        if role == ArtifactRole.LEAF_CSR:
            return material.to_pem()
        return material.public_bytes(serialization.Encoding.PEM)

    def _decode(self, role: ArtifactRole, data: bytes) -> Material:
        if role.is_private:
            return load_private_key_pem(data, self.passphrase)

        try:
            if role == ArtifactRole.LEAF_CSR:
                return CertificateSigningRequest.from_pem(data)
            return x509.load_pem_x509_certificate(data)
        except ValueError as e:
            raise CorruptArtifactError(f"Artefact illisible ({role.value}): {e}") from e

    # ============================================
    # 🔢 NUMÉRO DE SÉRIE
    # ============================================

    def read_serial(self) -> int:
        """
        Lit le dernier numéro de série émis (0 si aucun)
        Format du fichier: hexadécimal majuscule, comme openssl -CAcreateserial
        """
        with self._serial_lock:
            try:
                text = self.serial_path.read_text().strip()
            except FileNotFoundError:
                return 0
            except OSError as e:
                raise StorageError(f"Lecture impossible de {self.serial_path}: {e}") from e

        try:
            return int(text, 16)
        except ValueError:
            raise CorruptArtifactError(f"Fichier de série illisible: {self.serial_path}")

    def write_serial(self, serial: int) -> None:
        hex_serial = f"{serial:X}"
        if len(hex_serial) % 2:
            hex_serial = "0" + hex_serial

        with self._serial_lock:
            self._atomic_write(
                self.serial_path,
                f"{hex_serial}\n".encode(),
                config.CERT_PERMISSIONS,
                private=False
            )

    # ============================================
    # 🔒 ÉCRITURE ATOMIQUE
    # ============================================

    def _atomic_write(self, path: Path, data: bytes, permissions: int, private: bool) -> None:
        if private and os.name == 'nt':
            raise StoragePermissionError(
                f"Permissions propriétaire seul non applicables sur ce système: {path}"
            )

        try:
            utils.ensure_directory(self.directory)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.name}.", suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Écriture impossible dans {self.directory}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                if os.name != 'nt':
                    os.fchmod(f.fileno(), permissions)
                    if private and stat.S_IMODE(os.fstat(f.fileno()).st_mode) & 0o077:
                        raise StoragePermissionError(
                            f"Impossible de restreindre l'accès au propriétaire: {path}"
                        )
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except StorageError:
            tmp_path.unlink(missing_ok=True)
            raise
        except PermissionError as e:
            tmp_path.unlink(missing_ok=True)
            raise StoragePermissionError(f"Permission refusée pour {path}: {e}") from e
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Écriture impossible de {path}: {e}") from e


__all__ = ['MaterialStore', 'Material']
