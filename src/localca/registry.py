"""
Registre d'émission SQLite
Journalise les certificats émis et les événements d'audit
"""

import sqlite3
from pathlib import Path
from typing import Optional, List, Dict, Any
from contextlib import contextmanager
from cryptography import x509

from . import config
from . import utils
from .exceptions import StorageError


class IssuanceRegistry:
    """
    Base SQLite des certificats émis par l'autorité locale
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Chemin de la base (ex: <store>/localca.db)
        """
        self.db_path = Path(db_path)
        try:
            utils.ensure_directory(self.db_path.parent)
        except OSError as e:
            raise StorageError(f"Répertoire du registre inaccessible: {e}") from e
        self.init_database()

    @classmethod
    def for_directory(cls, directory: Path) -> "IssuanceRegistry":
        return cls(Path(directory) / config.REGISTRY_FILENAME)

    # ============================================
    # 🔌 GESTION DE LA CONNEXION
    # ============================================

    @contextmanager
    def get_connection(self):
        """
        Connexion avec commit en sortie, rollback sur erreur

        Raises:
            StorageError: Base inaccessible ou requête refusée par SQLite
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Registre inaccessible ({self.db_path}): {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Écriture du registre impossible ({self.db_path}): {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self) -> None:
        """Crée les tables si elles n'existent pas"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            for create_sql in config.DB_TABLES.values():
                cursor.execute(create_sql)

    # ============================================
    # 📜 CERTIFICATS
    # ============================================

    def record_certificate(self, certificate: x509.Certificate, kind: str) -> int:
        """
        Enregistre un certificat émis

        Args:
            certificate: Certificat émis
            kind: Type (root_ca, server)

        Returns:
            int: ID de la ligne insérée
        """
        serial_hex = f"{certificate.serial_number:X}"
        subject_dn = certificate.subject.rfc4514_string()

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO certificates (
                    serial_number, subject_dn, issuer_dn, kind,
                    not_before, not_after, fingerprint, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                serial_hex,
                subject_dn,
                certificate.issuer.rfc4514_string(),
                kind,
                certificate.not_valid_before_utc.isoformat(),
                certificate.not_valid_after_utc.isoformat(),
                utils.calculate_fingerprint(certificate),
                utils.now_utc().isoformat()
            ))
            cert_id = cursor.lastrowid

        self.add_audit_log(
            action="CERTIFICATE_ISSUED",
            entity_id=serial_hex,
            details=f"Type: {kind}, Sujet: {subject_dn}"
        )
        return cert_id

    def get_certificate(self, serial_number: str) -> Optional[Dict[str, Any]]:
        """Dernier enregistrement pour un numéro de série (hex)"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM certificates WHERE serial_number = ? ORDER BY id DESC LIMIT 1",
                (serial_number.upper(),)
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def list_certificates(self, kind: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            cursor = conn.cursor()

            query = "SELECT * FROM certificates"
            params = []
            if kind:
                query += " WHERE kind = ?"
                params.append(kind)
            query += " ORDER BY id LIMIT ?"
            params.append(limit)

            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    # ============================================
    # 📊 AUDIT LOG
    # ============================================

    def add_audit_log(
            self,
            action: str,
            entity_id: Optional[str] = None,
            details: Optional[str] = None,
            success: bool = True
    ) -> None:
        """
        Ajoute une entrée dans le journal d'audit

        Args:
            action: Action effectuée (ROOT_INITIALIZED, ROOT_ROTATED, ...)
            entity_id: Identifiant concerné (numéro de série)
            details: Détails supplémentaires
            success: Indique si l'action a réussi
        """
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO audit_log (timestamp, action, entity_id, details, success)
                VALUES (?, ?, ?, ?, ?)
            """, (utils.now_utc().isoformat(), action, entity_id, details, success))

    def list_audit_log(self, action: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            if action:
                cursor.execute("SELECT * FROM audit_log WHERE action = ? ORDER BY id", (action,))
            else:
                cursor.execute("SELECT * FROM audit_log ORDER BY id")
            return [dict(row) for row in cursor.fetchall()]

    def display_certificates(self) -> None:
        """Affiche le registre sous forme de table"""
        rows = self.list_certificates()

        if not rows:
            utils.print_info("Aucun certificat enregistré")
            return

        table = utils.create_table(
            f"📋 Registre des certificats ({len(rows)})",
            ["Type", "Sujet", "N° Série", "Expire le"]
        )
        for row in rows:
            table.add_row(
                row["kind"],
                row["subject_dn"],
                row["serial_number"][:16],
                row["not_after"][:19].replace("T", " ")
            )
        utils.console.print(table)


__all__ = ['IssuanceRegistry']
