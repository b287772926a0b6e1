"""
Validation de chaîne
Vérifie qu'un certificat serveur a été émis par une racine de confiance
"""

from datetime import datetime
from typing import Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import rsa, ec, padding

from . import config, utils
from .models import ValidationFailure, ValidationResult


class ChainValidator:
    """
    Validateur racine -> certificat serveur

    Vérifications, dans l'ordre:
    1. Signature sous la clé publique de la racine
    2. Période de validité à la date demandée
    3. Émetteur = sujet de la racine
    4. Pas de CA=TRUE sur un certificat final (si reject_ca_leaf)

    Fonction pure: aucune E/S, aucun affichage.
    """

    def __init__(self, reject_ca_leaf: bool = True):
        self.reject_ca_leaf = reject_ca_leaf

    def verify(
            self,
            certificate: x509.Certificate,
            trusted_root: x509.Certificate,
            at_time: Optional[datetime] = None,
            full_report: bool = False
    ) -> ValidationResult:
        """
        Vérifie un certificat contre la racine de confiance

        Args:
            certificate: Certificat à vérifier
            trusted_root: Certificat racine de confiance
            at_time: Date de vérification (défaut: maintenant; naïve = UTC)
            full_report: Exécuter toutes les vérifications même après un échec

        Returns:
            ValidationResult: Rapport (valid, failures, checks)
        """
        at_time = utils.as_utc(at_time) if at_time is not None else utils.now_utc()
        result = ValidationResult(at_time=at_time)

        steps = [
            self._check_signature,
            self._check_validity_window,
            self._check_issuer,
            self._check_ca_flag,
        ]

        for step in steps:
            failure = step(certificate, trusted_root, at_time, result)
            if failure is not None:
                result.failures.append(failure)
                if not full_report:
                    break

        return result

    # ============================================
    # 🔍 VÉRIFICATIONS
    # ============================================

    @staticmethod
    def _check_signature(certificate, trusted_root, at_time, result) -> Optional[ValidationFailure]:
        name = "Signature de la racine"
        public_key = trusted_root.public_key()
        params = certificate.signature_algorithm_parameters

        try:
            if isinstance(public_key, rsa.RSAPublicKey) and isinstance(params, (padding.PKCS1v15, padding.PSS)):
                public_key.verify(
                    certificate.signature,
                    certificate.tbs_certificate_bytes,
                    params,
                    certificate.signature_hash_algorithm
                )
            elif isinstance(public_key, ec.EllipticCurvePublicKey) and isinstance(params, ec.ECDSA):
                public_key.verify(
                    certificate.signature,
                    certificate.tbs_certificate_bytes,
                    params
                )
            else:
                result.checks.append((name, False, "Algorithme de signature incompatible avec la clé racine"))
                return ValidationFailure.SIGNATURE_MISMATCH
        except InvalidSignature:
            result.checks.append((name, False, "Signature invalide sous la clé de la racine"))
            return ValidationFailure.SIGNATURE_MISMATCH

        result.checks.append((name, True, "Signature valide"))
        return None

    @staticmethod
    def _check_validity_window(certificate, trusted_root, at_time, result) -> Optional[ValidationFailure]:
        name = "Période de validité"
        not_before = certificate.not_valid_before_utc
        not_after = certificate.not_valid_after_utc

        if at_time < not_before:
            result.checks.append((name, False, f"Pas encore valide (à partir du {not_before:%Y-%m-%d %H:%M:%S})"))
            return ValidationFailure.NOT_YET_VALID
        if at_time > not_after:
            result.checks.append((name, False, f"Expiré depuis le {not_after:%Y-%m-%d %H:%M:%S}"))
            return ValidationFailure.EXPIRED

        result.checks.append((name, True, f"Valide jusqu'au {not_after:%Y-%m-%d %H:%M:%S}"))
        return None

    @staticmethod
    def _check_issuer(certificate, trusted_root, at_time, result) -> Optional[ValidationFailure]:
        name = "Émetteur = Sujet racine"
        if certificate.issuer != trusted_root.subject:
            result.checks.append((
                name, False,
                f"{certificate.issuer.rfc4514_string()} != {trusted_root.subject.rfc4514_string()}"
            ))
            return ValidationFailure.ISSUER_MISMATCH

        result.checks.append((name, True, certificate.issuer.rfc4514_string()))
        return None

    def _check_ca_flag(self, certificate, trusted_root, at_time, result) -> Optional[ValidationFailure]:
        name = "BasicConstraints CA=FALSE"
        try:
            is_ca = certificate.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
        except x509.ExtensionNotFound:
            is_ca = False

        if is_ca and self.reject_ca_leaf:
            result.checks.append((name, False, "Certificat final marqué CA=TRUE"))
            return ValidationFailure.UNEXPECTED_CA_FLAG

        result.checks.append((name, True, "CA=TRUE toléré" if is_ca else "CA=FALSE"))
        return None

    # ============================================
    # 📊 AFFICHAGE
    # ============================================

    @staticmethod
    def display_report(result: ValidationResult) -> None:
        """Affiche le rapport de vérification (usage CLI)"""
        table = utils.create_table(
            f"{config.CLI_SYMBOLS['verify']} Validation de chaîne",
            ["Vérification", "Résultat", "Détails"]
        )

        for check_name, ok, details in result.checks:
            status = "[green]✓ Valide[/green]" if ok else "[red]✗ Invalide[/red]"
            table.add_row(check_name, status, details)

        utils.console.print(table)

        if result.valid:
            utils.print_success("✅ Chaîne de certification valide!")
        else:
            reasons = ", ".join(failure.value for failure in result.failures)
            utils.print_error(f"❌ Chaîne de certification invalide ({reasons})")


chain_validator = ChainValidator()

__all__ = ['ChainValidator', 'chain_validator']
