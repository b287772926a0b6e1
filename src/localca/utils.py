"""
Fonctions utilitaires de localca
Affichage Rich, dates UTC, empreintes
"""

import secrets
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Any
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from . import config

# Console Rich pour l'affichage
console = Console()


def set_quiet(quiet: bool = True) -> None:
    """Active ou coupe toute sortie console"""
    console.quiet = quiet


# ============================================
# 🔐 FONCTIONS CRYPTOGRAPHIQUES
# ============================================

def generate_serial_number() -> int:
    """
    Génère un numéro de série aléatoire (certificat racine)
    159 bits pour rester positif sur 20 octets (RFC 5280)

    Returns:
        int: Numéro de série
    """
    return secrets.randbits(159) | 1


_FINGERPRINT_HASHES = {
    "sha256": hashes.SHA256,
    "sha1": hashes.SHA1,
}


def calculate_fingerprint(cert: x509.Certificate, algorithm: str = "sha256") -> str:
    """Empreinte du certificat DER, au format A1:B2:C3:..."""
    try:
        digest = cert.fingerprint(_FINGERPRINT_HASHES[algorithm.lower()]())
    except KeyError:
        raise ValueError(f"Algorithme non supporté: {algorithm}")
    return digest.hex(":").upper()


# ============================================
# 📅 GESTION DES DATES
# ============================================

def now_utc() -> datetime:
    """
    Retourne la date/heure actuelle en UTC, tronquée à la seconde
    (précision des dates X.509)
    """
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(dt: datetime) -> datetime:
    """Une date naïve est considérée comme UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ============================================
# 📁 GESTION DES FICHIERS
# ============================================

def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def format_bytes(bytes_count: int) -> str:
    """
    Formate un nombre d'octets en unité lisible (KB, MB, etc.)
    """
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.2f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.2f} TB"


def get_file_info(filepath: Path) -> Dict[str, Any]:
    """
    Récupère les informations sur un fichier

    Returns:
        dict: Informations (taille, permissions)
    """
    if not filepath.exists():
        return {}

    stat = filepath.stat()

    return {
        "size": format_bytes(stat.st_size),
        "size_bytes": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime),
        "permissions": oct(stat.st_mode)[-3:]
    }


# ============================================
# 🎨 AFFICHAGE CLI AVEC RICH
# ============================================

# Couleur console par niveau de message
_LEVEL_STYLES = {
    "success": "green",
    "error": "red",
    "warning": "yellow",
    "info": "cyan",
}


def _print_level(level: str, message: str) -> None:
    color = _LEVEL_STYLES[level]
    console.print(f"[{color}]{config.CLI_SYMBOLS[level]} {message}[/{color}]")


def print_success(message: str) -> None:
    _print_level("success", message)


def print_error(message: str) -> None:
    _print_level("error", message)


def print_warning(message: str) -> None:
    _print_level("warning", message)


def print_info(message: str) -> None:
    _print_level("info", message)


def print_header(title: str) -> None:
    """
    Affiche un en-tête stylisé avec bordure

    Args:
        title: Titre à afficher
    """
    console.print()
    console.print(Panel.fit(
        f"[bold magenta]{title}[/bold magenta]",
        border_style="magenta",
        box=box.DOUBLE
    ))
    console.print()


def create_table(title: str, columns: list) -> Table:
    """Table Rich aux couleurs de localca, une colonne par nom"""
    table = Table(title=title, title_style="bold cyan", box=box.ROUNDED,
                  border_style="blue", header_style="bold magenta")
    for column in columns:
        table.add_column(column)
    return table


def _basic_constraints_label(cert: x509.Certificate) -> str:
    try:
        bc = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return "absent"
    return "CA=TRUE" if bc.ca else "CA=FALSE"


def display_cert_info(cert: x509.Certificate) -> None:
    """
    Affiche les informations d'un certificat X.509 de manière formatée

    Args:
        cert: Certificat X.509 à afficher
    """
    table = create_table(f"{config.CLI_SYMBOLS['cert']} Informations du certificat", ["Champ", "Valeur"])

    table.add_row("Sujet", f"[cyan]{cert.subject.rfc4514_string()}[/cyan]")
    table.add_row("Émetteur", f"[yellow]{cert.issuer.rfc4514_string()}[/yellow]")
    table.add_row("N° Série", f"[green]{cert.serial_number:X}[/green]")

    not_before = cert.not_valid_before_utc.strftime("%Y-%m-%d %H:%M:%S UTC")
    not_after = cert.not_valid_after_utc.strftime("%Y-%m-%d %H:%M:%S UTC")
    table.add_row("Valide de", not_before)
    table.add_row("Valide jusqu'à", not_after)
    table.add_row("BasicConstraints", _basic_constraints_label(cert))

    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        table.add_row("SAN", ", ".join(san.get_values_for_type(x509.DNSName)))
    except x509.ExtensionNotFound:
        pass

    fingerprint = calculate_fingerprint(cert, "sha256")
    table.add_row("Empreinte SHA-256", f"[dim]{fingerprint}[/dim]")

    console.print(table)


def display_csr_info(request: x509.CertificateSigningRequest) -> None:
    """Affiche le sujet et les extensions demandées d'un CSR"""
    table = create_table(f"{config.CLI_SYMBOLS['csr']} Demande de certificat", ["Champ", "Valeur"])
    table.add_row("Sujet", f"[cyan]{request.subject.rfc4514_string()}[/cyan]")
    table.add_row("Signature valide", "oui" if request.is_signature_valid else "[red]non[/red]")
    for ext in request.extensions:
        table.add_row("Extension", ext.oid._name)
    console.print(table)


def confirm_action(message: str, default: bool = False) -> bool:
    """
    Demande confirmation à l'utilisateur via l'entrée console

    Returns:
        bool: True si l'utilisateur confirme
    """
    options = "[Y/n]" if default else "[y/N]"
    response = console.input(f"[yellow]{message} {options}:[/yellow] ").strip().lower()

    if not response:
        return default

    return response in ['y', 'yes', 'oui', 'o']


__all__ = [
    'console', 'set_quiet', 'confirm_action',
    'generate_serial_number', 'calculate_fingerprint',
    'now_utc', 'as_utc',
    'ensure_directory', 'format_bytes', 'get_file_info',
    'print_success', 'print_error', 'print_warning', 'print_info', 'print_header',
    'create_table', 'display_cert_info', 'display_csr_info'
]
