"""
Interface en ligne de commande de localca

    localca init-root --cn "Dev Root CA" --days 365
    localca request --cn test.local --dns www.test.local
    localca sign --days 90
    localca verify --full
"""

import argparse
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, List

from cryptography import x509

from . import __version__, config, utils
from .authority import RootAuthority
from .bootstrap import bootstrap
from .csr import CertificateRequestBuilder
from .exceptions import LocalCAError, ParameterError
from .keygen import KeyGenerator
from .models import ArtifactRole, Subject, KeyPair
from .registry import IssuanceRegistry
from .store import MaterialStore
from .validator import ChainValidator

PASSPHRASE_ENV = "LOCALCA_PASSPHRASE"


# ============================================
# 🛠️ CONSTRUCTION DU PARSER
# ============================================

def _add_key_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--algorithm", default=config.DEFAULT_ALGORITHM, help="rsa ou ec")
    parser.add_argument("--bits", type=int, default=config.DEFAULT_KEY_STRENGTH,
                        help="Taille RSA ou taille de courbe EC (256, 384, 521)")


def _add_subject_arguments(parser: argparse.ArgumentParser, default_cn: str) -> None:
    parser.add_argument("--cn", default=default_cn, help="Common Name")
    parser.add_argument("--org", default=config.DN_TEMPLATE["organization"], help="Organization Name")
    parser.add_argument("--country", default=config.DN_TEMPLATE["country"], help="Code pays (2 lettres)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="localca",
        description="Autorité de certification locale pour serveurs de test TLS."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--dir", type=Path, default=config.DEFAULT_STORE_DIR,
                        help="Répertoire des artefacts (défaut: $LOCALCA_HOME ou ./ca)")
    parser.add_argument("--quiet", action="store_true", help="Aucune sortie console")

    sub = parser.add_subparsers(dest="command", required=True)

    init_root = sub.add_parser("init-root", help="Créer la clé et le certificat racine")
    _add_subject_arguments(init_root, config.DN_TEMPLATE["root_common_name"])
    _add_key_arguments(init_root)
    init_root.add_argument("--days", type=int, default=config.get_validity_period("root_ca"))

    rotate_root = sub.add_parser("rotate-root", help="Remplacer la racine (invalide les certificats émis)")
    _add_subject_arguments(rotate_root, config.DN_TEMPLATE["root_common_name"])
    _add_key_arguments(rotate_root)
    rotate_root.add_argument("--days", type=int, default=config.get_validity_period("root_ca"))
    rotate_root.add_argument("--yes", action="store_true", help="Confirmer sans question")

    request = sub.add_parser("request", help="Créer la clé serveur et son CSR")
    _add_subject_arguments(request, config.DN_TEMPLATE["server_common_name"])
    _add_key_arguments(request)
    request.add_argument("--dns", action="append", default=[], help="Nom DNS supplémentaire (répétable)")

    sign = sub.add_parser("sign", help="Signer le CSR serveur avec la racine")
    sign.add_argument("--days", type=int, default=config.get_validity_period("server"))

    verify = sub.add_parser("verify", help="Vérifier un certificat contre la racine")
    verify.add_argument("--cert", type=Path, help="Certificat à vérifier (défaut: certificat serveur)")
    verify.add_argument("--root", type=Path, help="Racine de confiance (défaut: rootCA.crt)")
    verify.add_argument("--at", help="Date de vérification ISO 8601 (défaut: maintenant)")
    verify.add_argument("--full", action="store_true", help="Exécuter toutes les vérifications")
    verify.add_argument("--allow-ca-leaf", action="store_true", help="Tolérer CA=TRUE sur le certificat")

    boot = sub.add_parser("bootstrap", help="Racine + clé + CSR + certificat serveur en une commande")
    boot.add_argument("--root-cn", default=config.DN_TEMPLATE["root_common_name"])
    _add_subject_arguments(boot, config.DN_TEMPLATE["server_common_name"])
    _add_key_arguments(boot)
    boot.add_argument("--dns", action="append", default=[])
    boot.add_argument("--root-days", type=int, default=config.get_validity_period("root_ca"))
    boot.add_argument("--days", type=int, default=config.get_validity_period("server"))

    show = sub.add_parser("show", help="Afficher un artefact")
    show.add_argument("role", choices=[role.value for role in ArtifactRole])

    sub.add_parser("list", help="Afficher le registre d'émission")

    return parser


# ============================================
# 🎯 COMMANDES
# ============================================

def _store(args) -> MaterialStore:
    return MaterialStore(args.dir, passphrase=os.environ.get(PASSPHRASE_ENV))


def _registry(args) -> IssuanceRegistry:
    return IssuanceRegistry.for_directory(args.dir)


def _subject(args, dns_names: Optional[List[str]] = None) -> Subject:
    return Subject(
        common_name=args.cn,
        organization=args.org or None,
        country=args.country or None,
        dns_names=tuple(dns_names or ())
    )


def _generate_key(args) -> KeyPair:
    return KeyGenerator().generate(args.algorithm, args.bits, show_progress=not args.quiet)


def cmd_init_root(args) -> int:
    utils.print_header(f"{config.CLI_SYMBOLS['root']} Création de la Root CA")
    subject = _subject(args)
    CertificateRequestBuilder().validate_subject(subject)

    store = _store(args)
    authority = RootAuthority(store=store, registry=_registry(args))
    key_pair = _generate_key(args)
    certificate = authority.initialize_root(key_pair, subject, args.days)
    utils.display_cert_info(certificate)
    return 0


def cmd_rotate_root(args) -> int:
    utils.print_header(f"{config.CLI_SYMBOLS['root']} Rotation de la Root CA")
    if not args.yes and not utils.confirm_action(
            "Remplacer la racine invalide tous les certificats émis. Continuer ?"
    ):
        raise ParameterError("Rotation annulée")

    subject = _subject(args)
    CertificateRequestBuilder().validate_subject(subject)

    authority = RootAuthority(store=_store(args), registry=_registry(args))
    key_pair = _generate_key(args)
    certificate = authority.rotate_root(key_pair, subject, args.days)
    utils.display_cert_info(certificate)
    return 0


def cmd_request(args) -> int:
    utils.print_header(f"{config.CLI_SYMBOLS['csr']} Demande de certificat serveur")
    subject = _subject(args, args.dns)
    builder = CertificateRequestBuilder()
    builder.validate_subject(subject)

    store = _store(args)
    key_pair = _generate_key(args)
    csr = builder.build(key_pair, subject)
    store.save(ArtifactRole.LEAF_KEY, key_pair)
    store.save(ArtifactRole.LEAF_CSR, csr)
    utils.display_csr_info(csr.request)
    return 0


def cmd_sign(args) -> int:
    utils.print_header(f"{config.CLI_SYMBOLS['server']} Signature du certificat serveur")
    store = _store(args)
    authority = RootAuthority.load(store, registry=_registry(args))
    csr = store.load(ArtifactRole.LEAF_CSR)
    certificate = authority.sign(csr, args.days)
    store.save(ArtifactRole.LEAF_CERT, certificate)
    utils.display_cert_info(certificate)
    return 0


def _load_certificate(path: Path) -> x509.Certificate:
    # Passe par un store ad hoc pour bénéficier des mêmes erreurs typées
    store = MaterialStore(path.parent, layout={ArtifactRole.LEAF_CERT: path.name})
    return store.load(ArtifactRole.LEAF_CERT)


def cmd_verify(args) -> int:
    store = _store(args)
    certificate = _load_certificate(args.cert) if args.cert else store.load(ArtifactRole.LEAF_CERT)
    trusted_root = _load_certificate(args.root) if args.root else store.load(ArtifactRole.ROOT_CERT)

    at_time = None
    if args.at:
        try:
            at_time = datetime.fromisoformat(args.at)
        except ValueError:
            raise ParameterError(f"Date invalide: {args.at}")

    validator = ChainValidator(reject_ca_leaf=not args.allow_ca_leaf)
    result = validator.verify(certificate, trusted_root, at_time=at_time, full_report=args.full)
    validator.display_report(result)
    result.raise_for_failure()
    return 0


def cmd_bootstrap(args) -> int:
    utils.print_header("🚀 Bootstrap de l'autorité locale")
    store = _store(args)
    result = bootstrap(
        store,
        root_subject=Subject(
            common_name=args.root_cn,
            organization=args.org or None,
            country=args.country or None
        ),
        leaf_subject=_subject(args, args.dns),
        root_days=args.root_days,
        leaf_days=args.days,
        algorithm=args.algorithm,
        strength=args.bits,
        registry=_registry(args),
        show_progress=not args.quiet
    )
    utils.print_success(f"Artefacts prêts dans {result.directory}")
    return 0


def cmd_show(args) -> int:
    store = _store(args)
    role = ArtifactRole(args.role)
    material = store.load(role)

    if role.is_private:
        # Jamais de matériel privé à l'écran
        table = utils.create_table(f"{config.CLI_SYMBOLS['key']} Informations de la clé", ["Propriété", "Valeur"])
        table.add_row("Type", material.algorithm.upper())
        table.add_row("Taille", f"{material.strength} bits")
        table.add_row("Fichier", str(store.path_for(role)))
        table.add_row("Permissions", utils.get_file_info(store.path_for(role)).get("permissions", "N/A"))
        utils.console.print(table)
    elif role == ArtifactRole.LEAF_CSR:
        utils.display_csr_info(material.request)
    else:
        utils.display_cert_info(material)
    return 0


def cmd_list(args) -> int:
    _registry(args).display_certificates()
    return 0


COMMANDS = {
    "init-root": cmd_init_root,
    "rotate-root": cmd_rotate_root,
    "request": cmd_request,
    "sign": cmd_sign,
    "verify": cmd_verify,
    "bootstrap": cmd_bootstrap,
    "show": cmd_show,
    "list": cmd_list,
}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Point d'entrée CLI

    Returns:
        int: Code de sortie (0 succès, un code distinct par famille d'erreur)
    """
    args = build_parser().parse_args(argv)
    utils.set_quiet(args.quiet)

    try:
        return COMMANDS[args.command](args)
    except LocalCAError as e:
        utils.print_error(str(e))
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())
