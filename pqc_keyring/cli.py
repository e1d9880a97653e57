"""
Keyring CLI Interface

Command-line front-end over the key stores, key files, contact cache and
key distribution protocol.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import KeyringConfig
from .distribution.transport import OutboxTransport
from .exceptions import KeyringError
from .keyring import Keyring, create_keyring
from .models import Account, KeyKind
from .signing import CompositeSignature
from .utils.files import atomic_write_bytes, read_bytes

logger = logging.getLogger(__name__)

PASSWORD_ENV = "PQC_KEYRING_FILE_PASSWORD"


class KeyringCLI:
    """
    Command-line interface for the keyring.

    Provides:
    - Key generation and status per account
    - Key file export and import
    - Contact listing
    - Key announcements and ingestion
    - Composite signing and verification
    """

    # ANSI color codes
    COLORS = {
        "reset": "\033[0m",
        "bold": "\033[1m",
        "red": "\033[91m",
        "green": "\033[92m",
        "yellow": "\033[93m",
    }

    def __init__(self, keyring: Keyring, use_colors: bool = True):
        self.keyring = keyring
        self.use_colors = use_colors

    def _color(self, text: str, color: str) -> str:
        """Apply color to text."""
        if not self.use_colors:
            return text
        return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"

    # =========================================================================
    # Commands
    # =========================================================================

    def generate(self, account_id: str, kind: KeyKind, algorithm: Optional[str]) -> int:
        worker = self.keyring.create_worker()
        try:
            public_key = worker.generate_key_pair(kind, account_id, algorithm).result()
        finally:
            worker.shutdown()

        store = self.keyring.registry.get(kind)
        print(
            f"{self._color('Generated', 'green')} {kind.label} key pair "
            f"({store.selected_algorithm(account_id)}, {len(public_key)}-byte public key) "
            f"for {account_id}"
        )
        return 0

    def status(self, account_id: str) -> int:
        print(self._color(f"Keys for {account_id}", "bold"))
        print("-" * 40)
        for kind, info in self.keyring.keys.key_status(account_id).items():
            algorithm = info["algorithm"] or "-"
            print(f"  {kind.label:<14} {info['state']:<20} {algorithm}")
        return 0

    def export(
        self,
        account: Account,
        kind: KeyKind,
        path: Path,
        password: Optional[str],
        include_private_key: bool,
    ) -> int:
        written = self.keyring.key_files.export_key_file(
            path, account, kind, password=password, include_private_key=include_private_key
        )
        print(f"{self._color('Exported', 'green')} {kind.label} key to {written}")
        return 0

    def import_file(self, account_id: str, path: Path, password: Optional[str]) -> int:
        result = self.keyring.key_files.import_key_file(path, account_id, password)
        target = "own key pair" if result.own_key_pair else f"contact {result.email}"
        print(
            f"{self._color('Imported', 'green')} {result.kind.label} key "
            f"({result.algorithm}) as {target}"
        )
        return 0

    def clear(
        self,
        account_id: str,
        kind: Optional[KeyKind],
        delete_remote_too: bool,
        identity: Optional[str],
    ) -> int:
        if kind is None:
            cleared = self.keyring.keys.clear_all_user_keys(account_id, delete_remote_too, identity)
        else:
            store = self.keyring.registry.get(kind)
            cleared = [kind] if store.has_own_key_pair(account_id) else []
            store.clear_all_keys(account_id, delete_remote_too, identity)

        labels = ", ".join(k.label for k in cleared) or "nothing"
        print(f"{self._color('Cleared', 'yellow')} {labels} for {account_id}")
        return 0

    def contacts(self, kind: Optional[KeyKind]) -> int:
        entries = sorted(
            self.keyring.cache.get_all_contacts(kind),
            key=lambda e: (e.identifier.lower(), e.kind.value),
        )
        if not entries:
            print("No contacts")
            return 0
        for entry in entries:
            secret = " +secret" if entry.shared_secret else ""
            print(
                f"  {entry.identifier.lower():<32} {entry.kind.label:<14} "
                f"{entry.algorithm}{secret}"
            )
        return 0

    def announce(self, account: Account, recipients: List[str], outbox: Path) -> int:
        self.keyring.protocol.transport = OutboxTransport(outbox)
        request = self.keyring.protocol.send_announcement(account, recipients)
        names = ", ".join(a.filename for a in request.attachments)
        print(f"{self._color('Announced', 'green')} {names} to {', '.join(request.recipients)}")
        return 0

    def ingest(self, path: Path) -> int:
        report = self.keyring.protocol.ingest_announcement(read_bytes(path))
        for kind, algorithm in report.stored:
            print(f"  {self._color('stored', 'green')}  {kind.label} ({algorithm})")
        for error in report.errors:
            print(f"  {self._color('skipped', 'red')} {error.kind.label}: {error.reason}")
        return 0 if not report.errors else 1

    def sign(self, account_id: str, path: Path, output: Path) -> int:
        signature = self.keyring.signer.sign_all(account_id, read_bytes(path))
        written = atomic_write_bytes(
            output, json.dumps(signature.to_armored(), indent=2).encode("utf-8")
        )
        print(
            f"{self._color('Signed', 'green')} {path} with {signature.classical_algorithm} "
            f"+ {signature.pqc_algorithm} -> {written}"
        )
        return 0

    def verify(self, sender: str, path: Path, signature_path: Path) -> int:
        try:
            blocks = json.loads(read_bytes(signature_path).decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            print(f"Error: {signature_path} is not a signature file ({e})", file=sys.stderr)
            return 1

        result = self.keyring.signer.verify_all(
            sender, read_bytes(path), CompositeSignature.from_armored(blocks)
        )
        if result.valid:
            print(f"{self._color('Valid', 'green')} signature from {result.sender}")
            return 0
        print(f"{self._color('Invalid', 'red')} signature from {result.sender}")
        for error in result.errors:
            print(f"  {error}")
        return 1

    def show_config(self) -> int:
        config = self.keyring.config
        print(json.dumps(config.to_dict(), indent=2))
        return 0


def _parse_kind(value: str) -> KeyKind:
    aliases = {"pgp": KeyKind.CLASSICAL, "sig": KeyKind.PQC_SIGNATURE, "kem": KeyKind.PQC_KEM}
    try:
        return aliases.get(value.lower()) or KeyKind(value.lower())
    except ValueError:
        raise argparse.ArgumentTypeError(f"Unknown key kind: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pqc-keyring",
        description="PQC keyring CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Key kinds: classical (pgp), pqc_sig (sig), pqc_kem (kem)

Examples:
  %(prog)s generate acct-1 kem --algorithm Kyber768
  %(prog)s export acct-1 kem alice.pqk --email alice@example.com
  %(prog)s import acct-2 alice.pqk
  %(prog)s announce acct-1 --email alice@example.com --to bob@example.com --outbox ./outbox
  %(prog)s sign acct-1 message.txt --out message.sig
  %(prog)s verify alice@example.com message.txt message.sig
        """,
    )
    parser.add_argument("--config", type=Path, help="JSON configuration file")
    parser.add_argument("--data-dir", type=Path, help="Data directory override")
    parser.add_argument("--backend", choices=["oqs", "mock"], help="PQC backend override")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("generate", help="Generate a key pair")
    p.add_argument("account")
    p.add_argument("kind", type=_parse_kind)
    p.add_argument("--algorithm")

    p = sub.add_parser("status", help="Show key status of an account")
    p.add_argument("account")

    p = sub.add_parser("export", help="Export a key file (.pqk)")
    p.add_argument("account")
    p.add_argument("kind", type=_parse_kind)
    p.add_argument("path", type=Path)
    p.add_argument("--email", required=True)
    p.add_argument("--password", help=f"File password (or set {PASSWORD_ENV})")
    p.add_argument("--include-private", action="store_true")

    p = sub.add_parser("import", help="Import a key file (.pqk)")
    p.add_argument("account")
    p.add_argument("path", type=Path)
    p.add_argument("--password", help=f"File password (or set {PASSWORD_ENV})")

    p = sub.add_parser("clear", help="Clear own key pairs")
    p.add_argument("account")
    p.add_argument("--kind", type=_parse_kind)
    p.add_argument("--delete-remote", action="store_true")
    p.add_argument("--identity")

    p = sub.add_parser("contacts", help="List cached contact keys")
    p.add_argument("--kind", type=_parse_kind)

    p = sub.add_parser("announce", help="Announce public keys to recipients")
    p.add_argument("account")
    p.add_argument("--email", required=True)
    p.add_argument("--to", action="append", required=True, dest="recipients")
    p.add_argument("--outbox", type=Path, required=True)

    p = sub.add_parser("ingest", help="Ingest a received announcement (JSON)")
    p.add_argument("path", type=Path)

    p = sub.add_parser("sign", help="Sign a file with classical and PQC keys")
    p.add_argument("account")
    p.add_argument("path", type=Path)
    p.add_argument("--out", type=Path, required=True, dest="output")

    p = sub.add_parser("verify", help="Verify a composite signature")
    p.add_argument("sender")
    p.add_argument("path", type=Path)
    p.add_argument("signature", type=Path)

    sub.add_parser("config", help="Show effective configuration")

    return parser


def load_config(args: argparse.Namespace) -> KeyringConfig:
    config = KeyringConfig.from_file(args.config) if args.config else KeyringConfig.from_environment()
    if args.data_dir:
        config.storage.data_directory = args.data_dir
    if args.backend:
        config.backend = args.backend
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    password = getattr(args, "password", None) or os.environ.get(PASSWORD_ENV)

    try:
        keyring = create_keyring(load_config(args))
    except KeyringError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    cli = KeyringCLI(keyring, use_colors=not args.no_color)
    try:
        with keyring:
            if args.command == "generate":
                return cli.generate(args.account, args.kind, args.algorithm)
            if args.command == "status":
                return cli.status(args.account)
            if args.command == "export":
                account = Account(account_id=args.account, email=args.email)
                return cli.export(account, args.kind, args.path, password, args.include_private)
            if args.command == "import":
                return cli.import_file(args.account, args.path, password)
            if args.command == "clear":
                return cli.clear(args.account, args.kind, args.delete_remote, args.identity)
            if args.command == "contacts":
                return cli.contacts(args.kind)
            if args.command == "announce":
                account = Account(account_id=args.account, email=args.email)
                return cli.announce(account, args.recipients, args.outbox)
            if args.command == "ingest":
                return cli.ingest(args.path)
            if args.command == "sign":
                return cli.sign(args.account, args.path, args.output)
            if args.command == "verify":
                return cli.verify(args.sender, args.path, args.signature)
            if args.command == "config":
                return cli.show_config()
    except (KeyringError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
