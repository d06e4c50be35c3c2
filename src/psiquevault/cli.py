"""
Maintenance CLI for a PsiqueVault storage file.

Examples:

    psiquevault --db vault.db init
    psiquevault --db vault.db register alice@example.com
    psiquevault --db vault.db check alice@example.com
    psiquevault --db vault.db passwd alice@example.com

Passwords are always read with getpass, never taken from argv.
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from typing import List, Optional

from .config import VaultConfig
from .core.exceptions import AuthenticationError, PsiqueVaultError
from .core.models import ABSENT, EntityKind
from .core.vault import Vault
from .logging_config import configure_logging
from .security.kdf import kdf_params_to_dict

logger = logging.getLogger(__name__)


def _ask_password(prompt: str = "Password: ") -> str:
    return getpass.getpass(prompt)


def _ask_new_password() -> str:
    first = getpass.getpass("New password: ")
    second = getpass.getpass("Repeat new password: ")
    if first != second:
        raise SystemExit("Passwords do not match.")
    return first


def cmd_init(vault: Vault, args) -> int:
    print(json.dumps(kdf_params_to_dict(vault.salt, vault.config.kdf_iterations), indent=2))
    return 0


def cmd_register(vault: Vault, args) -> int:
    account = vault.register(args.email, _ask_new_password())
    print(f"Registered {account.email} (role: {account.role.value}).")
    return 0


def cmd_accounts(vault: Vault, args) -> int:
    accounts = vault.registry.list_accounts()
    if not accounts:
        print("No accounts registered.")
        return 0
    for account in accounts:
        kinds = ", ".join(k.value for k in vault.blobs.kinds_present(account.email)) or "-"
        print(f"{account.email}\t{account.role.value}\t{account.created_at}\t{kinds}")
    return 0


def cmd_check(vault: Vault, args) -> int:
    """Open every collection of an account and report what happened."""
    password = _ask_password()
    account = vault.registry.authenticate(args.email, password)
    vault.session.unlock(account, vault.derive_key(password))
    failures = 0
    for kind in EntityKind:
        try:
            payload = vault.load(kind)
        except AuthenticationError:
            failures += 1
            print(f"{kind.value:<13} CORRUPTED (wrong key or tampered data)")
            continue
        if payload is ABSENT:
            print(f"{kind.value:<13} absent")
        else:
            print(f"{kind.value:<13} ok ({len(payload)} records)")
    vault.logout()
    return 1 if failures else 0


def cmd_passwd(vault: Vault, args) -> int:
    current = _ask_password("Current password: ")
    vault.login(args.email, current)
    vault.change_password(current, _ask_new_password())
    vault.logout()
    print("Password changed; all data re-encrypted.")
    return 0


def cmd_rename(vault: Vault, args) -> int:
    vault.login(args.email, _ask_password())
    renamed = vault.update_email(args.new_email)
    vault.logout()
    print(f"Account renamed to {renamed.email}.")
    return 0


def cmd_delete(vault: Vault, args) -> int:
    actor = args.as_email or args.email
    vault.login(actor, _ask_password(f"Password for {actor}: "))
    vault.delete_account(args.email)
    vault.logout()
    print(f"Deleted {args.email} and all of its data.")
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="psiquevault",
        description="Inspect and maintain a PsiqueVault encrypted store.",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite store (default: $PSIQUEVAULT_DB_PATH or ~/.psiquevault/psiquevault.db)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: $PSIQUEVAULT_LOG_LEVEL or INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create the store and print KDF parameters")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("register", help="Register a new account")
    p.add_argument("email")
    p.set_defaults(func=cmd_register)

    p = sub.add_parser("accounts", help="List accounts and their stored collections")
    p.set_defaults(func=cmd_accounts)

    p = sub.add_parser("check", help="Verify that every collection of an account opens")
    p.add_argument("email")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("passwd", help="Change an account password and re-encrypt its data")
    p.add_argument("email")
    p.set_defaults(func=cmd_passwd)

    p = sub.add_parser("rename", help="Change an account email and move its data")
    p.add_argument("email")
    p.add_argument("new_email")
    p.set_defaults(func=cmd_rename)

    p = sub.add_parser("delete", help="Delete an account and all of its data")
    p.add_argument("email")
    p.add_argument(
        "--as",
        dest="as_email",
        default=None,
        help="Administrator account performing the deletion (default: the account itself)",
    )
    p.set_defaults(func=cmd_delete)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    config = VaultConfig.from_env(db_path=args.db_path, log_level=args.log_level)
    configure_logging(config.log_level)

    try:
        with Vault(config) as vault:
            return args.func(vault, args)
    except (PsiqueVaultError, ValueError) as e:
        logger.debug("command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
