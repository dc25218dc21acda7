#!/usr/bin/env python3
"""Move integration secrets from .env into the system keychain.

Reads the backend ``.env`` file and stores each non-empty secret listed
in ``CREDENTIAL_KEYS`` (Intuit app credentials, Dropbox app key, n8n
webhook and callback secrets, the token encryption key) via
``keyring``. With ``--clean`` the migrated lines are removed from
``.env``; comments and non-secret settings stay. An existing keychain
TOKEN_ENCRYPTION_KEY is never replaced unless ``--replace-key`` is given,
since tokens already stored under it would become unreadable.

Usage:
    python -m scripts.migrate_env_to_keychain
    python -m scripts.migrate_env_to_keychain --clean
    python -m scripts.migrate_env_to_keychain --env-file /etc/qbreview/.env
    python -m scripts.migrate_env_to_keychain --status
    python -m scripts.migrate_env_to_keychain --forget N8N_CALLBACK_SECRET
"""

import argparse
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import dotenv_values

from services.credential_manager import (
    CREDENTIAL_KEYS,
    ROTATION_SENSITIVE_KEYS,
    UnknownCredentialError,
    credential_status,
    delete_credential,
    get_credential,
    set_credential,
)


@dataclass
class MigrationReport:
    stored: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    protected: list[str] = field(default_factory=list)

    @property
    def in_keychain(self) -> list[str]:
        return self.stored + self.unchanged


def migrate(env_path: Path, *, clean: bool = False, replace_key: bool = False) -> MigrationReport:
    """Copy secrets from ``env_path`` into the keychain.

    Raises:
        FileNotFoundError: ``env_path`` does not exist.
    """
    if not env_path.exists():
        raise FileNotFoundError(f"No .env file found at {env_path}")

    values = dotenv_values(env_path)
    report = MigrationReport()

    for key in sorted(CREDENTIAL_KEYS):
        value = values.get(key)
        if not value:
            report.missing.append(key)
            continue
        existing = get_credential(key)
        if existing == value:
            report.unchanged.append(key)
        elif existing and key in ROTATION_SENSITIVE_KEYS and not replace_key:
            report.protected.append(key)
        elif set_credential(key, value):
            report.stored.append(key)
        else:
            report.failed.append(key)

    _print_report(report)

    if clean and report.in_keychain:
        _clean_env_file(env_path, report.in_keychain)
    elif clean:
        print("Nothing to clean from .env.")
    return report


def _print_report(report: MigrationReport) -> None:
    sections = [
        ("Stored in keychain", "+", report.stored),
        ("Already in keychain", "=", report.unchanged),
        ("Not set in .env", "-", report.missing),
        ("Kept existing keychain value", "~", report.protected),
        ("Failed", "!", report.failed),
    ]
    print()
    print("Keychain migration")
    print("-" * 40)
    for title, marker, keys in sections:
        if not keys:
            continue
        print(f"\n  {title} ({len(keys)}):")
        for key in keys:
            print(f"    {marker} {key}")
    if "TOKEN_ENCRYPTION_KEY" in report.stored:
        print("\n  Keep a copy of TOKEN_ENCRYPTION_KEY: stored tokens cannot be read without it.")
    if report.protected:
        print(
            "\n  .env differs from the keychain for the keys above. Re-run with"
            " --replace-key\n  only if no tokens were encrypted under the keychain value."
        )
    print()


def _clean_env_file(env_path: Path, keys_to_remove: list[str]) -> None:
    """Remove ``KEY=`` lines for the given keys, preserving everything else."""
    pattern = re.compile(
        r"^\s*(?:export\s+)?(" + "|".join(re.escape(k) for k in keys_to_remove) + r")\s*="
    )
    lines = env_path.read_text().splitlines(keepends=True)
    env_path.write_text("".join(line for line in lines if not pattern.match(line)))
    print(f"Removed {len(keys_to_remove)} secret(s) from {env_path}")


def show_status() -> None:
    print()
    print("Keychain status")
    print("-" * 40)
    for key, present in credential_status().items():
        print(f"    {'set' if present else '---':>3}  {key}")
    print()


def forget(key: str) -> int:
    try:
        removed = delete_credential(key)
    except UnknownCredentialError as e:
        print(e)
        return 1
    print(f"Removed {key} from keychain" if removed else f"{key} was not in the keychain")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Move integration secrets from .env into the system keychain"
    )
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove migrated secrets from .env after storing them",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(__file__).parent.parent / ".env",
        help="Path to .env file (default: backend/.env)",
    )
    parser.add_argument(
        "--replace-key",
        action="store_true",
        help="Overwrite an existing keychain TOKEN_ENCRYPTION_KEY",
    )
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--status", action="store_true", help="Show which secrets are stored")
    action.add_argument("--forget", metavar="KEY", help="Remove one secret from the keychain")
    args = parser.parse_args(argv)

    if args.status:
        show_status()
        return 0
    if args.forget:
        return forget(args.forget)

    try:
        report = migrate(args.env_file, clean=args.clean, replace_key=args.replace_key)
    except FileNotFoundError as e:
        print(e)
        return 1
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
