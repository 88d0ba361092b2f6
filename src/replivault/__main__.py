# Main Entry Point - Command Line
#
# Thin argparse front end over VaultManager. One manager per invocation;
# passphrases are always read with getpass, never from argv.

import argparse
import getpass
import logging
import sys
from typing import List, Optional

from . import __version__
from .core import BackendFailures, VaultConfig, VaultError
from .vault import (
    BackendTarget,
    PasswordOptions,
    Record,
    RecordRequest,
    VaultManager,
)


def _open_vault(config_path: Optional[str]) -> VaultManager:
    """Load config and initialize; tolerate partial load failures."""
    manager = VaultManager(VaultConfig.load(config_path))
    try:
        manager.initialize()
    except BackendFailures as exc:
        if not manager.loaded_targets:
            raise
        print(f"[WARN] {exc}", file=sys.stderr)
    return manager


def _read_passphrase(manager: VaultManager, confirm: bool = False) -> str:
    passphrase = getpass.getpass("Passphrase: ")
    if confirm and getpass.getpass("Confirm passphrase: ") != passphrase:
        raise ValueError("passphrases do not match")
    if not manager.verify_master_passphrase(passphrase):
        raise ValueError("master passphrase rejected")
    return passphrase


def _target(value: Optional[str]) -> Optional[BackendTarget]:
    return BackendTarget.parse(value) if value else None


def _print_record(record: Record, secret: Optional[str] = None) -> None:
    print(f"{record.title}  [{record.id}]")
    print(f"  username:    {record.username}")
    if record.description:
        print(f"  description: {record.description}")
    if record.url:
        print(f"  url:         {record.url}")
    if record.tags:
        print(f"  tags:        {', '.join(sorted(record.tags))}")
    print(f"  updated:     {record.updated_at.isoformat()}")
    if secret is not None:
        print(f"  password:    {secret}")


def cmd_add(args: argparse.Namespace) -> int:
    manager = _open_vault(args.config)
    if args.generate:
        options = PasswordOptions(length=args.length) if args.length else None
        password = manager.generate_password(options)
    else:
        password = getpass.getpass("Password to store: ")
    passphrase = _read_passphrase(manager, confirm=True)

    request = RecordRequest(
        title=args.title,
        username=args.username,
        password=password,
        description=args.description,
        tags=set(args.tag),
        url=args.url,
    )
    try:
        record = manager.add(request, passphrase)
    except BackendFailures as exc:
        print(f"[WARN] record kept in the remaining backends: {exc}", file=sys.stderr)
        return 1
    print(f"Added {record.title} [{record.id}]")
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    manager = _open_vault(args.config)
    records = manager.search(args.query, _target(args.target))
    for record in records:
        print(f"{record.id}  {record.title}  ({record.username})")
    print(f"{len(records)} record(s)")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    manager = _open_vault(args.config)
    target = _target(args.target)
    record = manager.get(args.record_id, target)
    secret = None
    if args.reveal:
        secret = manager.decrypt_record(args.record_id, _read_passphrase(manager), target)
    _print_record(record, secret)
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    manager = _open_vault(args.config)
    manager.delete(args.record_id)
    print(f"Deleted {args.record_id}")
    return 0


def cmd_generate(args: argparse.Namespace) -> int:
    manager = _open_vault(args.config)
    options = PasswordOptions(
        length=args.length or manager.config.settings.default_password_length,
        exclude_chars=args.exclude,
        uppercase=not args.no_uppercase,
        lowercase=not args.no_lowercase,
        digits=not args.no_digits,
        symbols=not args.no_symbols,
    )
    print(manager.generate_password(options))
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    manager = VaultManager(VaultConfig.load(args.config))
    try:
        manager.initialize()
    except BackendFailures as exc:
        print(f"[WARN] {exc}", file=sys.stderr)

    for target, status in manager.status().items():
        state = "loaded" if status.loaded else "not loaded"
        reach = "reachable" if status.reachable else f"unreachable ({status.error})"
        line = f"{target.label:<8} {state}, {reach}, {status.record_count} record(s)"
        if status.last_sync is not None:
            line += f", last sync {status.last_sync.isoformat()}"
        print(line)
    return 0


def cmd_push(args: argparse.Namespace) -> int:
    manager = _open_vault(args.config)
    target = BackendTarget.parse(args.target)
    manager.push(target)
    print(f"Pushed cached snapshot to {target.label}")
    return 0


def cmd_reload(args: argparse.Namespace) -> int:
    manager = VaultManager(VaultConfig.load(args.config))
    try:
        manager.initialize()
    except BackendFailures:
        pass  # reload below reports the backend that matters
    target = BackendTarget.parse(args.target)
    snapshot = manager.reload(target)
    print(f"Reloaded {len(snapshot)} record(s) from {target.label}")
    return 0


def cmd_set_master(args: argparse.Namespace) -> int:
    manager = VaultManager(VaultConfig.load(args.config))
    if not manager.verify_master_passphrase(getpass.getpass("Current master passphrase: ")):
        raise ValueError("master passphrase rejected")
    passphrase = getpass.getpass("New master passphrase: ")
    if getpass.getpass("Confirm: ") != passphrase:
        raise ValueError("passphrases do not match")
    manager.set_master_passphrase(passphrase)
    path = manager.config.save(args.config)
    print(f"Master passphrase saved to {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="replivault",
        description="Replivault - local-first credential vault",
    )
    parser.add_argument("--config", help="Config file (default: $REPLIVAULT_CONFIG or ~/.replivault/config.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"Replivault v{__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add", help="Add a record")
    p.add_argument("title")
    p.add_argument("username")
    p.add_argument("--description", default="")
    p.add_argument("--tag", action="append", default=[], help="Tag (repeatable)")
    p.add_argument("--url")
    p.add_argument("--generate", action="store_true", help="Generate the password instead of prompting")
    p.add_argument("--length", type=int, help="Generated password length")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("search", help="Search titles and descriptions")
    p.add_argument("query", nargs="?", default="")
    p.add_argument("--target", choices=[t.value for t in BackendTarget])
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("show", help="Show a record")
    p.add_argument("record_id")
    p.add_argument("--target", choices=[t.value for t in BackendTarget])
    p.add_argument("--reveal", action="store_true", help="Decrypt and print the password")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("delete", help="Delete a record from every backend")
    p.add_argument("record_id")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("generate", help="Generate a random password")
    p.add_argument("--length", type=int)
    p.add_argument("--exclude", default="", help="Characters to leave out")
    p.add_argument("--no-uppercase", action="store_true")
    p.add_argument("--no-lowercase", action="store_true")
    p.add_argument("--no-digits", action="store_true")
    p.add_argument("--no-symbols", action="store_true")
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser("status", help="Show backend status")
    p.set_defaults(func=cmd_status)

    for name, func, help_text in (
        ("push", cmd_push, "Re-save the cached snapshot to one backend"),
        ("reload", cmd_reload, "Re-read one backend into the cache"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("target", choices=[t.value for t in BackendTarget])
        p.set_defaults(func=func)

    p = sub.add_parser("set-master", help="Set the master passphrase")
    p.set_defaults(func=cmd_set_master)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for Replivault."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except (VaultError, ValueError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nAborted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
