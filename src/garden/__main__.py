"""Entry point: python -m garden <command> [args]

- migrate               Bring the schema up to date (default)
- info                  Schema version, tables and row counts
- rescore               Recompute every entity's score with the stored settings
- export [file]         Passphrase-protected backup
- import <file>         Restore a passphrase-protected backup
- recover <file>        Restore without the integrity check (emergency)
- export-plain [file]   Unencrypted JSON backup
- import-plain <file>   Restore an unencrypted JSON backup
- apply-config [yaml]   Replace interaction types with the configured defaults
- passphrase            Print a fresh six-word passphrase
"""

from __future__ import annotations

import getpass
import logging
import os
import sys
import time
from pathlib import Path

from garden.config import GardenConfig, load_config
from garden.errors import BackupError

logger = logging.getLogger("garden")

USAGE = __doc__.split("\n\n", 1)[1]


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _open(config: GardenConfig):
    from garden.core import Garden

    garden = Garden(config)
    garden.start()
    return garden


def _passphrase(confirm: bool = False) -> str:
    value = os.getenv("GARDEN_PASSPHRASE")
    if value:
        return value
    value = getpass.getpass("Passphrase: ")
    if confirm and getpass.getpass("Repeat passphrase: ") != value:
        print("Passphrases do not match")
        sys.exit(1)
    return value


def _export_target(config: GardenConfig, args: list[str], suffix: str) -> Path:
    if args:
        return Path(args[0])
    stamp = time.strftime("%Y%m%d-%H%M%S")
    return config.backup.export_dir / f"garden-{stamp}{suffix}"


def _read_source(args: list[str]) -> str:
    if not args:
        print("Missing backup file argument")
        sys.exit(1)
    return Path(args[0]).read_text(encoding="utf-8")


def _run_info(config: GardenConfig) -> None:
    with _open(config) as garden:
        info = garden.migrator.describe()
        print(f"Database: {config.db_path}")
        print(f"Schema version: {info.version} (latest {info.latest})")
        for table in info.tables:
            count = garden.db.scalar(f"SELECT COUNT(*) FROM {table}", default=0)
            print(f"  {table:24} {count:6d} rows")


def _run_rescore(config: GardenConfig) -> None:
    with _open(config) as garden:
        settings = garden.settings.get()
        n = garden.scorer.update_all(settings.decay_factor, settings.decay_model)
        print(f"Rescored {n} entities")


def _run_export(config: GardenConfig, args: list[str], encrypted: bool) -> None:
    target = _export_target(config, args, ".garden" if encrypted else ".json")
    with _open(config) as garden:
        if encrypted:
            text = garden.backup.export_encrypted(_passphrase(confirm=True))
        else:
            text = garden.backup.export_plain()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    print(f"Backup written to {target}")


def _run_import(config: GardenConfig, args: list[str], mode: str) -> None:
    text = _read_source(args)
    with _open(config) as garden:
        if mode == "plain":
            counts = garden.backup.import_plain(text)
        elif mode == "recover":
            counts = garden.backup.recover_emergency(text, _passphrase())
        else:
            counts = garden.backup.import_encrypted(text, _passphrase())
    for key, n in counts.items():
        print(f"  {key:20} {n:6d}")


def _run_apply_config(config: GardenConfig, args: list[str]) -> None:
    from garden.defaults import load_default_config

    path = Path(args[0]) if args else config.default_config
    with _open(config) as garden:
        ok = garden.tags.apply_config(load_default_config(path))
    print("Interaction types replaced" if ok else "Configuration was not applied, see log")
    if not ok:
        sys.exit(1)


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "migrate"
    args = sys.argv[2:]

    if cmd == "passphrase":
        from garden.backup.passphrase import generate_passphrase

        print(generate_passphrase())
        return

    config = load_config()
    _setup_logging(config.log_level)

    try:
        if cmd == "migrate":
            with _open(config) as garden:
                print(f"Schema version {garden.db.user_version}")
        elif cmd == "info":
            _run_info(config)
        elif cmd == "rescore":
            _run_rescore(config)
        elif cmd == "export":
            _run_export(config, args, encrypted=True)
        elif cmd == "export-plain":
            _run_export(config, args, encrypted=False)
        elif cmd == "import":
            _run_import(config, args, "encrypted")
        elif cmd == "import-plain":
            _run_import(config, args, "plain")
        elif cmd == "recover":
            _run_import(config, args, "recover")
        elif cmd == "apply-config":
            _run_apply_config(config, args)
        else:
            print("Usage: python -m garden <command> [args]")
            print(USAGE)
            sys.exit(1)
    except BackupError as e:
        logger.error("Backup failed: %s", e)
        sys.exit(2)


if __name__ == "__main__":
    main()
