"""Utility for initializing the Amelia POS store workbook.

The module doubles as a console script (``amelia-setup``) and as a library
used by tests or other tooling. It can also write a starter ``config.ini`` so a
fresh checkout is usable with two commands.
"""

from __future__ import annotations

import argparse
import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
import sys

from . import data_manager
from .constants import DEFAULT_PAGE_SIZE, DEFAULT_SHOP_NAME, EXPECTED_SCHEMA_VERSION

CONFIG_FILE = data_manager.CONFIG_FILE_NAME
DEFAULT_DATA_FILE = "amelia_store.xlsx"


@dataclass(frozen=True)
class SetupSettings:
    """Type-safe representation of configuration values used during setup."""

    data_file: Path


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    Relative paths inside the config file are resolved against the config
    file's directory.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")

    try:
        data_file_raw = parser.get("System", "DataFile")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        data_file_path = (config_path.parent / data_file_path).resolve()

    return SetupSettings(data_file=data_file_path)


def write_default_config(
    config_path: Path,
    *,
    data_file: str = DEFAULT_DATA_FILE,
    shop_name: str = DEFAULT_SHOP_NAME,
    overwrite: bool = False,
) -> Path:
    """Write a starter ``config.ini`` at ``config_path``.

    Raises:
        FileExistsError: If the file exists and ``overwrite`` is ``False``.
    """

    config_path = config_path.expanduser().resolve()
    if config_path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing configuration: {config_path}")

    parser = configparser.ConfigParser()
    parser.optionxform = str  # keep the CamelCase option names readable
    parser["System"] = {
        "DataFile": data_file,
        "ShopName": shop_name,
        "SchemaVersion": EXPECTED_SCHEMA_VERSION,
    }
    parser["Defaults"] = {
        "PageSize": str(DEFAULT_PAGE_SIZE),
        "ExportDirectory": ".",
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        parser.write(handle)
    return config_path


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the store workbook named by ``config_path``."""

    settings = load_settings(config_path)
    return data_manager.create_store_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the Amelia POS store file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a starter configuration file first if none exists.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Amelia POS Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        if args.init_config and not config_path.exists():
            write_default_config(config_path)
            print(f"Wrote starter configuration to '{config_path}'.")
        output_path = run_from_config(config_path, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --init-config to create a starter configuration.")
        return 1
    except KeyError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write store workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created store workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
