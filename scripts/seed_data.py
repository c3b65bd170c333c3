#!/usr/bin/env python3
"""Seed the ranch ledger with managers and stock thresholds.

This script creates:
1. Managers and supervisors from the seed file
2. Stock min/max configs per inventory item

Existing managers and configs with the same id are updated in place. The
ledger itself is never touched.

Usage:
    python scripts/seed_data.py
    python scripts/seed_data.py --file scripts/seed.yaml
"""

import argparse
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ranch_ledger.config import get_settings
from ranch_ledger.errors import LedgerError
from ranch_ledger.managers import ManagerRegistry
from ranch_ledger.stock import StockConfigStore

DEFAULT_SEED_FILE = Path(__file__).parent / "seed.yaml"


def load_seed(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise SystemExit(f"{path} must contain a mapping")
    return data


def seed_managers(registry: ManagerRegistry, managers: list[dict[str, Any]]) -> int:
    """Create or update every manager in the seed file."""
    count = 0
    for raw in managers:
        try:
            weekly = raw.get("weekly_payment")
            manager = registry.add_or_edit(
                str(raw["id"]),
                raw["name"],
                raw.get("role", "manager"),
                active=raw.get("active"),
                weekly_payment=Decimal(str(weekly)) if weekly is not None else None,
            )
        except (KeyError, LedgerError) as e:
            print(f"  ✗ Skipped manager {raw!r}: {e}")
            continue
        print(f"  ✓ {manager.name} ({manager.role.value}, FIXO {manager.id})")
        count += 1
    return count


def seed_stock(stock: StockConfigStore, configs: list[dict[str, Any]]) -> int:
    """Create or replace every stock config in the seed file."""
    count = 0
    for raw in configs:
        try:
            config = stock.upsert(raw)
        except LedgerError as e:
            print(f"  ✗ Skipped stock config {raw.get('id')!r}: {e}")
            continue
        print(f"  ✓ {config.name}: min {config.minimum}, max {config.maximum}")
        count += 1
    return count


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed managers and stock thresholds")
    parser.add_argument(
        "--file", type=Path, default=DEFAULT_SEED_FILE, help="YAML seed file"
    )
    args = parser.parse_args()

    settings = get_settings()
    seed = load_seed(args.file)

    print("=" * 60)
    print("Ranch Ledger - Seeding")
    print("=" * 60)
    print(f"\nSeed file: {args.file}")
    print(f"Data dir:  {settings.data_dir}")

    print("\n" + "-" * 60)
    print("Step 1: Managers")
    print("-" * 60)
    registry = ManagerRegistry(settings.managers_path)
    managers = seed_managers(registry, seed.get("managers") or [])

    print("\n" + "-" * 60)
    print("Step 2: Stock Thresholds")
    print("-" * 60)
    stock = StockConfigStore(settings.stock_path)
    configs = seed_stock(stock, seed.get("stock") or [])

    print("\n" + "=" * 60)
    print("SEEDING COMPLETE!")
    print("=" * 60)
    print(f"\n{managers} manager(s), {configs} stock config(s)")
    print("\nYou can now run the API:")
    print("  ranch-ledger serve")


if __name__ == "__main__":
    main()
