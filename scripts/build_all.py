#!/usr/bin/env python
"""
Build pipeline - builds the catalog, compiles service mappings and runs tests.

Usage:
    python scripts/build_all.py [--skip-tests]
"""
import subprocess
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from pricing_simulator.config.settings import get_settings
from pricing_simulator.data.build_catalog import build_catalog
from pricing_simulator.rules.compile_mappings import compile_mappings


def main():
    settings = get_settings()

    print("=" * 60)
    print("PRICING SIMULATOR BUILD PIPELINE")
    print("=" * 60)
    print()

    print("[1/3] Building catalog...")
    report = build_catalog(settings, verbose=True)

    if report["status"] != "success":
        print("\n❌ BUILD FAILED")
        for error in report["errors"]:
            print(f"  ERROR: {error}")
        sys.exit(1)

    print()
    print("[2/3] Compiling service mappings...")
    success, mappings, errors = compile_mappings(
        settings.mappings_csv,
        settings.compiled_mappings,
        catalog_json=settings.catalog_json,
    )
    if not success:
        print(f"\n❌ MAPPING COMPILATION FAILED ({len(errors)} errors)")
        sys.exit(1)

    if '--skip-tests' not in sys.argv:
        print()
        print("[3/3] Running tests...")

        test_result = subprocess.run(
            [sys.executable, '-m', 'pytest', 'tests', '-q', '--tb=short'],
            cwd=Path(__file__).parent.parent
        )

        if test_result.returncode != 0:
            print("\n❌ TESTS FAILED")
            sys.exit(1)

    metrics = report['metrics']
    print()
    print("=" * 60)
    print("✅ BUILD COMPLETE")
    print("=" * 60)
    print()
    print("Summary:")
    print(f"  Items: {metrics['final_item_count']} ({metrics['tiered_items']} tiered)")
    print(f"  One-time / monthly: {metrics['one_time_items']} / {metrics['monthly_items']}")
    print(f"  Duplicates removed: {metrics['duplicates_removed']}")
    print(f"  Service mappings: {len(mappings)}")
    if report["warnings"]:
        print()
        print("Warnings:")
        for warning in report["warnings"]:
            print(f"  {warning}")


if __name__ == "__main__":
    main()
