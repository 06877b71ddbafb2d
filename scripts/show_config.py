#!/usr/bin/env python
"""CLI helper to display the effective runtime configuration (safe subset).

Usage:
  python -m scripts.show_config
or
  python scripts/show_config.py [--inputs]

Loads the Settings (pydantic) and prints a masked snapshot; ``--inputs``
additionally unpacks the action inputs and prints the resulting fork options.
"""
from __future__ import annotations

import argparse
import json
import os, sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from forker.bootstrap import Settings  # noqa: E402
from forker.config_inspect import format_snapshot, settings_rows, unknown_inputs  # noqa: E402
from forker.core.errors import InputError  # noqa: E402
from forker.inputs import unpack_inputs  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Show the effective check-forker configuration")
    p.add_argument("--inputs", action="store_true", help="Also print the unpacked fork options")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = Settings()
    print("== Effective Runtime Configuration (safe) ==")
    print(format_snapshot(settings_rows(settings)))
    unknown = unknown_inputs(settings)
    if unknown:
        print(f"\n!! Unknown action inputs: {', '.join(unknown)}")
    if args.inputs:
        print("\n== Fork options ==")
        try:
            options = unpack_inputs(settings)
        except InputError as exc:
            print(f"invalid inputs: {exc}")
            return 1
        print(json.dumps(options.to_log_dict(), indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
