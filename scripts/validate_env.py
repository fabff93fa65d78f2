#!/usr/bin/env python3
"""
Check the tunnel-autopilot configuration (.env and environment) without
starting anything. Exit code 0 when valid, 1 otherwise.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.env_validator import print_validation_report, validate_all


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Validate tunnel-autopilot configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/validate_env.py              # Report and exit code
  python scripts/validate_env.py -v           # Also list every setting
  python scripts/validate_env.py --strict     # Treat warnings as errors
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="List every setting and whether it is set")
    parser.add_argument("--strict", action="store_true", help="Fail on warnings too (e.g. malformed trusted ranges)")
    args = parser.parse_args(argv)

    print_validation_report(verbose=args.verbose)

    is_valid, _, warnings = validate_all()
    if args.strict and warnings:
        return 1
    return 0 if is_valid else 1


if __name__ == "__main__":
    sys.exit(main())
