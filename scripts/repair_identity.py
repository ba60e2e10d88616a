#!/usr/bin/env python3
"""Link a store user to a live identity account.

Usage:
    python scripts/repair_identity.py --email owner@example.com
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from kitchen_pos.core.database import SessionLocal  # noqa: E402
from kitchen_pos.core.errors import IdentityProviderError, NotFoundError  # noqa: E402
from kitchen_pos.core.logging_setup import configure_logging  # noqa: E402
from kitchen_pos.services.identity import get_identity_provider  # noqa: E402
from kitchen_pos.services.provisioning import repair_identity  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or link the identity account of a user.")
    parser.add_argument("--email", required=True, help="Email of the user to repair")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()

    db = SessionLocal()
    try:
        result = repair_identity(db, get_identity_provider(db), args.email)
    except NotFoundError as exc:
        print(exc.message)
        return 1
    except IdentityProviderError as exc:
        db.rollback()
        print(f"Identity provider error: {exc}")
        return 2
    finally:
        db.close()

    print(f"{args.email}: {result.status} (account={result.account_id})")
    if result.password:
        print(f"Generated password: {result.password}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
