#!/usr/bin/env python
"""CLI utility to print a user's effective permissions."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from authcore.core.database import session_scope
from authcore.services.errors import AuthCoreError
from authcore.services.permissions import PermissionService


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Resolve effective permissions for a user.")
    parser.add_argument("user_id", type=int, help="User to resolve.")
    parser.add_argument("--app-id", type=int, default=None, help="Single app; all reachable apps when omitted.")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        with session_scope() as session:
            service = PermissionService(session)
            if args.app_id is None:
                result = service.permissions_by_app(args.user_id)
            else:
                result = service.effective_permissions(args.user_id, args.app_id)
    except AuthCoreError as exc:
        logging.error("Resolution failed (%s): %s", exc.kind, exc)
        return 1

    json.dump(result, sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
