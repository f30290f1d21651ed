#!/usr/bin/env python
"""Issue a bearer token for study staff.

Archived consent records (GET /api/v1/records/{reference}) are only served
to staff. Tokens are signed with SECRET_KEY from the environment or .env,
so run this with the same configuration as the API.

Usage:
    python scripts/issue_staff_token.py coordinator@example.org
    python scripts/issue_staff_token.py coordinator@example.org --minutes 15
"""

import argparse
from datetime import timedelta

from econsent.core.config import settings
from econsent.core.security import create_staff_token


def main():
    """Print a staff bearer token."""
    parser = argparse.ArgumentParser(description="Issue a staff bearer token")
    parser.add_argument("staff_id", help="Staff identifier, e.g. coordinator e-mail")
    parser.add_argument(
        "--minutes",
        type=int,
        default=settings.staff_token_expire_minutes,
        help="Token lifetime in minutes",
    )
    args = parser.parse_args()

    if settings.is_prod and settings.secret_key == "CHANGE_ME_IN_PRODUCTION":
        parser.error("SECRET_KEY is not configured")

    token = create_staff_token(args.staff_id, settings, timedelta(minutes=args.minutes))
    print(token)


if __name__ == "__main__":
    main()
