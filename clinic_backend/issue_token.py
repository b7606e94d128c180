"""Print a signed staff access token to stdout.

Usage:
    python -m clinic_backend.issue_token staff@clinic.example [--minutes 120]
"""
import argparse
import sys

from clinic_backend.auth.jwt_handler import create_access_token
from clinic_backend.core import config


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Mint a bearer token for a staff account.")
    parser.add_argument("email")
    parser.add_argument("--minutes", type=int, default=None)
    args = parser.parse_args(argv)

    try:
        config.validate_runtime_config()
        token = create_access_token(args.email, expires_minutes=args.minutes)
    except (RuntimeError, ValueError) as exc:
        print(exc, file=sys.stderr)
        sys.exit(1)

    print(token)


if __name__ == "__main__":
    main()
