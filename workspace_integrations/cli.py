#!/usr/bin/env python3
"""
Decode and verify an activation code copied from the admin portal.

Usage:
    wi-decode <activation-code>               # JSON, ready for connect()
    wi-decode <activation-code> --format env  # KEY=value lines for a .env file
"""

import argparse
import asyncio
import json
import sys

from workspace_integrations.core.credentials import CredentialVerifier

FIELDS = ("oauthUrl", "appUrl", "webexapisBaseUrl", "refreshToken")


def render(claims: dict, fmt: str) -> str:
    values = {field: claims.get(field) for field in FIELDS}
    if fmt == "env":
        return "\n".join(
            [
                f"OAUTH_URL={values['oauthUrl']}",
                f"APP_URL={values['appUrl']}",
                f"WEBEXAPIS_BASE_URL={values['webexapisBaseUrl']}",
                f"REFRESH_TOKEN={values['refreshToken']}",
            ]
        )
    return json.dumps(values, indent=2)


async def decode(token: str, fmt: str) -> int:
    verifier = CredentialVerifier()
    try:
        claims = await verifier.decode_and_verify(token)
    finally:
        await verifier.close()
    if not claims:
        print(
            "Not able to verify activation code (JWT)! Are you sure you copied the whole string?",
            file=sys.stderr,
        )
        return 1

    print("Activation code verified. Use the data below for connecting your integration:\n")
    print(render(claims, fmt))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Decode and verify an integration activation code")
    parser.add_argument("activation_code", help="Signed activation code (JWT)")
    parser.add_argument("--format", choices=["json", "env"], default="json", help="Output format")
    args = parser.parse_args(argv)
    return asyncio.run(decode(args.activation_code, args.format))


if __name__ == "__main__":
    sys.exit(main())
