"""Demo: Facebook Login from a console program.

Demonstrates the documented patterns:

- ``TokenFieldReader.open`` to read client credentials from a JSON file
- ``create_facebook_oauth`` for the Facebook preset
- ``authorize()`` for the interactive browser sign-in
- ``refresh()`` for a non-interactive token renewal

Setup
-----
1. Create an app at https://developers.facebook.com/apps and add the
   "Facebook Login" product.
2. Add ``http://localhost:6502/`` to its valid OAuth redirect URIs.
3. Write the credentials to ``local-secrets.json`` next to this file::

       {"client_id": "1234567890", "client_secret": "your-app-secret"}

4. Run::

       python examples/nativeauth_demo_facebook.py
"""

from __future__ import annotations

import sys

from pathlib import Path

from nativeauth import TokenFieldReader, create_facebook_oauth, enable_debug


SECRETS_FILE = Path(__file__).with_name("local-secrets.json")


def load_secrets(path: Path) -> dict[str, str]:
    """Read client_id and client_secret from a JSON file."""
    with TokenFieldReader.open(path) as reader:
        return {name: value for name, value in reader if name in ("client_id", "client_secret")}


def main() -> int:
    """Sign in, print the token lifetime, then refresh once."""
    if not SECRETS_FILE.exists():
        print(f"Missing {SECRETS_FILE.name}; see the module docstring.", file=sys.stderr)
        return 1

    if "--debug" in sys.argv:
        enable_debug()

    secrets = load_secrets(SECRETS_FILE)
    with create_facebook_oauth(secrets.get("client_id", ""), secrets.get("client_secret", "")) as session:
        if not session.authorize("email public_profile"):
            print(f"Sign-in failed: {session.error}", file=sys.stderr)
            return 1

        print(f"Signed in; access token expires in {session.expires_in}s")

        if session.refresh_token and session.refresh(session.refresh_token):
            print(f"Refreshed; new token expires in {session.expires_in}s")

    return 0


if __name__ == "__main__":
    sys.exit(main())
