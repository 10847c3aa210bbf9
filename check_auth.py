"""
Diagnostics for the identity provider configuration.

    python check_auth.py                      # show configuration
    python check_auth.py user@example.com     # also sign in and report MFA status
"""
import asyncio
import getpass
import os
import sys

import toml

from infrastructure.identity.gotrue_provider import GoTrueIdentityProvider
from infrastructure.observability import setup_observability
from use_cases.auth_errors import AuthError
from use_cases.login_flow import check_mfa_status

SECRETS_FILE = ".streamlit/secrets.toml"
KEYS = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "MFA_ISSUER", "MFA_CODE_LENGTH", "AUTH_REQUEST_TIMEOUT", "REQUIRE_MFA")


def load_settings(path=SECRETS_FILE):
    try:
        secrets = toml.load(path)
    except (FileNotFoundError, toml.TomlDecodeError) as e:
        print(f"⚠️ {path} not loaded ({e.__class__.__name__}), falling back to environment")
        secrets = {}
    return {key: secrets.get(key) or os.getenv(key) for key in KEYS}


def _masked(key, value):
    if value is None:
        return "-"
    if key == "SUPABASE_ANON_KEY":
        return f"{str(value)[:6]}... ({len(str(value))} chars)"
    return str(value)


async def report_mfa(provider, email, password):
    result = await provider.sign_in(email, password)
    print(f"✅ Signed in as {result.user.email} (role={result.user.role}, aal={result.session.aal})")
    try:
        status = await check_mfa_status(provider)
        print(f"   assurance: current={status.current_level} next={status.next_level}")
        for factor in status.factors:
            print(f"   factor {factor.id}: {factor.factor_type} {factor.status}")
        if status.requires_enrollment:
            print("   ➡️ next login step: ENROLL")
        elif status.requires_challenge:
            print("   ➡️ next login step: VERIFY")
        else:
            print("   ➡️ next login step: DONE")
    finally:
        await provider.sign_out()


def main(argv):
    setup_observability()
    settings = load_settings()
    print("🔐 Identity provider configuration")
    for key in KEYS:
        print(f"   {key}: {_masked(key, settings[key])}")

    if not settings["SUPABASE_URL"] or not settings["SUPABASE_ANON_KEY"]:
        print("❌ SUPABASE_URL and SUPABASE_ANON_KEY are required.")
        return 1
    if not argv:
        return 0

    provider = GoTrueIdentityProvider(
        settings["SUPABASE_URL"],
        settings["SUPABASE_ANON_KEY"],
        timeout=float(settings["AUTH_REQUEST_TIMEOUT"] or 10),
    )
    try:
        asyncio.run(report_mfa(provider, argv[0], getpass.getpass("Password: ")))
    except AuthError as e:
        print(f"❌ {e.kind.value}: {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
