#!/usr/bin/env python3
"""
KeyRelay -- custodial API key sessions and a streaming chat relay.

Usage:
  python main.py check-key              # prompt for a key, format check only
  python main.py check-key --live       # also ask the provider if it is accepted
  echo "$OPENAI_API_KEY" | python main.py check-key --live
  python main.py gen-secrets >> .env
  python main.py check-env
  python main.py serve --port 8080

Environment variables:
  ENCRYPTION_SECRET  Master secret for the encrypted-credential cookie (required).
  SESSION_SECRET     Signing secret for the session-token cookie (required).
  DEBUG              true = generate missing secrets, disable secure cookies.

Keys are read from stdin or a hidden prompt, never from argv, so they do not
end up in shell history or the process list.
"""

import argparse
import getpass
import logging
import secrets
import sys

from pydantic import ValidationError

from core.redaction import install_redaction


def _read_key() -> str:
    """Read one key from a pipe, or prompt without echo on a terminal."""
    if sys.stdin.isatty():
        return getpass.getpass("API key: ").strip()
    return sys.stdin.readline().strip()


def cmd_check_key(args: argparse.Namespace) -> int:
    from core.fetcher import DEFAULT_PROVIDER_URL, check_key_liveness, liveness_error
    from core.validation import format_error, validate_key_format

    key = _read_key()
    if not key:
        print("  [!] No key given.")
        return 2

    result = validate_key_format(key)
    if not result.is_valid:
        error = format_error(result)
        print(f"  [!] {error.title}: {error.message}")
        print(f"      {error.action}")
        return 1
    print(f"  Format OK -- {result.key_type.value} key ({result.format}, {result.length} chars)")

    if not args.live:
        return 0

    print("  Checking with provider...", end=" ", flush=True)
    liveness = check_key_liveness(key, base_url=args.provider_url or DEFAULT_PROVIDER_URL, timeout=args.timeout)
    if liveness.is_live:
        print("accepted.")
        return 0
    error = liveness_error(liveness)
    print("rejected.")
    print(f"  [!] {error.title}: {error.message}")
    print(f"      {error.action}")
    return 1


def cmd_gen_secrets(args: argparse.Namespace) -> int:
    print(f"ENCRYPTION_SECRET={secrets.token_urlsafe(48)}")
    print(f"SESSION_SECRET={secrets.token_urlsafe(48)}")
    return 0


def cmd_check_env(args: argparse.Namespace) -> int:
    from core.config import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        print("  [!] Configuration is not usable:")
        for err in e.errors():
            print(f"      - {err.get('msg', 'invalid value')}")
        print("  Suggestions:")
        print("      - Run `python main.py gen-secrets >> .env` to create both secrets.")
        print("      - Or set DEBUG=true to run locally with generated secrets.")
        return 1

    mode = "development" if settings.debug else "production"
    print(f"  Configuration OK ({mode} mode)")
    print(f"  Provider URL:  {settings.provider_base_url}")
    print(f"  Chat backend:  {settings.upstream_base_url}")
    print(f"  Secure cookies: {settings.secure_cookies}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="keyrelay",
        description="Custodial API key sessions and a streaming chat relay.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py check-key --live
  python main.py gen-secrets >> .env
  python main.py serve --reload
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_check = sub.add_parser("check-key", help="Validate an API key read from stdin or a prompt")
    p_check.add_argument("--live", action="store_true", help="Also make one liveness call to the provider")
    p_check.add_argument("--provider-url", metavar="URL", default=None, help="Provider API root (default: OpenAI)")
    p_check.add_argument("--timeout", type=float, default=10.0, metavar="SECONDS", help="Liveness timeout (default: 10)")
    p_check.set_defaults(func=cmd_check_key)

    p_gen = sub.add_parser("gen-secrets", help="Print fresh ENCRYPTION_SECRET and SESSION_SECRET lines")
    p_gen.set_defaults(func=cmd_gen_secrets)

    p_env = sub.add_parser("check-env", help="Load settings and report configuration problems")
    p_env.set_defaults(func=cmd_check_env)

    p_serve = sub.add_parser("serve", help="Run the API under uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    p_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return

    logging.basicConfig(level=logging.WARNING, format="  %(levelname)s %(name)s %(message)s")
    install_redaction()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
