#!/usr/bin/env python
"""Command-line front end for the Subdux API client.

Examples::

    subdux-client login alice --password secret
    subdux-client rates EUR GBP --target USD
    subdux-client convert 12.5 EUR USD
    subdux-client logout

Sessions and cached rates persist between runs when
``SUBDUX_STORAGE_BACKEND`` is ``file`` or ``redis``.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys
from typing import List, Optional

from .context import ClientContext
from .errors import SubduxClientError
from .services.rate_cache import normalize_code
from .telemetry import start_metrics_server


logger = logging.getLogger(__name__)

HEALTH_KEYS = [
    "SUBDUX_API_BASE",
    "SUBDUX_STORAGE_BACKEND",
    "SUBDUX_STORAGE_PATH",
    "SUBDUX_ACCESS_TOKEN",
    "SUBDUX_REFRESH_TOKEN",
    "SUBDUX_API_KEY",
    "REDIS_HOST",
    "REDIS_PORT",
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="subdux-client", description="Subdux API client")
    parser.add_argument("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Sign in and store the session")
    login.add_argument("identifier", help="Username or email")
    login.add_argument("--password", default=None)
    login.add_argument("--totp", default=None, help="TOTP or backup code, if required")

    sub.add_parser("logout", help="Forget the stored session")
    sub.add_parser("whoami", help="Show the signed-in user")

    rates = sub.add_parser("rates", help="Resolve factors from several currencies into one")
    rates.add_argument("sources", nargs="+")
    rates.add_argument("--target", default=None, help="Defaults to the preferred currency")

    rate = sub.add_parser("rate", help="Resolve one currency pair")
    rate.add_argument("base")
    rate.add_argument("target")

    convert = sub.add_parser("convert", help="Convert an amount between currencies")
    convert.add_argument("amount", type=float)
    convert.add_argument("base")
    convert.add_argument("target")

    sub.add_parser("healthcheck", help="Report which settings are configured")
    return parser


async def run(args: argparse.Namespace, ctx: ClientContext) -> int:
    if args.command == "login":
        password = args.password or getpass.getpass("Password: ")
        result = await ctx.auth.login(args.identifier, password)
        if result.requires_totp:
            code = args.totp or input("Verification code: ")
            user = await ctx.auth.verify_totp(result.totp_token or "", code)
        else:
            user = result.grant.user  # type: ignore[union-attr]
        await ctx.preferences.sync()
        print(f"Signed in as {user.username or user.email} ({user.role})")
    elif args.command == "logout":
        ctx.auth.logout()
        print("Signed out")
    elif args.command == "whoami":
        if not ctx.credentials.is_authenticated():
            print("Not signed in")
            return 1
        user = ctx.credentials.get_user()
        if user is None:
            user = await ctx.auth.current_user()
        if user is None:
            print("Signed in (unknown user)")
        else:
            print(f"{user.username or user.email} ({user.role})")
    elif args.command == "rates":
        target = normalize_code(args.target or ctx.preferences.get_default_currency())
        resolved = await ctx.rates.resolve_many(args.sources, target)
        for source in args.sources:
            code = normalize_code(source)
            if code == target:
                print(f"{code} -> {target}: 1")
            elif code in resolved:
                print(f"{code} -> {target}: {resolved[code]:.6f}")
            else:
                print(f"{code} -> {target}: unavailable")
    elif args.command == "rate":
        factor = await ctx.rates.resolve_one(args.base, args.target)
        print(f"{args.base.upper()} -> {args.target.upper()}: {factor:.6f}")
    elif args.command == "convert":
        converted = await ctx.rates.convert(args.amount, args.base, args.target)
        print(f"{args.amount:.2f} {args.base.upper()} = {converted:.2f} {args.target.upper()}")
    elif args.command == "healthcheck":
        print("Health Check:")
        for key in HEALTH_KEYS:
            print(f"{key}: {'set' if os.environ.get(key) else 'missing'}")
    return 0


async def _main(args: argparse.Namespace) -> int:
    async with ClientContext.create() as ctx:
        try:
            return await run(args, ctx)
        except SubduxClientError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    if args.metrics_port:
        start_metrics_server(args.metrics_port)
    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
