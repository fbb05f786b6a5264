"""Command line helpers for payment quotes and address QR codes."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from .config import AppConfig
from .errors import InvalidRate
from .qr import QRCodeManager
from .quote import quote


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blockfin_wallet", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    quote_cmd = sub.add_parser("quote", help="Convert a fiat amount into crypto")
    quote_cmd.add_argument("fiat_amount")
    quote_cmd.add_argument("exchange_rate")

    url_cmd = sub.add_parser("qr-url", help="Print the QR render URL for an address")
    url_cmd.add_argument("address")

    png_cmd = sub.add_parser("qr-png", help="Render an address QR code to a PNG file")
    png_cmd.add_argument("address")
    png_cmd.add_argument("path")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    config = AppConfig()
    qr = QRCodeManager(config)

    if args.command == "quote":
        try:
            print(quote(args.fiat_amount, args.exchange_rate, places=config.quote_decimal_places))
        except InvalidRate as exc:
            print(f"Invalid exchange rate: {exc}", file=sys.stderr)
            return 2
        except ValueError as exc:
            print(f"Invalid amount: {exc}", file=sys.stderr)
            return 2
    elif args.command == "qr-url":
        print(qr.render_url(args.address))
    elif args.command == "qr-png":
        print(qr.save_png(args.address, args.path))
    return 0


if __name__ == "__main__":  # pragma: no cover - manual launch only
    raise SystemExit(main())
