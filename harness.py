#!/usr/bin/env python3
"""harness.py

Submits an ad-hoc multi-sign **`/transferTRX`** request against a running
sweeper and prints the JSON response.

▪The private key comes from `--private-key`, the `SWEEPER_PRIVATE_KEY`
  environment variable, or an interactive prompt (in that order).
▪The amount is sent as a decimal string in TRX so no precision is lost.
▪`--ping` triggers a sweep cycle instead of a transfer.

Usage examples
--------------
```bash
# prompt for the private key
python harness.py --to TXYZ... --amount 12.5

# custom service URL, key from the environment
SWEEPER_PRIVATE_KEY=... python harness.py --node http://localhost:8080 --to TXYZ... --amount 1

# trigger a sweep cycle
python harness.py --ping
```"""
from __future__ import annotations

import argparse
import getpass
import json
import os
import sys
from decimal import Decimal
import requests


def build_payload(to_address: str, amount: Decimal, private_key: str) -> dict:
    """Return the `/transferTRX` request body."""
    return {
        "toAddress": to_address,
        "amount": format(amount.normalize(), "f"),
        "privateKey": private_key,
    }


def resolve_private_key(cli_value: str | None) -> str:
    key = cli_value or os.environ.get("SWEEPER_PRIVATE_KEY")
    if key:
        return key
    return getpass.getpass("Private key (hex): ").strip()


# -------------------------------------------------------------------------------
# CLI entry‑point
# -------------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument("--node", default="http://127.0.0.1:8080", help="Base URL of the sweeper service")
    parser.add_argument("--to", dest="to_address", help="Receiving TRON address")
    parser.add_argument("--amount", type=Decimal, help="Amount to send in TRX (decimals allowed)")
    parser.add_argument("--private-key", help="Hex private key of the sending account")
    parser.add_argument("--ping", action="store_true", help="Trigger a sweep cycle instead of a transfer")
    parser.add_argument("--timeout", type=float, default=120, help="Request timeout in seconds")
    args = parser.parse_args()

    if args.ping:
        try:
            r = requests.get(args.node + "/ping", timeout=args.timeout)
        except requests.RequestException as e:
            sys.exit("Network error: " + str(e))
        print("Status:", r.status_code)
        print(r.text)
        return

    if not args.to_address or args.amount is None:
        parser.error("--to and --amount are required unless --ping is given")

    payload = build_payload(args.to_address, args.amount, resolve_private_key(args.private_key))

    preview = dict(payload, privateKey="***")
    print("⤵  POSTing to", args.node + "/transferTRX")
    print(json.dumps(preview, indent=2) + "\n")

    try:
        r = requests.post(args.node + "/transferTRX", json=payload, timeout=args.timeout)
    except requests.RequestException as e:
        sys.exit("Network error: " + str(e))

    print("Status:", r.status_code)
    try:
        print(json.dumps(r.json(), indent=2))
    except ValueError:
        print("Response parsing failed – raw body:\n", r.text)


if __name__ == "__main__":
    main()
