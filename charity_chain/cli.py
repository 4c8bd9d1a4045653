#!/usr/bin/env python3
"""
Charity Ledger CLI

Usage:
    charity-chain demo                   # Run a complete donation scenario
    charity-chain demo --cancel          # Same, but cancel and refund
    charity-chain run script.json        # Replay scripted operations

Scripts are JSON lists of steps. Named accounts get a fresh keypair on
first use:

    [
      {"op": "fund", "account": "alice", "lamports": 100},
      {"op": "create", "as": "rita", "title": "Clean Water",
       "description": "Wells", "image": "well.png", "deadline_in": 3600},
      {"op": "donate", "as": "alice", "to": "rita", "amount": 10},
      {"op": "advance", "seconds": 60},
      {"op": "complete", "as": "rita"}
    ]
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .config import LedgerConfig
from .core.clock import ManualClock
from .core.transactions import TransactionReceipt, generate_keypair
from .log import setup_logging
from .programs.events import ProgramEvent
from .programs.runtime import CharityRuntime


class CharityCLI:
    """Drives a fresh in-memory runtime with named, generated accounts."""

    def __init__(self, config: LedgerConfig = None, clock=None):
        self.config = config or LedgerConfig()
        self.clock = clock or ManualClock()
        self.runtime = CharityRuntime(config=self.config, clock=self.clock)
        self.keypairs = {}
        self.runtime.events.subscribe(self._on_event)

    def get_or_create_keypair(self, name: str):
        if name not in self.keypairs:
            self.keypairs[name] = generate_keypair()
        return self.keypairs[name]

    def pubkey(self, name: str) -> str:
        return self.get_or_create_keypair(name)[1]

    def fund(self, name: str, lamports: int) -> None:
        balance = self.runtime.fund(self.pubkey(name), lamports)
        print(f"💰 Funded {name} with {lamports:,} lamports (balance {balance:,})")

    def balance(self, name: str) -> int:
        lamports = self.runtime.get_balance(self.pubkey(name))
        print(f"💰 {name}: {lamports:,} lamports")
        return lamports

    def demo(self, donors: int = 2, cancel: bool = False) -> bool:
        """Create a program, collect donations, then complete or cancel it."""
        print("🎮 Charity Ledger Demo")
        print("=" * 40)

        donor_names = [f"donor-{i + 1}" for i in range(donors)]
        for name in donor_names:
            self.fund(name, self.config.genesis_lamports)

        receipts = [self.execute({
            "op": "create", "as": "receiver", "title": "Clean Water",
            "description": "Wells for three villages", "image": "water.png",
            "deadline_in": 3600,
        })]
        for i, name in enumerate(donor_names, 1):
            receipts.append(self.execute({"op": "donate", "as": name, "to": "receiver", "amount": i}))
        receipts.append(self.execute({"op": "cancel" if cancel else "complete", "as": "receiver"}))

        print()
        for name in ["receiver"] + donor_names:
            self.balance(name)
        self.runtime.display_status()
        return all(receipt.success for receipt in receipts)

    def run_script(self, steps: List[dict], strict: bool = False) -> bool:
        """Execute each step in order. Returns True if every transaction succeeded."""
        ok = True
        for number, step in enumerate(steps, 1):
            print(f"[{number}/{len(steps)}] {step.get('op')}")
            receipt = self.execute(step)
            if receipt is not None and not receipt.success:
                ok = False
                if strict:
                    print("⛔ Stopping at first failure (--strict)")
                    break

        self.runtime.display_status()
        return ok

    def execute(self, step: dict) -> Optional[TransactionReceipt]:
        """Run one script step. Non-transaction steps return None."""
        op = step.get("op")

        if op == "fund":
            self.fund(step["account"], int(step["lamports"]))
            return None

        if op == "advance":
            now = self.clock.advance(float(step["seconds"]))
            print(f"⏩ Clock advanced to {now:.0f}")
            return None

        signing_key, _ = self.get_or_create_keypair(step["as"])

        if op == "create":
            deadline = step.get("deadline")
            if deadline is None:
                deadline = self.clock.now() + float(step.get("deadline_in", 3600))
            args = {
                "title": step.get("title", ""),
                "description": step.get("description", ""),
                "image": step.get("image", ""),
                "deadline": deadline,
            }
            if "receiver" in step:
                args["receiver"] = self.pubkey(step["receiver"])
            receipt = self.runtime.call(signing_key, "create_program", **args)
        elif op == "donate":
            receipt = self.runtime.call(signing_key, "send_donation",
                                        receiver=self.pubkey(step["to"]), amount=int(step["amount"]))
        elif op == "complete":
            receipt = self.runtime.call(signing_key, "complete_program")
        elif op == "cancel":
            receipt = self.runtime.call(signing_key, "cancel_program")
        else:
            raise ValueError(f"Unknown script operation: {op!r}")

        self._print_receipt(step, receipt)
        return receipt

    def _print_receipt(self, step: dict, receipt: TransactionReceipt) -> None:
        tx = receipt.transaction.hash()[:16]
        if receipt.success:
            print(f"✅ {step['op']} by {step['as']} committed ({tx}...)")
        else:
            print(f"❌ {step['op']} by {step['as']} rejected: {receipt.error_message} [{receipt.error_kind}]")

    def _on_event(self, event: ProgramEvent) -> None:
        names = {pubkey: name for name, (_, pubkey) in self.keypairs.items()}
        who = names.get(event.receiver, event.receiver[:8] + "...")
        print(f"📣 {event.name}({who}, {event.program_index})")


def load_script(path: Path) -> List[dict]:
    with open(path, 'r', encoding='utf-8') as f:
        steps = json.load(f)
    if not isinstance(steps, list) or not all(isinstance(s, dict) for s in steps):
        raise ValueError(f"{path}: script must be a JSON list of objects")
    return steps


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="charity-chain",
        description="Charity donation-program ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  charity-chain demo                   # Create, donate, complete
  charity-chain demo --cancel          # Create, donate, cancel with refunds
  charity-chain run steps.json         # Run a scripted scenario
        """
    )
    parser.add_argument('-v', '--verbose', action='count', default=0, help='More logging (-v, -vv)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    demo_parser = subparsers.add_parser('demo', help='Run a complete donation scenario')
    demo_parser.add_argument('--donors', type=int, default=2, help='Number of donors')
    demo_parser.add_argument('--cancel', action='store_true', help='Cancel instead of completing')

    run_parser = subparsers.add_parser('run', help='Run a JSON script of operations')
    run_parser.add_argument('script', type=Path, help='Path to the script')
    run_parser.add_argument('--strict', action='store_true', help='Stop and fail on the first rejected step')

    args = parser.parse_args(argv)

    try:
        config = LedgerConfig.from_env()
        setup_logging(args.verbose, default_level=config.log_level)
        cli = CharityCLI(config=config)

        if args.command == 'demo':
            ok = cli.demo(donors=args.donors, cancel=args.cancel)
        elif args.command == 'run':
            ok = cli.run_script(load_script(args.script), strict=args.strict)
            if not args.strict:
                ok = True
        else:
            parser.print_help()
            return 0

    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        return 0

    except (OSError, ValueError, KeyError) as e:
        print(f"❌ Error: {e}")
        return 1

    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())
