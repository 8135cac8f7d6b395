"""Replay recorded races through a staking variant in simulation mode.

The races file is a JSON list of::

    {"race_id": "202610190101", "ticket_type": "3t", "race_date": "2026-10-19",
     "candidates": [{"key": "1-2-3", "odds": 6.4, "probability": 0.15}, ...],
     "result": {"odds_3t1-2-3": "640", ...}}

Usage:
    python scripts/simulate.py races.json --variant cocomo --partition 3t
    python scripts/simulate.py races.json --variant winners --keep  # continue the existing ledger
    python scripts/simulate.py races.json --variant cocomo_top_n --output tally.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mizuhanome.config import settings
from mizuhanome.ledger.types import LedgerKey, Mode, Variant
from mizuhanome.ledger.store import LedgerStore
from mizuhanome.models.database import init_db
from mizuhanome.simulation import load_races, simulate

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace) -> dict:
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    await init_db()

    races = load_races(args.races)
    key = LedgerKey(Variant(args.variant), args.partition, Mode.SIMULATION)
    logger.info(f"Replaying {len(races)} races on {key}")

    tally = await simulate(LedgerStore(), key, races, fresh=not args.keep)
    return tally.to_dict()


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("races", type=Path, help="JSON file of recorded races")
    parser.add_argument("--variant", choices=[v.value for v in Variant], default=Variant.COCOMO.value)
    parser.add_argument("--partition", default="3t")
    parser.add_argument("--keep", action="store_true", help="continue from the stored simulation ledger")
    parser.add_argument("--output", type=Path, help="write the tally as JSON")
    args = parser.parse_args()

    summary = asyncio.run(run(args))

    print(f"\n{'=' * 50}")
    print(f"  {args.variant} / {args.partition}")
    print(f"{'=' * 50}")
    for name, value in summary.items():
        print(f"  {name:<22} {value}")

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        logger.info(f"Tally written to {args.output}")


if __name__ == "__main__":
    main()
