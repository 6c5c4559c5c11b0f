#!/usr/bin/env python
"""
Investment Growth Job

Runs once a month to re-price every live investment with a bounded random
walk and append a history snapshot for each.

Usage:
    python scripts/investment_growth_job.py [--seed N]

Options:
    --seed: Seed the random walk for a reproducible run
"""
import sys
import random
from pathlib import Path
from datetime import datetime
from argparse import ArgumentParser

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fintrack.db.core import get_db
from fintrack.logging_config import setup_logging, get_logger
from fintrack.services.valuation import simulate_growth, UniformMarketMovement

logger = get_logger("jobs.investment_growth")


def run_growth_job(seed: int = None):
    now = datetime.utcnow()
    logger.info(f"Running Investment Growth Job - {now}")

    db = next(get_db())

    try:
        rng = random.Random(seed) if seed is not None else None
        snapshots = simulate_growth(db, UniformMarketMovement.from_env(rng=rng), now=now)
        logger.info(f"Job complete: {len(snapshots)} investment(s) re-priced")
    except Exception as e:
        logger.error(f"FATAL ERROR: {str(e)}")
        raise
    finally:
        db.close()


def main():
    parser = ArgumentParser(description="Simulate monthly investment growth")
    parser.add_argument('--seed', type=int, help='Random seed for a reproducible run')
    args = parser.parse_args()

    setup_logging(job_name="investment-growth")
    run_growth_job(seed=args.seed)


if __name__ == "__main__":
    main()
