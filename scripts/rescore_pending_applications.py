#!/usr/bin/env python3
"""
Re-score pending waitlist applications against the live scoring config.

Run after changing weights so stored scores (and the admin statistics built
from them) match what the engine would produce today.

Usage:
    python rescore_pending_applications.py [--limit N] [--dry-run]

Examples:
    # Re-score and save every pending application
    python rescore_pending_applications.py

    # Show the new distribution for the first 50 without saving
    python rescore_pending_applications.py --limit 50 --dry-run
"""

import sys
import os
import argparse
from collections import Counter

# Add parent directory to path to import services
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config.scoring_config import ScoringConfigLoader
from services.scoring_engine import calculate_score
from services.scoring_store import ApplicantStore, ConfigStore


def rescore(applicant_store, loader, limit=None, dry_run=False):
    """Return (changed, unchanged, errors, distribution) after re-scoring pending applications"""
    config = loader.get_config()
    applications = applicant_store.select_pending(limit)

    changed = 0
    unchanged = 0
    errors = 0
    distribution = Counter()

    for application in applications:
        new_score = calculate_score(application.get('answers') or {}, config)
        distribution[new_score] += 1

        if application.get('score') == new_score:
            unchanged += 1
            continue

        print(f"  {application['id']}: {application.get('score')} -> {new_score}")
        changed += 1
        if dry_run:
            continue

        try:
            applicant_store.update_score(application['id'], new_score)
        except Exception as e:
            print(f"  ✗ ERROR saving {application['id']}: {str(e)}")
            changed -= 1
            errors += 1

    return changed, unchanged, errors, distribution


def main():
    parser = argparse.ArgumentParser(description='Re-score pending waitlist applications')
    parser.add_argument('--limit', type=int, help='Only process the first N pending applications')
    parser.add_argument('--dry-run', action='store_true', help='Calculate but do not save scores')

    args = parser.parse_args()

    loader = ScoringConfigLoader(ConfigStore())
    config = loader.get_config()
    print(f"Using scoring config {config['version']} (source: {loader.source.value})")

    if args.dry_run:
        print("\n[DRY RUN MODE - Scores will not be saved]\n")

    changed, unchanged, errors, distribution = rescore(ApplicantStore(), loader, args.limit, args.dry_run)

    print(f"\n{'='*60}")
    print(f"Summary:")
    print(f"  Changed: {changed}")
    print(f"  Unchanged: {unchanged}")
    print(f"  Errors: {errors}")
    print(f"  Distribution:")
    for score in sorted(distribution):
        print(f"    {score:>4}: {distribution[score]}")
    print(f"{'='*60}")


if __name__ == '__main__':
    main()
