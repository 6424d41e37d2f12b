#!/usr/bin/env python3
"""
Renumber every active student's access number and admission id.

Administrative cleanup only: identifiers of students nobody touched will
change, so run --dry-run first and review the output.

Usage:
  python scripts/renumber_students.py --dry-run
  python scripts/renumber_students.py
  # Reads DATABASE_URL from .env (or export)
"""
import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from admissions.core.logging import setup_logging
from admissions.database import AsyncSessionLocal, close_db
from admissions.services.student_service import StudentService


async def run(dry_run: bool) -> int:
    async with AsyncSessionLocal() as db:
        assignments = await StudentService.renumber_all(db, dry_run=dry_run)
    await close_db()

    changed = [a for a in assignments if a.changed]
    for a in changed:
        print(
            f"{a.student_id}: {a.previous_access_number or '-'} -> {a.access_number}, "
            f"{a.previous_admission_id or '-'} -> {a.admission_id}"
        )
    verb = "Would renumber" if dry_run else "Renumbered"
    print(f"{verb} {len(changed)} of {len(assignments)} active students")
    return 0


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--dry-run", action="store_true", help="show the new identifiers without saving")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(run(args.dry_run)))


if __name__ == "__main__":
    main()
