"""Repair course progress from the command line.

Run with:
    python scripts/repair_courses.py COURSE_ID [COURSE_ID ...]
    python scripts/repair_courses.py --all
    python scripts/repair_courses.py --cleanup

Uses the same configuration as the service (DATABASE_URL, REDIS_URL, ...).
Exits non-zero if any course or any user failed.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from coursetrack.core.config import SETTINGS
from coursetrack.core.logging import setup_logging
from coursetrack.services import registry
from coursetrack.services.repair_service import CourseRepairFailure, RepairResult


def _print_result(result: RepairResult) -> None:
    print(
        f"{result.course_id}: modules={result.total_modules} "
        f"leaves={result.total_leaves} users={result.users_updated} "
        f"changed={result.users_changed} failed={len(result.users_failed)}"
    )
    for failure in result.users_failed:
        print(f"    user {failure.user_id}: [{failure.code}] {failure.error}")


async def _run(args: argparse.Namespace) -> int:
    failed = 0

    if args.cleanup:
        cleanup = await registry.enrollment_service.cleanup_stale_enrollments()
        print(
            f"cleanup: stale_courses={list(cleanup.stale_course_ids)} "
            f"removed={cleanup.enrollments_removed} failed={len(cleanup.users_failed)}"
        )
        failed += len(cleanup.users_failed)

    if args.all:
        results = await registry.repair_service.repair_all_courses()
    else:
        results = await registry.repair_service.repair_courses(args.course_ids)

    for result in results:
        if isinstance(result, CourseRepairFailure):
            print(f"{result.course_id}: FAILED [{result.code}] {result.error}")
            failed += 1
        else:
            _print_result(result)
            failed += len(result.users_failed)

    return 1 if failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("course_ids", nargs="*", help="courses to repair")
    parser.add_argument("--all", action="store_true", help="repair every course")
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="first remove enrollments whose course no longer exists",
    )
    args = parser.parse_args()
    if not args.all and not args.course_ids and not args.cleanup:
        parser.error("give course IDs, --all or --cleanup")

    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
