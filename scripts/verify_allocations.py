#!/usr/bin/env python3
"""
Check that every utility bill's stored allocations add up to its total.

Prints one line per bill (CORRECT / ISSUE / UNALLOCATED) and a summary.
Exits with status 1 when any bill is not CORRECT.

Usage:
    python3 scripts/verify_allocations.py
    python3 scripts/verify_allocations.py --property-id <uuid>
    python3 scripts/verify_allocations.py --database-url postgresql://localhost/rental
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from sqlalchemy.orm import Session  # noqa: E402

from billing_config import (  # noqa: E402
    build_billing_limits,
    build_precision_math,
    get_active_config,
    init_engine_from_config,
)
from billing_kernel.db.engine import init_engine_from_url, session_scope  # noqa: E402
from billing_kernel.domain.dtos import AllocationCheck, AllocationCheckStatus  # noqa: E402
from billing_kernel.logging_config import configure_logging  # noqa: E402
from billing_kernel.services.allocation_service import AllocationService  # noqa: E402


def format_check(check: AllocationCheck) -> str:
    period = f"{check.year}-{check.month:02d}"
    return (
        f"{check.status.value.upper():<12} {period}  {check.utility_type:<14} "
        f"total={check.total_amount:>12}  allocated={check.total_allocated:>12}  "
        f"shares={check.allocation_count}"
    )


def run(session: Session, property_id: UUID | None = None, service: AllocationService | None = None,
        out=sys.stdout) -> int:
    """Print the report; return the number of bills that are not CORRECT."""
    service = service or AllocationService(session)
    checks = service.verify_allocations(property_id)

    for check in checks:
        print(format_check(check), file=out)

    correct = sum(1 for c in checks if c.status == AllocationCheckStatus.CORRECT)
    issues = sum(1 for c in checks if c.status == AllocationCheckStatus.ISSUE)
    unallocated = sum(1 for c in checks if c.status == AllocationCheckStatus.UNALLOCATED)
    print(
        f"\n{len(checks)} bill(s): {correct} correct, {issues} with issues, "
        f"{unallocated} unallocated",
        file=out,
    )
    if issues:
        print("Run scripts/recalculate_allocations.py to fix the bills with issues", file=out)
    if unallocated:
        print("Unallocated bills have no eligible tenants or were never allocated", file=out)
    if not issues and not unallocated:
        print("All utility allocations are correct", file=out)
    return issues + unallocated


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Verify utility allocations")
    parser.add_argument("--property-id", type=UUID, help="Only check this property")
    parser.add_argument("--config", help="Configuration file (defaults to RENTAL_BILLING_CONFIG)")
    parser.add_argument("--database-url", help="Override the configured database URL")
    args = parser.parse_args(argv)

    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)
    if args.database_url:
        init_engine_from_url(args.database_url, echo=config.database.echo)
    else:
        init_engine_from_config(config)

    with session_scope() as session:
        service = AllocationService(
            session,
            math=build_precision_math(config),
            limits=build_billing_limits(config),
        )
        failures = run(session, args.property_id, service)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
