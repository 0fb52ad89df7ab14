#!/usr/bin/env python3
"""
Re-run utility allocation for a property's bills.

Every matching bill gets its allocation set replaced from the current
tenant data.  Bills that fail are reported and left untouched; the others
are committed.

Usage:
    python3 scripts/recalculate_allocations.py --property-id <uuid>
    python3 scripts/recalculate_allocations.py --property-id <uuid> --year 2024 --month 6
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
from billing_kernel.db.engine import session_scope  # noqa: E402
from billing_kernel.domain.dtos import RecalculationSummary  # noqa: E402
from billing_kernel.logging_config import LogContext, configure_logging  # noqa: E402
from billing_kernel.services.allocation_service import AllocationService  # noqa: E402


def run(
    session: Session,
    property_id: UUID,
    month: int | None = None,
    year: int | None = None,
    service: AllocationService | None = None,
    out=sys.stdout,
) -> RecalculationSummary:
    service = service or AllocationService(session)
    summary = service.recalculate_all(property_id, month=month, year=year)
    print(
        f"Recalculated {summary.recalculated} of {summary.total} bill(s) "
        f"for property {property_id}",
        file=out,
    )
    for error in summary.errors:
        print(f"  ERROR: {error}", file=out)
    return summary


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate utility allocations")
    parser.add_argument("--property-id", type=UUID, required=True)
    parser.add_argument("--month", type=int, choices=range(1, 13), metavar="1-12")
    parser.add_argument("--year", type=int)
    parser.add_argument("--config", help="Configuration file (defaults to RENTAL_BILLING_CONFIG)")
    args = parser.parse_args(argv)

    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)
    init_engine_from_config(config)

    with LogContext.bind(correlation_id="recalculate_allocations", property_id=args.property_id):
        with session_scope() as session:
            service = AllocationService(
                session,
                math=build_precision_math(config),
                limits=build_billing_limits(config),
            )
            summary = run(session, args.property_id, args.month, args.year, service)
    return 0 if summary.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
