"""Monthly commission report CLI.

Calculates commission for every active trainer in an organization for one
month, optionally saves the results to the calculation history, and exports
the report to an Excel/CSV bundle.
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from commissiondesk import crud
from commissiondesk.core.formatting import format_money, format_period_label
from commissiondesk.core.periods import parse_month, resolve_month_bounds_utc
from commissiondesk.database import SessionLocal, init_db
from commissiondesk.errors import CommissionError, ConfigurationError
from commissiondesk.exporting import build_report_frame, export_report_files
from commissiondesk.services import CommissionService, TrainerReportRow


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(description="Calculate monthly trainer commissions for an organization.")
    parser.add_argument("--month", required=True, help="Target month in YYYY-MM format.")
    parser.add_argument("--organization", required=True, type=int, help="Organization id.")
    parser.add_argument(
        "--location",
        type=int,
        action="append",
        dest="locations",
        help="Restrict sessions to a location id (repeatable).",
    )
    parser.add_argument("--out", default="./dist", help="Output directory for generated files (default: ./dist).")
    parser.add_argument("--currency", default="USD", help="Currency label for the report (default: USD).")
    parser.add_argument(
        "--save",
        action="store_true",
        help="Save each calculation to the commission history.",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Print the report table to stdout.",
    )
    parser.add_argument("--actor", default="cli", help="Name recorded in the audit log when saving.")
    return parser.parse_args(argv)


def print_preview(rows: Sequence[TrainerReportRow]) -> None:
    """Print the report table to stdout in a human-friendly layout."""

    report_df = build_report_frame(rows)
    if report_df.empty:
        print("No active trainers for the requested organization.")
        return
    with pd.option_context("display.max_columns", None, "display.width", 200):
        print(report_df.to_string(index=False))


def print_summary(rows: Sequence[TrainerReportRow], currency: str) -> None:
    failed = [row for row in rows if row.error]
    total = sum(row.total_commission for row in rows)
    print(f"Trainers: {len(rows)} ({len(failed)} with errors)")
    print(f"Total commission: {format_money(total, currency)}")
    for row in failed:
        print(f"  ! {row.trainer_name}: {row.error}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""

    args = parse_args(argv)
    try:
        target = parse_month(args.month)
    except ConfigurationError as exc:
        raise SystemExit("--month must be provided in YYYY-MM format.") from exc

    init_db()
    db = SessionLocal()
    try:
        service = CommissionService(db)
        organization = crud.get_organization(db, args.organization)
        if organization is None:
            raise SystemExit(f"Organization {args.organization} not found.")
        org_id, org_name, org_timezone = organization.id, organization.name, organization.timezone
        try:
            bounds = resolve_month_bounds_utc(target.year, target.month, org_timezone)
            rows = service.calculate_organization_commissions(
                org_id,
                bounds,
                save_calculation=args.save,
                location_ids=args.locations,
                actor=args.actor,
            )
        except CommissionError as exc:
            raise SystemExit(f"[commissions] {exc}") from exc
    finally:
        db.close()

    period_label = format_period_label(bounds, org_timezone)
    base_filename = f"commissions_{org_id}_{target.label()}"
    excel_path, csv_path = export_report_files(base_filename, rows, period_label, Path(args.out), args.currency)

    if args.preview:
        print_preview(rows)
    print(f"[commissions] {org_name}: {period_label}")
    print_summary(rows, args.currency)
    if args.save:
        print("[commissions] Calculations saved to history.")
    print(f"Excel export: {excel_path}")
    print(f"CSV export: {csv_path}")


if __name__ == "__main__":
    main()
