from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Iterable, Sequence

import pandas as pd

from commissiondesk.services import TrainerReportRow

REPORT_COLUMNS = [
    "Trainer Name",
    "Email",
    "Location",
    "Total Sessions",
    "Session Value",
    "Sales Volume",
    "Tier Reached",
    "Session Commission",
    "Sales Commission",
    "Tier Bonus",
    "Total Commission",
    "Method",
    "Error",
]


def build_report_frame(rows: Iterable[TrainerReportRow]) -> pd.DataFrame:
    """One line per trainer; trainers with errors keep zero amounts and the message."""

    records = []
    for row in rows:
        result = row.result
        records.append(
            {
                "Trainer Name": row.trainer_name,
                "Email": row.trainer_email,
                "Location": row.location_name or "N/A",
                "Total Sessions": result.total_sessions if result else 0,
                "Session Value": float(result.total_session_value) if result else 0.0,
                "Sales Volume": float(result.sales_volume) if result else 0.0,
                "Tier Reached": result.tier_reached if result else 0,
                "Session Commission": float(result.session_commission) if result else 0.0,
                "Sales Commission": float(result.sales_commission) if result else 0.0,
                "Tier Bonus": float(result.tier_bonus) if result else 0.0,
                "Total Commission": float(result.total_commission) if result else 0.0,
                "Method": result.calculation_method.value.title() if result else "",
                "Error": row.error or "",
            }
        )
    if not records:
        return pd.DataFrame(columns=REPORT_COLUMNS)
    return pd.DataFrame(records, columns=REPORT_COLUMNS)


def build_summary_frame(report_df: pd.DataFrame, period_label: str, currency: str) -> pd.DataFrame:
    errors = int((report_df["Error"] != "").sum()) if not report_df.empty else 0
    return pd.DataFrame(
        [
            {"Metric": "Period", "Value": period_label},
            {"Metric": "Currency", "Value": currency},
            {"Metric": "Trainers", "Value": len(report_df)},
            {"Metric": "Trainers With Errors", "Value": errors},
            {"Metric": "Total Sessions", "Value": int(report_df["Total Sessions"].sum())},
            {"Metric": "Total Session Value", "Value": round(float(report_df["Session Value"].sum()), 2)},
            {"Metric": "Total Commission", "Value": round(float(report_df["Total Commission"].sum()), 2)},
        ]
    )


def export_report_workbook(rows: Sequence[TrainerReportRow], period_label: str, currency: str = "USD") -> bytes:
    """Return an XLSX workbook (bytes) with the commission report and its summary."""

    report_df = build_report_frame(rows)
    summary_df = build_summary_frame(report_df, period_label, currency)

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        report_df.to_excel(writer, sheet_name="Commissions", index=False)
        summary_df.to_excel(writer, sheet_name="Summary", index=False)
    buffer.seek(0)
    return buffer.getvalue()


def export_report_files(
    base_filename: str,
    rows: Sequence[TrainerReportRow],
    period_label: str,
    output_dir: Path,
    currency: str = "USD",
) -> tuple[Path, Path]:
    """Write the workbook and a companion CSV extract; returns both paths."""

    output_dir.mkdir(parents=True, exist_ok=True)
    excel_path = output_dir / f"{base_filename}.xlsx"
    csv_path = output_dir / f"{base_filename}.csv"
    excel_path.write_bytes(export_report_workbook(rows, period_label, currency))
    build_report_frame(rows).to_csv(csv_path, index=False)
    return excel_path, csv_path
