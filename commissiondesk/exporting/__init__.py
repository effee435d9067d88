"""Spreadsheet exports for commission reports."""
from .xlsx import build_report_frame, export_report_files, export_report_workbook

__all__ = ["build_report_frame", "export_report_files", "export_report_workbook"]
