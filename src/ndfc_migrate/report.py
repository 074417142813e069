"""
Console tables and the optional Excel run report.
"""

import logging
from datetime import datetime
from typing import Dict, List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from rich.console import Console
from rich.table import Table

from ndfc_migrate.models import SwitchRecord
from ndfc_migrate.onboarding import OnboardingMode, classify, missing_poap_fields
from ndfc_migrate.tools import get_file_permissions_string, set_file_permissions
from ndfc_migrate.workflow import StageReport

logger = logging.getLogger(__name__)
console = Console()

MODE_STYLES = {
    OnboardingMode.PREPROVISION: "cyan",
    OnboardingMode.DISCOVER: "green",
    OnboardingMode.SKIP: "yellow",
}


def onboarding_table(records: List[SwitchRecord]) -> Table:
    table = Table(title="Onboarding Plan")
    table.add_column("Switch", style="bold")
    table.add_column("Fabric")
    table.add_column("Role")
    table.add_column("Mode")
    table.add_column("Add to fabric")
    table.add_column("Notes")

    for record in records:
        mode = classify(record)
        notes = ""
        if mode == OnboardingMode.SKIP:
            notes = "missing " + ", ".join(missing_poap_fields(record))
        elif mode == OnboardingMode.PREPROVISION:
            notes = f"{record.poap.model} / {record.poap.serial_number}"
        table.add_row(
            record.hostname,
            record.fabric,
            record.role,
            f"[{MODE_STYLES[mode]}]{mode.value}[/{MODE_STYLES[mode]}]",
            "yes" if record.add_to_fabric else "no",
            notes,
        )
    return table


def summary_rows(reports: List[StageReport]) -> List[Dict[str, object]]:
    rows = []
    for report in reports:
        if report.collection is not None:
            rows.append({
                "stage": report.stage,
                "resource": "switch profiles",
                "to_create": 0,
                "already_present": 0,
                "created": len(report.collection.profiles),
                "failed": len(report.collection.failed),
            })
        for result in report.results:
            rows.append({"stage": report.stage, "resource": result.resource, **result.summary()})
    return rows


def failure_rows(reports: List[StageReport]) -> List[Dict[str, str]]:
    rows = []
    for report in reports:
        if report.collection is not None:
            for hostname, error in report.collection.failed.items():
                rows.append({"stage": report.stage, "resource": "switch profiles", "item": hostname, "error": error})
        for result in report.results:
            for item, error in result.failed.items():
                rows.append({"stage": report.stage, "resource": result.resource, "item": item, "error": error})
    return rows


def summary_table(reports: List[StageReport], dry_run: bool = False) -> Table:
    title = "Migration Summary (dry run)" if dry_run else "Migration Summary"
    table = Table(title=title)
    table.add_column("Stage", style="cyan")
    table.add_column("Resource")
    table.add_column("To create", justify="right")
    table.add_column("Already configured", justify="right")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Failed", justify="right")

    for row in summary_rows(reports):
        failed = str(row["failed"])
        table.add_row(
            row["stage"],
            row["resource"],
            str(row["to_create"]),
            str(row["already_present"]),
            str(row["created"]),
            f"[red]{failed}[/red]" if row["failed"] else failed,
        )
    return table


def print_reports(reports: List[StageReport], dry_run: bool = False):
    console.print(summary_table(reports, dry_run))
    failures = failure_rows(reports)
    if failures:
        table = Table(title="Failures")
        table.add_column("Stage", style="cyan")
        table.add_column("Item")
        table.add_column("Error", style="red")
        for row in failures:
            table.add_row(row["stage"], row["item"], row["error"])
        console.print(table)


class ExcelReport:
    """Write the run summary and failures to a workbook."""

    def __init__(self):
        self.header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        self.header_font = Font(bold=True, color="FFFFFF")
        self.center_alignment = Alignment(horizontal="center", vertical="center")

    def _write_sheet(self, ws, headers: List[str], rows: List[Dict[str, object]]):
        ws.append(headers)
        for cell in ws[1]:
            cell.fill = self.header_fill
            cell.font = self.header_font
            cell.alignment = self.center_alignment

        keys = [h.lower().replace(" ", "_") for h in headers]
        for row in rows:
            ws.append([row.get(k, "") for k in keys])

        for index, header in enumerate(headers, start=1):
            width = max([len(str(header))] + [len(str(r.get(keys[index - 1], ""))) for r in rows])
            ws.column_dimensions[get_column_letter(index)].width = min(width + 2, 80)

    def save(self, reports: List[StageReport], filename: str = None) -> str:
        """
        Save the report workbook.

        Args:
            reports: Stage reports of the run
            filename: Target file, defaults to a timestamped name

        Returns:
            Path of the written workbook
        """
        if filename is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"ndfc_migrate_report_{timestamp}.xlsx"

        wb = Workbook()
        ws_summary = wb.active
        ws_summary.title = "Summary"
        self._write_sheet(
            ws_summary,
            ["Stage", "Resource", "To create", "Already present", "Created", "Failed"],
            summary_rows(reports),
        )

        failures = failure_rows(reports)
        if failures:
            self._write_sheet(wb.create_sheet("Failures"), ["Stage", "Resource", "Item", "Error"], failures)

        wb.save(filename)
        if set_file_permissions(filename):
            logger.debug(f"{filename} permissions {get_file_permissions_string(filename)}")
        logger.info(f"Excel report generated: {filename}")
        return filename
