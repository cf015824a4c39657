"""
Spreadsheet export of anomaly events.
"""

from collections import Counter
from datetime import datetime
from typing import Any, BinaryIO, Dict, List, Union

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill


def _autofit(worksheet, limit: int = 50) -> None:
    for column in worksheet.columns:
        max_length = 0
        column_letter = column[0].column_letter
        for cell in column:
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        worksheet.column_dimensions[column_letter].width = min(max_length + 2, limit)


def generate_anomaly_xlsx(
    anomalies: List[Dict[str, Any]], output: Union[str, BinaryIO]
) -> Union[str, BinaryIO]:
    """
    Generate an Excel workbook with anomaly events.

    Args:
        anomalies: Rows from queries.export_anomalies
        output: File path or writable binary stream

    Returns:
        The output that was written to
    """
    wb = Workbook()

    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF")

    # Summary sheet
    ws_summary = wb.active
    ws_summary.title = "Summary"
    ws_summary["A1"] = "Network Anomaly Summary"
    ws_summary["A1"].font = Font(bold=True, size=16)
    ws_summary["A3"] = "Generated:"
    ws_summary["B3"] = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")
    ws_summary["A5"] = "Total Events:"
    ws_summary["B5"] = len(anomalies)

    by_issue = Counter(row["issue_type"] for row in anomalies)
    for offset, issue in enumerate(("high_latency", "timeout", "packet_loss")):
        ws_summary.cell(row=6 + offset, column=1, value=f"{issue}:")
        ws_summary.cell(row=6 + offset, column=2, value=by_issue.get(issue, 0))

    ws_summary["A10"] = "Targets:"
    ws_summary["B10"] = len({row["target"] for row in anomalies})

    # Anomalies sheet
    ws_events = wb.create_sheet("Anomalies")
    ws_events.append(
        [
            "Timestamp",
            "Target",
            "Issue Type",
            "Problematic Hop",
            "Avg Latency (ms)",
            "Packet Loss %",
            "Problem Hop IP",
            "Problem Hop Hostname",
            "Problem Hop Latency (ms)",
        ]
    )
    for cell in ws_events[1]:
        cell.fill = header_fill
        cell.font = header_font

    for row in anomalies:
        ws_events.append(
            [
                row["timestamp"],
                row["target"],
                row["issue_type"],
                row["problematic_hop"],
                round(row["avg_latency"], 2) if row["avg_latency"] is not None else None,
                round(row["packet_loss_pct"], 2) if row["packet_loss_pct"] is not None else None,
                row["problem_hop_ip"],
                row["problem_hop_hostname"],
                (
                    round(row["problem_hop_latency"], 2)
                    if row["problem_hop_latency"] is not None
                    else None
                ),
            ]
        )

    _autofit(ws_events)

    wb.save(output)
    return output
