"""Report generation: CSV export, execution summary and HTML dashboard.

Outputs (all under ``config.report_dir``, timestamped):
- ``stock_report_<ts>.csv``: one row per extracted record, fixed 13-column layout
- ``test_summary_<ts>.txt``: pass/fail counts, browsers covered, failed checks
- ``nse_dashboard_<ts>.html``: standalone Plotly report with results table,
  profit/loss chart and 52-week positions

Design Rationale:
    Plotly writes a self-contained HTML file with its JavaScript embedded,
    so the report can be attached to a CI run and opened without Python.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from pydantic import BaseModel

from config.settings import GlobalConfig
from nse_stock.exceptions import ReportGenerationError
from nse_stock.logger import get_logger
from nse_stock.models import CheckResult, StockRecord

log = get_logger(__name__)

CSV_COLUMNS = [
    "Symbol",
    "Company Name",
    "Current Price",
    "Price Change",
    "Percentage Change",
    "52 Week High",
    "52 Week Low",
    "Volume",
    "Market Cap",
    "Purchase Price",
    "Profit/Loss",
    "Profit/Loss %",
    "Status",
]

STATUS_COLOURS = {
    "PASSED": "#27ae60",
    "FAILED": "#e74c3c",
    "ERROR": "#8e44ad",
    "SKIPPED": "#f39c12",
}


class ExecutionSummary(BaseModel):
    """Aggregate outcome of a run."""

    total: int
    passed: int
    failed: int
    skipped: int
    errors: int
    duration_seconds: float
    browsers: list[str]
    failed_checks: list[str]

    @property
    def success_rate(self) -> float:
        """Passed share of all checks, in percent."""
        if self.total == 0:
            return 0.0
        return self.passed / self.total * 100

    @classmethod
    def from_results(cls, results: Sequence[CheckResult]) -> "ExecutionSummary":
        def count(status: str) -> int:
            return sum(1 for result in results if result.status == status)

        return cls(
            total=len(results),
            passed=count("PASSED"),
            failed=count("FAILED"),
            skipped=count("SKIPPED"),
            errors=count("ERROR"),
            duration_seconds=sum(result.duration_seconds for result in results),
            browsers=sorted({result.browser for result in results}),
            failed_checks=[
                result.test_id for result in results if result.status in ("FAILED", "ERROR")
            ],
        )


def records_to_dataframe(records: Sequence[StockRecord]) -> pd.DataFrame:
    """Tabulate records in the CSV column layout."""
    rows = [
        {
            "Symbol": record.symbol,
            "Company Name": record.company_name,
            "Current Price": record.current_price,
            "Price Change": record.price_change,
            "Percentage Change": record.percentage_change,
            "52 Week High": record.week_high_52,
            "52 Week Low": record.week_low_52,
            "Volume": record.volume,
            "Market Cap": record.market_cap,
            "Purchase Price": record.purchase_price,
            "Profit/Loss": record.profit_loss,
            "Profit/Loss %": record.profit_loss_percentage,
            "Status": record.profit_loss_status,
        }
        for record in records
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


class ReportGenerator:
    """Writes run artefacts to ``config.report_dir``.

    Attributes:
        config: Supplies the report directory and title.
        _timestamp: Shared suffix so one run's files sort together.
    """

    def __init__(self, config: GlobalConfig) -> None:
        self.config = config
        self._timestamp = datetime.now(UTC).strftime("%Y-%m-%d_%H-%M-%S")

    def _ensure_output_dir(self) -> Path:
        """Create the report directory if needed.

        Raises:
            ReportGenerationError: If the directory cannot be created.
        """
        try:
            self.config.report_dir.mkdir(parents=True, exist_ok=True)
            return self.config.report_dir
        except OSError as exc:
            raise ReportGenerationError(
                report_type="output_directory",
                reason=f"Cannot create report directory: {exc}",
                output_path=str(self.config.report_dir),
            ) from exc

    def generate_csv(
        self,
        records: Sequence[StockRecord],
        filename: str = "stock_report",
    ) -> Path:
        """Export records with the fixed 13-column header, floats to 2 dp.

        Raises:
            ReportGenerationError: If the file cannot be written.
        """
        output_path = self._ensure_output_dir() / f"{filename}_{self._timestamp}.csv"
        log.info("Generating CSV report", output_path=str(output_path), rows=len(records))

        try:
            records_to_dataframe(records).to_csv(
                output_path, index=False, float_format="%.2f", encoding="utf-8"
            )
        except OSError as exc:
            raise ReportGenerationError(
                report_type="CSV", reason=str(exc), output_path=str(output_path)
            ) from exc

        return output_path

    def generate_summary(self, results: Sequence[CheckResult]) -> Path:
        """Write a plain-text execution summary.

        Raises:
            ReportGenerationError: If the file cannot be written.
        """
        summary = ExecutionSummary.from_results(results)
        output_path = self._ensure_output_dir() / f"test_summary_{self._timestamp}.txt"

        lines = [
            "NSE STOCK TESTING EXECUTION SUMMARY",
            "=====================================",
            "",
            f"Execution Date: {datetime.now().strftime('%d-%m-%Y %H:%M:%S')}",
            f"Total Tests: {summary.total}",
            f"Passed Tests: {summary.passed}",
            f"Failed Tests: {summary.failed}",
            f"Errored Tests: {summary.errors}",
            f"Skipped Tests: {summary.skipped}",
            f"Success Rate: {summary.success_rate:.2f}%",
            f"Execution Time: {summary.duration_seconds:.1f} s",
            "",
            "BROWSER COVERAGE:",
            "-----------------",
            *(f"- {browser}" for browser in summary.browsers),
        ]
        if summary.failed_checks:
            lines += ["", "FAILED TESTS:", "-------------"]
            lines += [f"- {name}" for name in summary.failed_checks]

        try:
            output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as exc:
            raise ReportGenerationError(
                report_type="summary", reason=str(exc), output_path=str(output_path)
            ) from exc

        log.info(
            "Execution summary written",
            output_path=str(output_path),
            total=summary.total,
            passed=summary.passed,
            failed=summary.failed + summary.errors,
        )
        return output_path

    def generate_dashboard(self, results: Sequence[CheckResult]) -> Path:
        """Generate the interactive HTML report.

        Layout:
        - results table (check, browser, symbol, status, attempts, message)
        - outcome pie chart
        - profit/loss % per symbol
        - 52-week range position per symbol

        Raises:
            ReportGenerationError: If there is nothing to report or writing fails.
        """
        output_path = self._ensure_output_dir() / f"nse_dashboard_{self._timestamp}.html"
        log.info("Generating HTML dashboard", output_path=str(output_path))

        if not results:
            raise ReportGenerationError(
                report_type="Dashboard",
                reason="No check results to report",
                output_path=str(output_path),
            )

        try:
            results_df = pd.DataFrame(
                [
                    {
                        "Check": result.name,
                        "Browser": result.browser,
                        "Symbol": result.symbol,
                        "Status": result.status,
                        "Attempts": result.attempts,
                        "Message": result.message[:120],
                    }
                    for result in results
                ]
            )
            records = _latest_records(results)
            records_df = records_to_dataframe(records)
            summary = ExecutionSummary.from_results(results)

            fig = make_subplots(
                rows=3,
                cols=2,
                subplot_titles=(
                    "Check Results",
                    "Outcomes",
                    "Profit/Loss % by Symbol",
                    "Position in 52-Week Range (%)",
                ),
                specs=[
                    [{"type": "table", "colspan": 2}, None],
                    [{"type": "pie"}, {"type": "bar"}],
                    [{"type": "bar", "colspan": 2}, None],
                ],
                row_heights=[0.45, 0.3, 0.25],
                vertical_spacing=0.08,
            )

            fig.add_trace(
                go.Table(
                    header={"values": list(results_df.columns), "fill_color": "#34495e",
                            "font": {"color": "white"}},
                    cells={
                        "values": [results_df[column] for column in results_df.columns],
                        "fill_color": [[
                            STATUS_COLOURS.get(status, "white") if column == "Status" else "white"
                            for status in results_df["Status"]
                        ] for column in results_df.columns],
                    },
                ),
                row=1,
                col=1,
            )

            outcome_counts = results_df["Status"].value_counts()
            fig.add_trace(
                go.Pie(
                    labels=outcome_counts.index.tolist(),
                    values=outcome_counts.values.tolist(),
                    marker_colors=[STATUS_COLOURS.get(s, "#95a5a6") for s in outcome_counts.index],
                    hovertemplate="%{label}: %{value} (%{percent})<extra></extra>",
                ),
                row=2,
                col=1,
            )

            with_purchase = records_df[records_df["Purchase Price"] > 0]
            fig.add_trace(
                go.Bar(
                    x=with_purchase["Symbol"],
                    y=with_purchase["Profit/Loss %"],
                    marker_color=[
                        "#27ae60" if value >= 0 else "#e74c3c"
                        for value in with_purchase["Profit/Loss %"]
                    ],
                    text=[f"{value:.2f}%" for value in with_purchase["Profit/Loss %"]],
                    textposition="auto",
                    hovertemplate="%{x}: %{y:.2f}%<extra></extra>",
                ),
                row=2,
                col=2,
            )

            positions = [
                (record.symbol, (record.current_price - record.week_low_52)
                 / (record.week_high_52 - record.week_low_52) * 100)
                for record in records
                if record.has_52_week_data and record.week_high_52 > record.week_low_52
            ]
            fig.add_trace(
                go.Bar(
                    x=[symbol for symbol, _ in positions],
                    y=[position for _, position in positions],
                    marker_color="#3498db",
                    hovertemplate="%{x}: %{y:.1f}%<extra></extra>",
                ),
                row=3,
                col=1,
            )

            fig.update_layout(
                title={
                    "text": (
                        f"<b>{self.config.report_title}</b><br>"
                        f"<sup>Checks: {summary.total} | Passed: {summary.passed} | "
                        f"Failed: {summary.failed + summary.errors} | "
                        f"Success: {summary.success_rate:.1f}% | "
                        f"Browsers: {', '.join(summary.browsers)} | "
                        f"Generated: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M UTC')}</sup>"
                    ),
                    "x": 0.5,
                    "xanchor": "center",
                },
                showlegend=False,
                height=1200,
                template="plotly_white",
                font={"family": "Arial, sans-serif"},
            )

            fig.write_html(str(output_path), include_plotlyjs=True, full_html=True)

        except Exception as exc:
            raise ReportGenerationError(
                report_type="Dashboard",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc

        log.info("HTML dashboard generated", output_path=str(output_path), checks=len(results))
        return output_path

    def generate_all(self, results: Sequence[CheckResult]) -> dict[str, Path]:
        """Write CSV, summary and dashboard for a run.

        Returns:
            Mapping of report type to file path.
        """
        return {
            "csv": self.generate_csv(_latest_records(results)),
            "summary": self.generate_summary(results),
            "dashboard": self.generate_dashboard(results),
        }


def _latest_records(results: Sequence[CheckResult]) -> list[StockRecord]:
    """One record per (browser, symbol), the last one extracted."""
    latest: dict[tuple[str, str], StockRecord] = {}
    for result in results:
        if result.record is not None:
            latest[(result.browser, result.symbol)] = result.record
    return list(latest.values())
