"""Rich output for CLI commands.

Only masked previews and structural data are ever printed.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from waivern_dsar.categories import Severity, is_special_category, to_confidence_level
from waivern_dsar.detection.models import EvidenceScanResult
from waivern_dsar.orchestration.models import DiscoveryRunResult, QueryStatus, RunStatus
from waivern_dsar.rulesets.catalog import PatternCatalog, PatternKind

console = Console()


class OutputFormatter:
    """Formats command results for the terminal."""

    STATUS_STYLES = {
        QueryStatus.COMPLETED: "[green]Completed[/green]",
        QueryStatus.FAILED: "[red]Failed[/red]",
        QueryStatus.SKIPPED: "[yellow]Skipped[/yellow]",
        QueryStatus.PENDING: "Pending",
        QueryStatus.RUNNING: "Running",
    }

    SEVERITY_STYLES = {
        Severity.CRITICAL: "[bold red]CRITICAL[/bold red]",
        Severity.WARNING: "[yellow]WARNING[/yellow]",
        Severity.INFO: "[blue]INFO[/blue]",
    }

    def format_scan_result(self, location: str, scan: EvidenceScanResult) -> None:
        """Print the elements and categories detected in one item."""
        if not scan.results:
            console.print(f"[green]No personal data detected in {location}[/green]")
            return

        elements = Table(
            title=f"Detected elements in {location}",
            show_header=True,
            header_style="bold magenta",
        )
        elements.add_column("Detector", style="cyan")
        elements.add_column("Element", style="white")
        elements.add_column("Category")
        elements.add_column("Confidence", style="blue")
        elements.add_column("Preview", style="yellow")
        for result in scan.results:
            for element in result.detected_elements:
                elements.add_row(
                    result.detector_type.value,
                    element.element_type,
                    element.category.value,
                    f"{element.confidence:.2f} ({element.confidence_level.value})",
                    element.snippet_preview,
                )
        if elements.row_count:
            console.print(elements)

        categories = Table(title="Categories", show_header=True, header_style="bold magenta")
        categories.add_column("Category", style="cyan")
        categories.add_column("Confidence", style="blue")
        categories.add_column("Special")
        for category, confidence in sorted(
            scan.categories.items(), key=lambda item: (-item[1], item[0].value)
        ):
            categories.add_row(
                category.value,
                f"{confidence:.2f} ({to_confidence_level(confidence).value})",
                "[bold red]yes[/bold red]" if is_special_category(category) else "no",
            )
        console.print(categories)

        if scan.contains_special_category:
            names = ", ".join(c.value for c in scan.special_categories) or "suspected"
            console.print(
                Panel(
                    f"Special category data detected: {names}",
                    title="Legal review required",
                    border_style="red",
                )
            )
        if scan.contains_third_party_data:
            console.print("[yellow]Content may contain third-party personal data.[/yellow]")

    def format_pattern_list(self, catalog: PatternCatalog) -> None:
        """Print every pattern of a catalog."""
        table = Table(
            title=f"Detection patterns ({catalog.name} {catalog.version})",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Kind")
        table.add_column("Category")
        table.add_column("Special")
        table.add_column("Validator")
        table.add_column("Description", style="white")
        for pattern in catalog.patterns:
            table.add_row(
                pattern.name,
                pattern.kind.value,
                pattern.category.value,
                "yes" if pattern.special else "no",
                pattern.validator.value if pattern.validator else "-",
                pattern.description,
            )
        console.print(table)
        keyword_count = sum(1 for p in catalog.patterns if p.kind is PatternKind.KEYWORD)
        console.print(
            f"{len(catalog)} pattern(s), {keyword_count} keyword pattern(s), "
            f"{len(catalog.metadata_hints)} metadata hint(s)"
        )

    def format_run_result(self, result: DiscoveryRunResult) -> None:
        """Print the outcome of a discovery run."""
        if result.status is RunStatus.FAILED:
            console.print(
                Panel(
                    f"[red]{result.error_message}[/red]",
                    title=f"Run {result.run_id} failed",
                    border_style="red",
                )
            )
            return

        queries = Table(title="Source queries", show_header=True, header_style="bold magenta")
        queries.add_column("Source", style="cyan")
        queries.add_column("Provider")
        queries.add_column("Status")
        queries.add_column("Records", style="blue")
        queries.add_column("Detail", style="white")
        for record in result.query_records:
            queries.add_row(
                record.source_id,
                record.provider,
                self.STATUS_STYLES[record.status],
                str(record.records_found),
                record.error_message or "",
            )
        console.print(queries)

        if result.findings:
            findings = Table(title="Findings", show_header=True, header_style="bold magenta")
            findings.add_column("Category", style="cyan")
            findings.add_column("Severity")
            findings.add_column("Confidence", style="blue")
            findings.add_column("Evidence items")
            findings.add_column("Legal review")
            for finding in result.findings:
                findings.add_row(
                    finding.data_category.value,
                    self.SEVERITY_STYLES[finding.severity],
                    f"{finding.confidence:.2f}",
                    str(len(finding.evidence_item_ids)),
                    "yes" if finding.requires_legal_review else "no",
                )
            console.print(findings)

        console.print(Panel(result.summary, title="Summary", border_style="blue"))
        if result.persistence_errors:
            console.print(
                f"[yellow]{len(result.persistence_errors)} write(s) failed: "
                f"{', '.join(result.persistence_errors)}[/yellow]"
            )
