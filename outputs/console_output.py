from rich.text import Text
from rich.panel import Panel
from rich.table import Table
from rich.console import Console
from outputs.base_output import BaseOutput
from models.base_models import FindingStatus, ScanReport


STATUS_MARKUP = {
    FindingStatus.OK: "[bold green]OK[/bold green]",
    FindingStatus.WARN: "[bold yellow]WARN[/bold yellow]",
    FindingStatus.FAIL: "[bold red]FAIL[/bold red]",
    FindingStatus.UNKNOWN: "[bold magenta]UNKNOWN[/bold magenta]",
}


class ConsoleOutput(BaseOutput):
    def __init__(self, config_manager, console: Console = None):
        super().__init__(config_manager)
        self.console = console or Console()


    def build_table(self, results: ScanReport) -> Table:
        """Creates the findings table, one row per finding."""
        table = Table(title="Cloud Configuration Findings", expand=True)
        table.add_column("Category", style="cyan", no_wrap=True)
        table.add_column("Plugin", style="magenta")
        table.add_column("Region", style="blue")
        table.add_column("Resource", style="white", overflow="fold")
        table.add_column("Status", justify="center")
        table.add_column("Message", style="white")

        for finding in self.visible_findings(results):
            table.add_row(
                # Cache-derived strings are not rich markup
                Text(finding.category),
                Text(finding.title),
                Text(finding.region),
                Text(finding.resource or "N/A"),
                STATUS_MARKUP[finding.status],
                Text(finding.message),
            )
        return table


    def build_summary(self, results: ScanReport) -> Panel:
        stats = results.stats
        meta = results.metadata
        faulted = [entry.plugin_id for entry in results.entries if entry.error]

        summary = (
            f"[bold green]{stats['ok']} OK[/bold green] / "
            f"[bold yellow]{stats['warn']} WARN[/bold yellow] / "
            f"[bold red]{stats['fail']} FAIL[/bold red] / "
            f"[bold magenta]{stats['unknown']} UNKNOWN[/bold magenta]\n"
            f"[dim]{meta.get('plugins_run', 0)} plugins run at {meta.get('scan_time', 'N/A')}[/dim]"
        )
        if faulted:
            summary += f"\n[bold red]Plugins with errors:[/bold red] {', '.join(faulted)}"

        return Panel(Text.from_markup(summary), title="Scan Summary", border_style="white")


    def render(self, results: ScanReport):
        self.console.print(self.build_table(results))
        self.console.print(self.build_summary(results))
        self.logger.info("Console report rendered.")


__plugin__ = ConsoleOutput
