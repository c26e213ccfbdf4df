#!/usr/bin/env python3
"""
Ledger Terminal - Interactive shell over the replicated ledger

Menu:
    1) View a provider's chain
    2) Propose a record (one vote per provider, majority appends everywhere)
    3) Query a patient's records across providers
    4) Verify every chain
    anything else exits
"""
import argparse
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from ledger_system.core.config import get_config
from ledger_system.core.datashapes import Record
from ledger_system.core.error_handler import ErrorCategory, ErrorHandler, ErrorSeverity
from ledger_system.core.hashchain import ChainRenderer, InvalidArgumentError, StructuralViolationError
from ledger_system.core.ledger_logging import LedgerCodes, configure_logging, shell_logger
from ledger_system.core.providers import (
    Provider,
    ProviderRegistry,
    ReplicationGate,
    query_by_owner,
)
from ledger_system.core.seed import build_default_registry

RECORD_PROMPTS = [
    ("ref_id", "Input RRC ref"),
    ("owner", "Input ownership"),
    ("access_policy", "Input Access Policies"),
    ("status", "Input Status"),
    ("si", "Input Si"),
]


class LedgerTerminal:
    def __init__(
        self,
        registry: ProviderRegistry,
        console: Optional[Console] = None,
        error_handler: Optional[ErrorHandler] = None,
        parallel: bool = False,
        max_workers: Optional[int] = None
    ):
        self.registry = registry
        self.console = console or Console()
        self.error_handler = error_handler or ErrorHandler(console=self.console)
        self.gate = ReplicationGate(registry, parallel=parallel, max_workers=max_workers)
        self.renderer = ChainRenderer()

    def run(self):
        """Main terminal loop"""
        while self.main_menu():
            self._flush_alerts()

    def main_menu(self) -> bool:
        """Show the menu and handle one choice. False means exit."""
        self.console.print()
        self.console.print("[bold]Choose an option:[/bold]")
        self.console.print("1) View provider chain")
        self.console.print("2) Add record")
        self.console.print("3) View patient records")
        self.console.print("4) Verify all chains")
        self.console.print("Other to Exit")

        choice = Prompt.ask("Select an option", console=self.console, default="")

        if choice == "1":
            self.show_provider_chain()
        elif choice == "2":
            self.add_record()
        elif choice == "3":
            self.query_patient()
        elif choice == "4":
            self.verify_all()
        else:
            return False
        return True

    # =========================================================================
    # MENU ACTIONS
    # =========================================================================

    def choose_provider(self) -> Optional[Provider]:
        """List providers and let the operator pick one (1-based)."""
        table = Table(title="Providers")
        table.add_column("#", width=4)
        table.add_column("Name")
        table.add_column("Blocks", justify="right")
        for position, provider in enumerate(self.registry, start=1):
            table.add_row(str(position), provider.name, str(len(provider.chain)))
        self.console.print(table)

        raw = Prompt.ask("Choose provider", console=self.console, default="")
        try:
            position = int(raw)
        except ValueError:
            position = 0

        if not 1 <= position <= len(self.registry):
            self.error_handler.handle_error(
                InvalidArgumentError(f"no provider numbered {raw!r}"),
                ErrorCategory.UI_INPUT, ErrorSeverity.LOW_DEBUG,
                operation="choose_provider"
            )
            self.console.print("[yellow]No such provider[/yellow]")
            return None
        return self.registry[position - 1]

    def show_provider_chain(self):
        provider = self.choose_provider()
        if provider is None:
            return

        with self.error_handler.create_context_manager(
            ErrorCategory.UI_RENDERING, ErrorSeverity.MEDIUM_ALERT,
            operation="show_provider_chain", context=provider.name
        ):
            rendered = self.renderer.render_chain(provider.chain)
            self.console.print(Panel(Text(rendered), title=provider.name, border_style="blue"))

    def read_record(self) -> Record:
        """Prompt for the five record fields."""
        values = {}
        for field_name, prompt in RECORD_PROMPTS:
            values[field_name] = Prompt.ask(prompt, console=self.console, default="")
        return Record(**values)

    def ask_vote(self, provider: Provider) -> bool:
        """1 = yes, anything else = no."""
        answer = Prompt.ask(f"{provider.name}: 1-Yes 2-No ?", console=self.console, default="2")
        return answer.strip() == "1"

    def add_record(self):
        """Collect a record and votes, replicate on majority."""
        record = self.read_record()

        with self.error_handler.create_context_manager(
            ErrorCategory.REPLICATION, ErrorSeverity.HIGH_DEGRADE,
            operation="add_record", context=f"record {record.ref_id}"
        ):
            result = self.gate.propose_record(record, self.ask_vote)

            if result.approved:
                self.console.print(
                    f"[green]Added, votes {result.votes_for}/{len(self.registry)} > 50%[/green]"
                )
            else:
                self.console.print(
                    f"[yellow]Canceled, votes {result.votes_for}/{len(self.registry)} "
                    f"(need {result.votes_required})[/yellow]"
                )
            return result

        return None

    def query_patient(self):
        name = Prompt.ask("Patient name", console=self.console, default="")

        with self.error_handler.create_context_manager(
            ErrorCategory.QUERY, ErrorSeverity.MEDIUM_ALERT,
            operation="query_patient", context=name
        ):
            results = query_by_owner(self.registry, name)
            self.console.print(Panel(
                Text(self.renderer.render_query(results)),
                title=f"Records for {name}",
                border_style="green"
            ))
            return results

        return None

    def verify_all(self):
        table = Table(title="Chain Integrity")
        table.add_column("Provider")
        table.add_column("Blocks", justify="right")
        table.add_column("Status")

        reports = self.registry.verify_all(include_genesis=True)
        for name, report in reports.items():
            if report.valid:
                status = "[green]valid[/green]"
            else:
                status = f"[red]broken at #{report.first_bad_index}[/red]"
                broken = ", ".join(f"#{i}" for i in report.bad_indices)
                self.error_handler.handle_error(
                    StructuralViolationError(f"broken blocks {broken}"),
                    ErrorCategory.CHAIN_VALIDATION, ErrorSeverity.MEDIUM_ALERT,
                    context=name, operation="verify_all",
                    suppress_duplicate_minutes=0
                )
            table.add_row(name, str(report.block_count), status)

        self.console.print(table)
        return reports

    def _flush_alerts(self):
        print_alerts(self.console, self.error_handler)


def print_alerts(console: Console, error_handler: ErrorHandler):
    for alert in error_handler.get_alerts_for_ui():
        console.print(alert)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Replicated patient ledger terminal")
    parser.add_argument("--env", default=None, help="development, production or test")
    parser.add_argument("--parallel", action="store_true", help="Mine replicas in parallel")
    args = parser.parse_args(argv)

    config = get_config(args.env)
    configure_logging(config)

    console = Console()
    error_handler = ErrorHandler(console=console, debug_mode=config.DEBUG)

    issues = config.validate_config()
    if issues:
        for issue in issues:
            error_handler.handle_error(
                InvalidArgumentError(issue),
                ErrorCategory.CONFIGURATION, ErrorSeverity.HIGH_DEGRADE,
                operation="startup", suppress_duplicate_minutes=0
            )
        print_alerts(console, error_handler)
        return 1

    console.print("[bold]Mining seed chains...[/bold]")
    registry = None
    with error_handler.create_context_manager(
        ErrorCategory.MINING, ErrorSeverity.HIGH_DEGRADE,
        operation="startup", context="seed chains"
    ):
        registry = build_default_registry(config.get_difficulty(), config.get_max_attempts())

    if registry is None:
        print_alerts(console, error_handler)
        console.print("[red]Seed chains could not be mined. "
                      "Raise LEDGER_MAX_MINING_ATTEMPTS or lower LEDGER_DIFFICULTY.[/red]")
        return 1

    shell_logger.log_info(
        LedgerCodes.SHELL_STARTED,
        f"Seeded {len(registry)} providers",
        {'providers': registry.names(), 'difficulty': config.DIFFICULTY_HEX}
    )

    terminal = LedgerTerminal(
        registry,
        console=console,
        error_handler=error_handler,
        parallel=args.parallel or config.PARALLEL_REPLICATION,
        max_workers=config.MAX_WORKERS,
    )
    try:
        terminal.run()
    except KeyboardInterrupt:
        console.print("\nGoodbye")
    return 0


if __name__ == "__main__":
    sys.exit(main())
