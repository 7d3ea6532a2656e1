"""Interactive CLI for linking accounts through Finicity Connect.

Provides commands to check API connectivity, create testing customers, search
institutions, generate Connect links, and browse accounts and transactions.
Uses rich for output and questionary for interactive prompts.
"""

from typing import Optional, Union
from datetime import date, timedelta
import argparse
import logging
import os
from dataclasses import replace

from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.table import Table
from rich import box
import questionary

from .client import FinicityClient
from .config import FinicityConfig, load_dotenv
from .errors import ApiError
from .mock_client import MockFinicityClient
from .models import Customer, Institution, InstitutionList

__all__ = ["CLI", "main"]

DEFAULT_REDIRECT_URI = "http://localhost:3000/callback"


class CLI:
    """Interactive CLI for Finicity customers, institutions and Connect links."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        app_key: Optional[str] = None,
        partner_id: Optional[str] = None,
        partner_secret: Optional[str] = None,
        mock: bool = False,
        env_file: Optional[str] = None,
    ):
        self.console = Console()
        self.mock = mock
        self.customer_id: Optional[str] = None

        if env_file:
            load_dotenv(env_file)

        config = FinicityConfig.from_env()
        overrides = {
            "api_url": api_url,
            "app_key": app_key,
            "partner_id": partner_id,
            "partner_secret": partner_secret,
        }
        self.config = replace(config, **{k: v for k, v in overrides.items() if v})
        self._init_client()

    def _init_client(self) -> None:
        """Initialize the Finicity client (real or mock)."""
        if self.mock:
            self.console.print("[dim]Using mock client[/dim]")
            self.client: Union[FinicityClient, MockFinicityClient] = MockFinicityClient()
            return

        missing = self.config.missing_credentials()
        if missing:
            self.console.print(
                "[yellow]Warning: Finicity credentials not configured: "
                f"{', '.join(missing)}[/yellow]\n"
                "[dim]Set them in the environment, a .env file, or pass "
                "--app-key, --partner-id and --partner-secret. "
                "API calls will fail until then.[/dim]"
            )
        self.client = FinicityClient(self.config)

    def _print_header(self, title: str) -> None:
        """Print a styled header."""
        self.console.print()
        self.console.print(
            Panel(
                Text(title, style="bold"),
                box=box.ROUNDED,
                border_style="blue",
            )
        )
        self.console.print()

    def _print_success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def _print_error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def _print_info(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]")

    def _print_api_error(self, error: ApiError) -> None:
        """Show an API error with its status and provider code."""
        detail = f"status {error.status}"
        if error.code:
            detail += f", code {error.code}"
        self._print_error(f"{error.message} ({detail})")

    def run(self) -> None:
        """Main entry point for the interactive CLI."""
        self._print_header("Finicity Connect")

        while True:
            action = questionary.select(
                "What would you like to do?",
                choices=[
                    questionary.Choice("Check API connection", value="status"),
                    questionary.Choice("Create customer", value="customer"),
                    questionary.Choice("Search institutions", value="search"),
                    questionary.Choice("Generate Connect link", value="link"),
                    questionary.Choice("List accounts", value="accounts"),
                    questionary.Choice("List transactions", value="transactions"),
                    questionary.Choice("Exit", value="exit"),
                ],
                pointer=">",
            ).ask()

            if action is None or action == "exit":
                self.console.print("\n[dim]Goodbye![/dim]")
                break

            try:
                if action == "status":
                    self.check_connection_interactive()
                elif action == "customer":
                    self.create_customer_interactive()
                elif action == "search":
                    self.search_institutions_interactive()
                elif action == "link":
                    self.generate_link_interactive()
                elif action == "accounts":
                    self.list_accounts_interactive()
                elif action == "transactions":
                    self.list_transactions_interactive()
            except KeyboardInterrupt:
                self.console.print("\n[dim]Cancelled[/dim]")
                continue
            except ApiError as e:
                self._print_api_error(e)
                continue
            except ValueError as e:
                self._print_error(str(e))
                continue

    def check_connection_interactive(self) -> None:
        """Authenticate and show which credentials are configured."""
        self._print_header("API Connection")

        table = Table(box=box.ROUNDED, show_header=False, border_style="blue")
        table.add_column("Property", style="cyan")
        table.add_column("Value")
        table.add_row("API URL", self.config.api_url)
        for name, value in (
            ("App key", self.config.app_key),
            ("Partner ID", self.config.partner_id),
            ("Partner secret", self.config.partner_secret),
        ):
            table.add_row(name, "[green]configured[/green]" if value else "[red]missing[/red]")
        self.console.print(table)

        try:
            status = self.client.check_connection()
        except ApiError as e:
            self._print_api_error(e)
            return
        self._print_success(status.message)

    def create_customer_interactive(self) -> Optional[Customer]:
        """Create a testing customer from a prompted username."""
        self._print_header("Create Customer")

        username = questionary.text("Enter a username for the new customer:").ask()
        if not username:
            self._print_info("Cancelled")
            return None

        customer = self.client.create_customer(username.strip())
        self.customer_id = customer.id
        self._print_success(f"Customer created with ID {customer.id}")
        self._show_customer(customer)
        return customer

    def _show_customer(self, customer: Customer) -> None:
        table = Table(box=box.ROUNDED, show_header=False, border_style="blue")
        table.add_column("Property", style="cyan")
        table.add_column("Value")
        table.add_row("ID", customer.id)
        table.add_row("Username", customer.username or "N/A")
        table.add_row("Type", customer.type or "N/A")
        table.add_row("Created", str(customer.created_date or "N/A"))
        self.console.print(table)

    def _ask_customer_id(self) -> Optional[str]:
        customer_id = questionary.text(
            "Customer ID:", default=self.customer_id or ""
        ).ask()
        if not customer_id:
            self._print_info("Cancelled")
            return None
        self.customer_id = customer_id.strip()
        return self.customer_id

    def search_institutions_interactive(self) -> None:
        """Search institutions by name and page through the results."""
        self._print_header("Search Institutions")

        search = questionary.text("Search for your bank (leave empty to browse):").ask()
        if search is None:
            return

        start = 1
        while True:
            result = self.client.get_institutions(search.strip(), start=start)
            if not result.institutions:
                self._print_error("No institutions found")
                return

            self._print_institutions(result)

            choices = [
                questionary.Choice(f"{inst.name or inst.id} ({inst.id})", value=inst)
                for inst in result.institutions
            ]
            if result.more:
                choices.append(questionary.Choice("Next page →", value="next"))
            if start > 1:
                choices.append(questionary.Choice("← Previous page", value="prev"))
            choices.append(questionary.Choice("← Back", value=None))

            selected = questionary.select(
                "Select an institution:",
                choices=choices,
                pointer=">",
            ).ask()

            if selected == "next":
                start += 1
            elif selected == "prev":
                start -= 1
            elif selected is None:
                return
            else:
                self._show_institution_details(selected)
                return

    def _print_institutions(self, result: InstitutionList) -> None:
        table = Table(box=box.ROUNDED, border_style="blue")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("OAuth")
        table.add_column("URL", style="dim")
        for inst in result.institutions:
            table.add_row(
                str(inst.id), inst.name or "", "yes" if inst.oauth_enabled else "no", inst.url or ""
            )
        self.console.print(table)
        if result.found is not None:
            self._print_info(f"Found {result.found} institutions.")

    def _show_institution_details(self, institution: Institution) -> None:
        """Show details for a selected institution and offer to link it."""
        self.console.print()
        table = Table(box=box.ROUNDED, show_header=False, border_style="blue")
        table.add_column("Property", style="cyan")
        table.add_column("Value")
        table.add_row("Name", institution.name or "N/A")
        table.add_row("ID", str(institution.id))
        table.add_row("URL", institution.url or "N/A")
        table.add_row("OAuth", "yes" if institution.oauth_enabled else "no")
        self.console.print(table)
        self.console.print()

        action = questionary.select(
            "What would you like to do?",
            choices=[
                questionary.Choice("Generate Connect link for this institution", value="link"),
                questionary.Choice("← Back", value="back"),
            ],
            pointer=">",
        ).ask()

        if action == "link":
            self.generate_link_interactive(institution_id=str(institution.id))

    def generate_link_interactive(self, institution_id: Optional[str] = None) -> None:
        """Generate a Connect link and display it."""
        self._print_header("Generate Connect Link")

        customer_id = self._ask_customer_id()
        if not customer_id:
            return

        redirect_uri = questionary.text(
            "Redirect URI:", default=DEFAULT_REDIRECT_URI
        ).ask()
        if not redirect_uri:
            self._print_info("Cancelled")
            return

        if institution_id is None:
            institution_id = questionary.text(
                "Institution ID (optional):", default=""
            ).ask() or None
        webhook = questionary.text("Webhook URL (optional):", default="").ask() or None

        connect = self.client.generate_connect_url(
            customer_id, redirect_uri, institution_id=institution_id, webhook=webhook
        )
        self._print_success("Connect link generated!")
        self.console.print()
        self.console.print(
            Panel(
                f"[bold]Connect Link:[/bold]\n\n{connect.link}",
                box=box.ROUNDED,
                border_style="green",
            )
        )
        self.console.print()
        self.console.print(
            "[dim]Open this link in your browser to link your accounts. "
            "The link can only be used once.[/dim]"
        )

    def list_accounts_interactive(self) -> None:
        """List the accounts of a customer."""
        self._print_header("Accounts")

        customer_id = self._ask_customer_id()
        if not customer_id:
            return

        accounts = self.client.get_accounts(customer_id).accounts
        if not accounts:
            self.console.print("[dim]No accounts found.[/dim]")
            return

        table = Table(box=box.ROUNDED, border_style="green")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Number")
        table.add_column("Balance", style="green", justify="right")
        table.add_column("Currency")
        for acc in accounts:
            table.add_row(
                acc.id,
                acc.name or "no-name",
                acc.type or "",
                acc.account_number_display or "",
                f"{acc.balance:.2f}" if acc.balance is not None else "",
                acc.currency or "",
            )
        self.console.print(table)

    def list_transactions_interactive(self) -> None:
        """List transactions of a customer for a prompted date range."""
        self._print_header("Transactions")

        customer_id = self._ask_customer_id()
        if not customer_id:
            return

        today = date.today()
        from_date = questionary.text(
            "From date (YYYY-MM-DD):",
            default=(today - timedelta(days=30)).isoformat(),
        ).ask()
        to_date = questionary.text("To date (YYYY-MM-DD):", default=today.isoformat()).ask()
        if not from_date or not to_date:
            self._print_info("Cancelled")
            return
        account_id = questionary.text("Account ID (optional):", default="").ask() or None

        result = self.client.get_transactions(
            customer_id,
            date.fromisoformat(from_date),
            date.fromisoformat(to_date),
            account_id=account_id,
        )
        if not result.transactions:
            self.console.print("[dim]No transactions found.[/dim]")
            return

        table = Table(box=box.ROUNDED, border_style="green")
        table.add_column("Date", style="cyan")
        table.add_column("Description")
        table.add_column("Amount", justify="right")
        table.add_column("Account", style="dim")
        for tx in result.transactions:
            amount = tx.amount or 0.0
            style = "red" if amount < 0 else "green"
            table.add_row(
                str(tx.posted_date or tx.transaction_date or ""),
                tx.description or "",
                f"[{style}]{amount:.2f}[/{style}]",
                str(tx.account_id or ""),
            )
        self.console.print(table)
        if result.more:
            self._print_info("More transactions are available.")


def main():
    """Entry point for the interactive CLI."""
    parser = argparse.ArgumentParser(
        description="Interactive CLI for Finicity customers and Connect links",
    )
    parser.add_argument(
        "--api-url",
        default=os.getenv("FINICITY_API_URL"),
        help="API base URL (defaults to env var FINICITY_API_URL)",
    )
    parser.add_argument(
        "--app-key",
        default=os.getenv("FINICITY_APP_KEY"),
        help="App key (defaults to env var FINICITY_APP_KEY)",
    )
    parser.add_argument(
        "--partner-id",
        default=os.getenv("FINICITY_PARTNER_ID"),
        help="Partner ID (defaults to env var FINICITY_PARTNER_ID)",
    )
    parser.add_argument(
        "--partner-secret",
        default=os.getenv("FINICITY_PARTNER_SECRET"),
        help="Partner secret (defaults to env var FINICITY_PARTNER_SECRET)",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use mock client with synthetic data (for testing)",
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file to load environment variables from",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    cli = CLI(
        api_url=args.api_url,
        app_key=args.app_key,
        partner_id=args.partner_id,
        partner_secret=args.partner_secret,
        mock=args.mock,
        env_file=args.env_file,
    )
    cli.run()


if __name__ == "__main__":
    main()
