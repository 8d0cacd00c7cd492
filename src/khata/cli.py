"""Typer-based CLI for Khata."""

import json
import logging
from datetime import date
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import KhataConfig
from .exceptions import KhataError
from .formatting import EVENT_STYLES, event_label, format_currency, format_date, format_datetime
from .ledger import read_events_tail
from .loans import payment_mode
from .models.event import EventType, FinanceEvent
from .models.views import DateFilter
from .paths import DataPaths
from .service import Bookkeeper

app = typer.Typer(
    name="khata",
    help="Khata - bookkeeping ledger for village micro-lending",
    add_completion=False,
)

console = Console()

DATA_OPTION_HELP = "Path to data directory (default: KHATA_DATA env or ./khata_data)"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
):
    """Khata - bookkeeping ledger for village micro-lending."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(data_path: Optional[str]) -> KhataConfig:
    try:
        return KhataConfig.from_env(cli_data_path=data_path)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("[yellow]Run 'khata init' first[/yellow]")
        raise typer.Exit(code=1)


def _open_books(data_path: Optional[str]) -> tuple[KhataConfig, Bookkeeper]:
    config = _load_config(data_path)
    return config, Bookkeeper.open(config)


def _fail(error: Exception) -> None:
    console.print(f"[red]Error: {error}[/red]")
    raise typer.Exit(code=1)


def _money(config: KhataConfig, amount) -> str:
    return format_currency(amount, config.currency_symbol)


@app.command()
def init(
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Initialize a data directory with empty collections.

    This command is idempotent - it will not overwrite existing data.
    """
    config = KhataConfig.from_env(cli_data_path=data_path, mode="create_ok")
    paths = DataPaths.from_config(config)

    if paths.is_initialized():
        console.print(f"[yellow]Data directory already exists at:[/yellow] {paths.root}")
    else:
        console.print(f"[green]Initializing Khata data at:[/green] {paths.root}")

    paths.root.mkdir(parents=True, exist_ok=True)

    if not paths.config_file.exists():
        paths.config_file.write_text(config.to_yaml_str(), encoding="utf-8")
        console.print(f"[green]+[/green] Created config: {paths.config_file}")

    for collection in paths.get_all_files():
        if not collection.exists():
            collection.write_text("" if collection.suffix == ".jsonl" else "[]", encoding="utf-8")
            console.print(f"[green]+[/green] Created {collection.name}")
        else:
            console.print(f"[dim]{collection.name} already exists[/dim]")

    Bookkeeper.open(config)
    console.print()
    console.print("[bold green]Initialization complete![/bold green]")


# ----------------------------------------------------------------------
# Areas
# ----------------------------------------------------------------------

area_app = typer.Typer(help="Area commands")
app.add_typer(area_app, name="area")


@area_app.command("create")
def area_create(
    name: str = typer.Argument(..., help="Area name"),
    onboarding: bool = typer.Option(False, "--onboarding", help="Area with an existing cash position"),
    opening_balance: str = typer.Option(None, "--opening-balance", help="Cash in hand when onboarding"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Create an area (selected automatically if it is the first)."""
    config, books = _open_books(data_path)
    try:
        area = books.create_area(name, onboarding, opening_balance)
    except KhataError as e:
        _fail(e)
    console.print(f"[green]+[/green] Created area [bold]{area.name}[/bold] ({area.id})")
    if books.selected_area_id == area.id:
        console.print("[dim]Selected as current area[/dim]")


@area_app.command("list")
def area_list(
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """List areas; the selected one is marked."""
    config, books = _open_books(data_path)
    areas = books.areas.all()
    if not areas:
        console.print("[dim]No areas yet[/dim]")
        return

    table = Table(title="Areas")
    table.add_column("", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Created", style="cyan")
    table.add_column("Onboarding")
    for area in areas:
        marker = "[green]*[/green]" if area.id == books.selected_area_id else ""
        table.add_row(
            marker,
            area.name,
            area.id,
            format_date(area.created_at, config.tzinfo()),
            "yes" if area.is_onboarding else "",
        )
    console.print(table)


@area_app.command("select")
def area_select(
    area_id: str = typer.Argument(..., help="Area ID"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Select the area that later commands act on."""
    config, books = _open_books(data_path)
    area = books.areas.get(area_id)
    if area is None:
        console.print(f"[red]Error: Area not found: {area_id}[/red]")
        raise typer.Exit(code=1)
    books.select_area(area.id)
    console.print(f"Selected area [bold]{area.name}[/bold]")


@area_app.command("delete")
def area_delete(
    area_id: str = typer.Argument(..., help="Area ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Delete an area with all its villages, customers and events."""
    config, books = _open_books(data_path)
    area = books.areas.get(area_id)
    if area is None:
        console.print(f"[red]Error: Area not found: {area_id}[/red]")
        raise typer.Exit(code=1)
    if not yes and not typer.confirm(f"Delete \"{area.name}\" and all its data? This cannot be undone."):
        raise typer.Abort()
    books.delete_area(area.id)
    console.print(f"[green]Deleted area {area.name}[/green]")


# ----------------------------------------------------------------------
# Villages
# ----------------------------------------------------------------------

village_app = typer.Typer(help="Village commands")
app.add_typer(village_app, name="village")


@village_app.command("create")
def village_create(
    name: str = typer.Argument(..., help="Village name"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Create a village in the selected area."""
    config, books = _open_books(data_path)
    try:
        village = books.create_village(name)
    except KhataError as e:
        _fail(e)
    console.print(f"[green]+[/green] Created village [bold]{village.name}[/bold] ({village.id})")


@village_app.command("list")
def village_list(
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """List villages of the selected area."""
    config, books = _open_books(data_path)
    villages = books.villages()
    if not villages:
        console.print("[dim]No villages in this area[/dim]")
        return

    table = Table(title="Villages")
    table.add_column("Name", style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Next Serial", justify="right")
    for village in villages:
        table.add_row(village.name, village.id, str(village.next_serial_number))
    console.print(table)


@village_app.command("delete")
def village_delete(
    village_id: str = typer.Argument(..., help="Village ID"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Delete a village; its customers are kept."""
    config, books = _open_books(data_path)
    books.delete_village(village_id)
    console.print(f"[green]Deleted village {village_id}[/green]")


# ----------------------------------------------------------------------
# Customers
# ----------------------------------------------------------------------

customer_app = typer.Typer(help="Customer commands")
app.add_typer(customer_app, name="customer")


@customer_app.command("create")
def customer_create(
    village_id: str = typer.Option(..., "--village", help="Village ID"),
    name: str = typer.Option(..., "--name", help="Customer name"),
    phone: str = typer.Option("", "--phone", help="Phone number"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Create a customer with the village's next serial number."""
    config, books = _open_books(data_path)
    try:
        customer = books.create_customer(village_id, name, phone)
    except KhataError as e:
        _fail(e)
    console.print(
        f"[green]+[/green] Created customer [bold]#{customer.serial_number} {customer.name}[/bold] ({customer.id})"
    )


@customer_app.command("list")
def customer_list(
    search: str = typer.Option("", "--search", "-s", help="Serial number, name, phone or village"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """List customers by village with their current loan state."""
    config, books = _open_books(data_path)
    groups = books.village_groups(search)
    if not any(group.customers for group in groups):
        console.print("[dim]No customers found[/dim]")
        return

    for group in groups:
        table = Table(title=f"{group.name} ({len(group.customers)})")
        table.add_column("#", justify="right", style="bold")
        table.add_column("Name")
        table.add_column("ID", style="dim")
        table.add_column("Paid", justify="right", style="green")
        table.add_column("Remaining", justify="right", style="yellow")
        table.add_column("Installments", justify="right")
        table.add_column("Status")
        for s in group.customers:
            if not s.has_loan:
                status = "[dim]no loan[/dim]"
            elif s.is_fully_paid:
                status = "[green]paid[/green]"
            elif s.paid_today:
                status = "[cyan]paid today[/cyan]"
            else:
                status = "[yellow]due[/yellow]"
            table.add_row(
                str(s.customer.serial_number),
                s.customer.name,
                s.customer.id,
                _money(config, s.amount_paid),
                _money(config, s.remaining_amount),
                f"{s.installments_paid}/{s.total_installments}" if s.has_loan else "-",
                status,
            )
        console.print(table)


@customer_app.command("show")
def customer_show(
    customer_id: str = typer.Argument(..., help="Customer ID"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Show a customer's loan summary and loan history."""
    config, books = _open_books(data_path)
    tz = config.tzinfo()
    summary = books.customer_summary(customer_id)
    if summary is None:
        console.print(f"[red]Customer not found: {customer_id}[/red]")
        raise typer.Exit(code=1)

    c = summary.customer
    console.print(f"[bold]#{c.serial_number} {c.name}[/bold]  [dim]{c.village_name}[/dim]")
    if c.phone:
        console.print(f"[dim]{c.phone}[/dim]")

    if not summary.has_loan:
        console.print("[dim]No loan[/dim]")
        return

    console.print(
        f"Given {_money(config, summary.loan_amount)}  "
        f"Payable {_money(config, summary.total_payable)}  "
        f"[green]Paid {_money(config, summary.amount_paid)}[/green]  "
        f"[yellow]Remaining {_money(config, summary.remaining_amount)}[/yellow]"
    )
    console.print(
        f"{summary.installments_paid} of {summary.total_installments} installments "
        f"({summary.progress_percent:.0f}%), "
        f"{_money(config, summary.installment_amount)} per installment"
    )

    for section in books.customer_sections(customer_id):
        state = "[green]active[/green]" if section.is_active else "[dim]closed[/dim]"
        closed = f" to {format_date(section.closed_date, tz)}" if section.closed_date else ""
        table = Table(
            title=(
                f"{'Renewed' if section.loan_type == 'RENEWED' else 'New'} loan "
                f"{format_date(section.start_date, tz)}{closed} ({state})"
            )
        )
        table.add_column("When", style="cyan", no_wrap=True)
        table.add_column("Mode")
        table.add_column("Amount", justify="right")
        for payment in section.payments:
            label = payment_mode(payment)
            if payment.payload.is_onboarding:
                label += " (onboarding)"
            table.add_row(
                format_datetime(payment.created_at, tz),
                label,
                _money(config, payment.payload.total_amount),
            )
        console.print(table)
        console.print(
            f"  Paid {_money(config, section.amount_paid)} of {_money(config, section.total_payable)}, "
            f"remaining {_money(config, section.remaining_amount)}"
        )


@customer_app.command("delete")
def customer_delete(
    customer_id: str = typer.Argument(..., help="Customer ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Delete a customer; their ledger events are kept."""
    config, books = _open_books(data_path)
    customer = books.get_customer(customer_id)
    if customer is None:
        console.print(f"[red]Error: Customer not found: {customer_id}[/red]")
        raise typer.Exit(code=1)
    if not yes and not typer.confirm(f"Delete \"{customer.name}\"? This cannot be undone."):
        raise typer.Abort()
    books.delete_customer(customer_id)
    console.print(f"[green]Deleted customer {customer.name}[/green]")


# ----------------------------------------------------------------------
# Loans and cash movements
# ----------------------------------------------------------------------

loan_app = typer.Typer(help="Loan commands")
app.add_typer(loan_app, name="loan")


@loan_app.command("new")
def loan_new(
    customer_id: str = typer.Argument(..., help="Customer ID"),
    amount: str = typer.Option(..., "--amount", help="Principal given"),
    payable: str = typer.Option(..., "--payable", help="Total payable"),
    installments: str = typer.Option(..., "--installments", help="Number of installments"),
    paid_installments: str = typer.Option(None, "--paid-installments", help="Installments already paid (onboarding)"),
    paid_amount: str = typer.Option(None, "--paid-amount", help="Amount already paid (onboarding)"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Give a new loan, optionally onboarding installments already paid."""
    config, books = _open_books(data_path)
    try:
        events = books.create_new_loan(
            customer_id, amount, payable, installments, paid_installments, paid_amount
        )
    except KhataError as e:
        _fail(e)
    loan = events[0]
    console.print(f"[green]+[/green] New loan {_money(config, loan.payload.loan_amount)} ({loan.event_id})")
    if len(events) > 1:
        console.print(f"[dim]Backfilled {len(events) - 1} onboarding payment(s)[/dim]")


@loan_app.command("renew")
def loan_renew(
    customer_id: str = typer.Argument(..., help="Customer ID"),
    amount: str = typer.Option(..., "--amount", help="Principal given"),
    payable: str = typer.Option(..., "--payable", help="Total payable"),
    installments: str = typer.Option(..., "--installments", help="Number of installments"),
    previous: str = typer.Option(None, "--previous", help="Previous loan event ID (default: active loan)"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Renew a customer's loan."""
    config, books = _open_books(data_path)
    if previous is None:
        summary = books.customer_summary(customer_id)
        if summary is None or summary.active_loan_event_id is None:
            console.print("[red]Error: Customer has no loan to renew[/red]")
            raise typer.Exit(code=1)
        previous = summary.active_loan_event_id
        if not summary.is_fully_paid:
            console.print(
                f"[yellow]Warning: previous loan still has {_money(config, summary.remaining_amount)} "
                "remaining; it will not be carried over[/yellow]"
            )
    try:
        event = books.renew_loan(customer_id, previous, amount, payable, installments)
    except KhataError as e:
        _fail(e)
    console.print(f"[green]+[/green] Renewed loan {_money(config, event.payload.loan_amount)} ({event.event_id})")


@app.command()
def pay(
    customer_id: str = typer.Argument(..., help="Customer ID"),
    cash: str = typer.Option("0", "--cash", help="Cash (offline) amount"),
    online: str = typer.Option("0", "--online", help="Online amount"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Record an installment against the customer's active loan."""
    config, books = _open_books(data_path)
    summary = books.customer_summary(customer_id)
    if summary is None or summary.active_loan_event_id is None:
        console.print("[red]Error: Customer has no active loan[/red]")
        raise typer.Exit(code=1)
    try:
        event = books.make_payment(customer_id, summary.active_loan_event_id, online, cash)
    except KhataError as e:
        _fail(e)
    total = event.payload.total_amount
    if total > summary.remaining_amount:
        console.print(
            f"[yellow]Payment of {_money(config, total)} exceeds remaining "
            f"{_money(config, summary.remaining_amount)}[/yellow]"
        )
    console.print(f"[green]+[/green] Payment {_money(config, total)} ({payment_mode(event)})")


@app.command()
def expense(
    amount: str = typer.Argument(..., help="Amount"),
    description: str = typer.Option("", "--description", "-m", help="What the money was spent on"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Record an expense in the selected area."""
    config, books = _open_books(data_path)
    try:
        event = books.add_expense(amount, description)
    except KhataError as e:
        _fail(e)
    console.print(f"[green]+[/green] Expense {_money(config, event.payload.amount)}")


@app.command()
def capital(
    amount: str = typer.Argument(..., help="Amount"),
    description: str = typer.Option("", "--description", "-m", help="Source of the capital"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Record capital added to the selected area."""
    config, books = _open_books(data_path)
    try:
        event = books.add_capital(amount, description)
    except KhataError as e:
        _fail(e)
    console.print(f"[green]+[/green] Capital {_money(config, event.payload.amount)}")


@app.command()
def adjust(
    event_id: str = typer.Argument(..., help="Event being corrected"),
    amount: str = typer.Argument(..., help="Signed amount; negative deducts"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the correction is needed"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Record an adjustment against an earlier event (the original is unchanged)."""
    config, books = _open_books(data_path)
    try:
        event = books.create_adjustment(event_id, amount, reason)
    except KhataError as e:
        _fail(e)
    console.print(f"[green]+[/green] Adjustment {_money(config, event.payload.amount)}")


# ----------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------


@app.command()
def dashboard(
    mode: str = typer.Option("all", "--filter", "-f", help="today | yesterday | custom | range | all"),
    on: str = typer.Option(None, "--date", help="Day for --filter custom (YYYY-MM-DD)"),
    start: str = typer.Option(None, "--from", help="First day for --filter range (YYYY-MM-DD)"),
    end: str = typer.Option(None, "--to", help="Last day for --filter range (YYYY-MM-DD)"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Show the money-flow summary of the selected area."""
    config, books = _open_books(data_path)
    if books.selected_area is None:
        console.print("[red]Error: No area selected[/red]")
        raise typer.Exit(code=1)

    try:
        date_filter = DateFilter(
            mode=mode,
            custom_date=date.fromisoformat(on) if on else None,
            start_date=date.fromisoformat(start) if start else None,
            end_date=date.fromisoformat(end) if end else None,
        )
    except ValueError as e:
        console.print(f"[red]Error: Invalid filter: {e}[/red]")
        raise typer.Exit(code=1)

    data = books.dashboard(date_filter)
    table = Table(title=f"{books.selected_area.name} - {mode}")
    table.add_column("", style="bold")
    table.add_column("Amount", justify="right")
    rows = [
        ("Opening balance", data.opening_balance, ""),
        ("Given (new)", data.total_given_new, "blue"),
        ("Given (renewed)", data.total_given_renewed, "purple"),
        ("Total given", data.total_given, "blue"),
        ("Collected (cash)", data.total_collected_offline, "green"),
        ("Collected (online)", data.total_collected_online, "green"),
        ("Total collected", data.total_collected, "green"),
        ("VK (new)", data.vk_new, ""),
        ("VK (renewed)", data.vk_renewed, ""),
        ("VK", data.vk, ""),
        ("Expenses", data.expenses, "red"),
        ("Capital added", data.capital_added, "deep_sky_blue1"),
        ("Adjustments", data.adjustments, "dark_orange"),
        ("Closing balance", data.closing_balance, "bold"),
    ]
    for label, amount, style in rows:
        value = _money(config, amount)
        table.add_row(label, f"[{style}]{value}[/{style}]" if style else value)
    console.print(table)


ledger_app = typer.Typer(help="Ledger commands")
app.add_typer(ledger_app, name="ledger")


def _describe(event: FinanceEvent, config: KhataConfig) -> str:
    p = event.payload
    if event.event_type in (EventType.NEW_LOAN, EventType.RENEW_LOAN):
        return f"{p.customer_name}: {_money(config, p.loan_amount)} -> {_money(config, p.total_payable)}"
    if event.event_type is EventType.INSTALLMENT_PAYMENT:
        parts = []
        if p.offline_amount > 0:
            parts.append(f"Cash {_money(config, p.offline_amount)}")
        if p.online_amount > 0:
            parts.append(f"Online {_money(config, p.online_amount)}")
        suffix = " (onboarding)" if p.is_onboarding else ""
        return f"{p.customer_name}: {' + '.join(parts)}{suffix}"
    if event.event_type is EventType.ADJUSTMENT_EVENT:
        return f"{_money(config, p.amount)} ref {p.reference_event_id[:8]}... {p.reason}"
    if event.event_type in (EventType.EXPENSE, EventType.CAPITAL_ADDED):
        return f"{_money(config, p.amount)} {p.description}".strip()
    return _money(config, p.amount)


@ledger_app.command("tail")
def ledger_tail(
    n: int = typer.Option(20, "--n", help="Number of recent events to display"),
    full: bool = typer.Option(False, "--full", help="Show full payloads with JSON pretty-print"),
    data_path: str = typer.Option(None, "--data", "-d", help=DATA_OPTION_HELP),
):
    """Display the last N events from the ledger (all areas)."""
    config = _load_config(data_path)
    paths = DataPaths.from_config(config)
    tz = config.tzinfo()

    events = read_events_tail(paths.events_file, n=n)
    if not events:
        console.print("[dim]No events in ledger[/dim]")
        return

    if full:
        console.print(f"[bold]Last {len(events)} Ledger Event(s)[/bold]\n")
        for i, event in enumerate(events, 1):
            console.print(f"[cyan]Event {i}/{len(events)}[/cyan]")
            console.print(f"  [dim]Event ID:[/dim]    {event.event_id}")
            console.print(f"  [dim]Area ID:[/dim]     {event.area_id}")
            console.print(f"  [dim]Created:[/dim]     {format_datetime(event.created_at, tz)}")
            console.print(f"  [dim]Event Type:[/dim]  [magenta]{event.event_type.value}[/magenta]")
            console.print("  [dim]Payload:[/dim]")
            payload_json = json.dumps(event.to_json_dict()["payload"], indent=2, ensure_ascii=False)
            for line in payload_json.split("\n"):
                console.print(f"    {line}")
            console.print()
        return

    table = Table(title=f"Last {len(events)} Ledger Event(s)")
    table.add_column("Created", style="cyan", no_wrap=True)
    table.add_column("Event")
    table.add_column("Event ID", style="dim")
    table.add_column("Details")
    for event in events:
        style = EVENT_STYLES.get(event.event_type, "white")
        table.add_row(
            format_datetime(event.created_at, tz),
            f"[{style}]{event_label(event.event_type)}[/{style}]",
            event.event_id[:8] + "...",
            _describe(event, config),
        )
    console.print(table)


@app.command()
def version():
    """Show Khata version."""
    from . import __version__
    console.print(f"Khata v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
