"""CLI entry point for collections, cheques and reconciliation."""

import base64
import functools
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional
from uuid import uuid4

import click

from distrifin.engine.aggregation import ReportFilter, ReportType, SortOrder
from distrifin.engine.models import CollectionStatus, Customer, PaymentType
from distrifin.engine.validation import CollectionDraft, parse_amount
from distrifin.parsers.statement_parser import parse_statement_file
from distrifin.reports.excel_report import ExcelReportGenerator
from distrifin.reports.formatting import format_currency
from distrifin.services.state import AppState
from distrifin.store.document_store import JsonFileDocumentStore, WriteResult

logger = logging.getLogger(__name__)


def validate_non_negative(ctx, param, value):
    """Validate an optional number is not negative."""
    if value is not None and value < 0:
        raise click.BadParameter("Must be non-negative.")
    return value


def validate_amount(ctx, param, value):
    """Validate an optional amount parses."""
    if value is None:
        return None
    try:
        amount = parse_amount(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    if amount < 0:
        raise click.BadParameter("Must be non-negative.")
    return amount


def handles_errors(command):
    """Turn expected failures into an error message and exit code."""
    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        try:
            return command(*args, **kwargs)
        except FileNotFoundError as e:
            click.echo(f"\n  ERROR: {e}", err=True)
            sys.exit(1)
        except ValueError as e:
            click.echo(f"\n  ERROR: {e}", err=True)
            sys.exit(1)
        except Exception as e:
            logger.exception("Unexpected error")
            click.echo(f"\n  UNEXPECTED ERROR: {e}", err=True)
            sys.exit(2)
    return wrapper


def echo_write(result: WriteResult, success: str) -> None:
    """Report a store write; a failed write exits non-zero."""
    if result.ok:
        click.echo(f"  {success}")
        return
    click.echo(f"\n  ERROR: could not save ({result.error})", err=True)
    sys.exit(1)


@click.group()
@click.option(
    "--store", "-s",
    envvar="DISTRIFIN_STORE",
    default="distrifin.json",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="JSON file holding customers, routes, collections and settings.",
)
@click.option(
    "--user", "-u",
    envvar="DISTRIFIN_USER",
    default=None,
    help="Operator name recorded in the audit log.",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def cli(ctx: click.Context, store: str, user: Optional[str], verbose: bool) -> None:
    """
    DistriFin collections back office.

    Record field collections, track cheques, reconcile bank statements and
    export reports.

    Example:
        python -m distrifin.main reconcile --statement statement.csv --confirm
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        state = AppState(JsonFileDocumentStore(store), user_name=user)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    ctx.obj = state
    ctx.call_on_close(state.close)


# -- Master data -------------------------------------------------------------

@cli.command("add-route")
@click.argument("name")
@click.pass_obj
@handles_errors
def add_route(state: AppState, name: str) -> None:
    """Create a route."""
    route, result = state.add_route(name)
    echo_write(result, f"Route {route.route_id} ({route.route_name}) created")


@cli.command("add-customer")
@click.option("--business-name", "-b", required=True, help="Shop/business name.")
@click.option("--customer-name", "-n", default="", help="Contact person.")
@click.option("--phone", default="", help="Phone number.")
@click.option("--whatsapp", default="", help="WhatsApp number.")
@click.option("--address", default="", help="Address.")
@click.option("--location", default="", help='GPS location as "lat, lng".')
@click.option("--credit-limit", default=None, callback=validate_amount,
              help="Credit limit (default from settings).")
@click.option("--credit-period", default=None, type=int, callback=validate_non_negative,
              help="Credit period in days (default from settings).")
@click.option("--route", "route_id", default=None, help="Route id.")
@click.pass_obj
@handles_errors
def add_customer(
    state: AppState,
    business_name: str,
    customer_name: str,
    phone: str,
    whatsapp: str,
    address: str,
    location: str,
    credit_limit,
    credit_period: Optional[int],
    route_id: Optional[str],
) -> None:
    """Create a customer."""
    customer = Customer(
        customer_id=f"C-{uuid4().hex[:8].upper()}",
        business_name=business_name,
        customer_name=customer_name or business_name,
        phone_number=phone,
        whatsapp_number=whatsapp,
        address=address,
        location=location,
        credit_limit=credit_limit,
        credit_period_days=credit_period,
        route_id=route_id,
    )
    if route_id and not any(r.route_id == route_id for r in state.routes):
        logger.warning("Route %s does not exist; customer will show as Unassigned", route_id)

    result = state.add_customer(customer)
    echo_write(result, f"Customer {customer.customer_id} ({business_name}) created")


@cli.command("import-customers")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
@handles_errors
def import_customers(state: AppState, file: str) -> None:
    """Bulk import customers from a CSV file."""
    text = Path(file).read_text(encoding="utf-8-sig")
    customers, result = state.import_customers(text)
    echo_write(result, f"Imported {len(customers)} customers")


# -- Collections -------------------------------------------------------------

@cli.command("add-collection")
@click.option("--customer", "-c", "customer_id", required=True, help="Customer id.")
@click.option(
    "--type", "-t", "payment_type",
    type=click.Choice([p.value for p in PaymentType], case_sensitive=False),
    default=PaymentType.CASH.value,
    show_default=True,
    help="Payment type.",
)
@click.option("--amount", "-a", required=True, help="Amount received.")
@click.option("--cheque-number", default="", help="Cheque number (cheques only).")
@click.option("--bank", default="", help="Drawee bank (cheques only).")
@click.option("--branch", default="", help="Drawee branch (cheques only).")
@click.option("--realize-date", default=None, help="Cheque date, YYYY-MM-DD (cheques only).")
@click.option("--image", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Photo of the cheque to attach.")
@click.pass_obj
@handles_errors
def add_collection(
    state: AppState,
    customer_id: str,
    payment_type: str,
    amount: str,
    cheque_number: str,
    bank: str,
    branch: str,
    realize_date: Optional[str],
    image: Optional[str],
) -> None:
    """Record a collection from a customer."""
    draft = CollectionDraft(
        customer_id=customer_id,
        payment_type=PaymentType(payment_type.upper()),
        amount=amount,
        cheque_number=cheque_number,
        bank=bank,
        branch=branch,
        realize_date=realize_date,
    )
    if image:
        encoded = base64.b64encode(Path(image).read_bytes()).decode("ascii")
        state.attach_cheque_image(draft, encoded)

    collection, result = state.add_collection(draft)
    echo_write(
        result,
        f"Collection {collection.collection_id} recorded: "
        f"{format_currency(collection.amount, state.settings)} ({collection.status.value})",
    )


@cli.command("mark-cheque")
@click.argument("collection_id")
@click.option(
    "--status",
    type=click.Choice([CollectionStatus.REALIZED.value, CollectionStatus.RETURNED.value],
                      case_sensitive=False),
    required=True,
    help="New cheque status.",
)
@click.pass_obj
@handles_errors
def mark_cheque(state: AppState, collection_id: str, status: str) -> None:
    """Manually mark a pending cheque as realized or returned."""
    result = state.mark_cheque(collection_id, CollectionStatus(status.upper()))
    echo_write(result, f"Cheque {collection_id} marked {status.upper()}")


@cli.command("delete-cheques")
@click.argument("collection_ids", nargs=-1, required=True)
@click.confirmation_option(prompt="Delete these cheque records permanently?")
@click.pass_obj
@handles_errors
def delete_cheques(state: AppState, collection_ids: tuple) -> None:
    """Delete cheque records in one batch."""
    result = state.delete_cheques(collection_ids)
    echo_write(result, f"Deleted {len(collection_ids)} cheque records")


# -- Reconciliation ----------------------------------------------------------

@cli.command()
@click.option(
    "--statement", "-b",
    required=True,
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Bank statement file(s): OFX/QFX, CSV or Excel.",
)
@click.option("--confirm", is_flag=True, help="Mark matched cheques as realized.")
@click.option("--output", "-o", type=click.Path(), default=None,
              help="Path for an Excel reconciliation report.")
@click.option("--no-description-match", is_flag=True,
              help="Only match on the extracted cheque number, never the description.")
@click.option("--date-col", default="date", help="Date column in CSV/Excel statements.")
@click.option("--credit-col", default="credit", help="Credit column in CSV/Excel statements.")
@click.option("--debit-col", default="debit", help="Debit column in CSV/Excel statements.")
@click.option("--desc-col", default="description", help="Description column in CSV/Excel statements.")
@click.option("--ref-col", default="reference", help="Reference column in CSV/Excel statements.")
@click.pass_obj
@handles_errors
def reconcile(
    state: AppState,
    statement: tuple,
    confirm: bool,
    output: Optional[str],
    no_description_match: bool,
    date_col: str,
    credit_col: str,
    debit_col: str,
    desc_col: str,
    ref_col: str,
) -> None:
    """
    Reconcile bank statements against pending cheques.

    Example:
        python -m distrifin.main reconcile -b statement.ofx -o recon.xlsx --confirm
    """
    click.echo("=" * 60)
    click.echo("  CHEQUE RECONCILIATION")
    click.echo("=" * 60)

    column_mapping = {
        "date": date_col,
        "credit": credit_col,
        "debit": debit_col,
        "description": desc_col,
        "reference": ref_col,
    }

    # Step 1: Parse statements
    click.echo(f"\n  Parsing {len(statement)} statement(s)...")
    items = []
    for path in statement:
        items.extend(parse_statement_file(path, column_mapping=column_mapping))
    click.echo(f"   Found {len(items)} statement lines")

    # Step 2: Match
    result = state.reconcile(items, match_description=not no_description_match)

    # Step 3: Report
    if output:
        report_gen = ExcelReportGenerator(state.settings)
        output_path = report_gen.generate_reconciliation(result, output)
        click.echo(f"\n  Report saved to: {output_path.absolute()}")

    settings = state.settings
    click.echo("\n" + "=" * 60)
    click.echo("  RECONCILIATION SUMMARY")
    click.echo("=" * 60)
    click.echo(f"  System Matches:       {len(result.matches)}")
    click.echo(f"  Matched Amount:       {format_currency(result.matched_amount, settings)}")
    click.echo(f"  Bank-Direct Deposits: {len(result.bank_direct)}")
    click.echo(f"  Outstanding Cheques:  {len(result.outstanding)}")
    click.echo(f"  Ignored Lines:        {result.ignored_count}")
    click.echo("=" * 60)

    for match in result.matches:
        click.echo(
            f"  [MATCH] {match.collection.collection_id} cheque "
            f"{match.collection.cheque_number} -> {match.match_reason}"
        )
    for item in result.bank_direct:
        click.echo(
            f"  [BANK-DIRECT] cheque {item.cheque_number} "
            f"{format_currency(item.credit, settings)} on {item.date:%Y-%m-%d}"
        )

    # Step 4: Apply
    if confirm and result.matches:
        outcome = state.confirm_reconciliation(result)
        echo_write(outcome, f"Successfully reconciled {len(outcome.doc_ids)} cheques.")
    elif result.matches:
        click.echo("\n  Run again with --confirm to mark matched cheques as realized.")


# -- Reporting ---------------------------------------------------------------

@cli.command()
@click.option(
    "--type", "-t", "report_type",
    type=click.Choice([r.value for r in ReportType], case_sensitive=False),
    default=ReportType.DAILY_COLLECTION.value,
    show_default=True,
    help="Report to produce.",
)
@click.option("--query", "-q", default="", help="Search business name or cheque number.")
@click.option("--route", "route_id", default="ALL", show_default=True, help="Route id filter.")
@click.option("--from", "start_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="First collection date (inclusive).")
@click.option("--to", "end_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Last collection date (inclusive).")
@click.option(
    "--payment-type",
    type=click.Choice([p.value for p in PaymentType], case_sensitive=False),
    default=None,
    help="Only this payment type.",
)
@click.option(
    "--sort",
    type=click.Choice([s.value for s in SortOrder], case_sensitive=False),
    default=SortOrder.NONE.value,
    help="Sort by business name.",
)
@click.option("--output", "-o", type=click.Path(), default=None, help="Export to an Excel file.")
@click.pass_obj
@handles_errors
def report(
    state: AppState,
    report_type: str,
    query: str,
    route_id: str,
    start_date,
    end_date,
    payment_type: Optional[str],
    sort: str,
    output: Optional[str],
) -> None:
    """Print or export a collection report."""
    report_filter = ReportFilter(
        report_type=ReportType(report_type.upper()),
        query=query,
        route_id=route_id,
        start_date=start_date.date() if start_date else None,
        end_date=end_date.date() if end_date else None,
        payment_type=PaymentType(payment_type.upper()) if payment_type else None,
        sort=SortOrder(sort.lower()),
    )
    builder = state.report_builder()
    result = builder.build(report_filter)
    settings = state.settings

    click.echo(f"\n  {report_filter.report_type.label}")
    click.echo("-" * 60)

    if report_filter.report_type == ReportType.ROUTE_SUMMARY:
        summary = builder.route_summary(report_filter)
        for row in summary:
            click.echo(
                f"  {row.route_name:<25} {row.customer_count:>4} customers "
                f"{format_currency(row.total, settings):>20}"
            )
    else:
        summary = None
        for row in result.rows:
            c = row.collection
            click.echo(
                f"  {c.collection_date} | {row.business_name[:25]:<25} | "
                f"{c.payment_type.value:<6} | {c.status.value:<8} | "
                f"{format_currency(c.amount, settings):>18}"
            )

    click.echo("-" * 60)
    click.echo(f"  Total ({result.count}): {format_currency(result.total, settings)}")

    if output:
        output_path = ExcelReportGenerator(settings).generate_collection_report(
            result, output, route_summary=summary
        )
        click.echo(f"\n  Report saved to: {output_path.absolute()}")


@cli.command()
@click.pass_obj
@handles_errors
def dashboard(state: AppState) -> None:
    """Show headline figures and alerts."""
    builder = state.report_builder()
    stats = builder.dashboard_stats()
    settings = state.settings

    click.echo("=" * 60)
    click.echo(f"  Total Collected:   {format_currency(stats.total_collected, settings)}")
    click.echo(
        f"  Pending Cheques:   {stats.pending_count} "
        f"({format_currency(stats.pending_amount, settings)})"
    )
    click.echo(f"  Returned Cheques:  {stats.returned_count}")
    for payment_type, amount in stats.by_payment_type.items():
        click.echo(f"    +-- {payment_type:<13} {format_currency(amount, settings)}")
    click.echo("=" * 60)

    for note in builder.notifications():
        click.echo(f"  [{note.level.upper()}] {note.message}")


@cli.command("audit-log")
@click.option("--query", "-q", default="", help="Search action, details or user.")
@click.pass_obj
@handles_errors
def audit_log(state: AppState, query: str) -> None:
    """List recorded operator actions, newest first."""
    for log in state.audit_log(query):
        click.echo(
            f"  {log.timestamp:%Y-%m-%d %H:%M:%S} {log.action:<18} "
            f"{log.user_name or '-':<12} {log.details}"
        )


@cli.command()
@click.option("--credit-limit", default=None, callback=validate_amount,
              help="Default credit limit for new customers.")
@click.option("--credit-period", default=None, type=int, callback=validate_non_negative,
              help="Default credit period in days.")
@click.option("--camera/--no-camera", default=None, help="Enable cheque photo analysis.")
@click.option("--country", default=None, help="Country of operation.")
@click.option("--currency", default=None, help="Currency code used for amounts.")
@click.pass_obj
@handles_errors
def settings(
    state: AppState,
    credit_limit,
    credit_period: Optional[int],
    camera: Optional[bool],
    country: Optional[str],
    currency: Optional[str],
) -> None:
    """Show or update global settings."""
    current = state.settings
    changes = {
        "default_credit_limit": credit_limit,
        "default_credit_period": credit_period,
        "enable_cheque_camera": camera,
        "country": country,
        "currency_code": currency.upper() if currency else None,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    if changes:
        echo_write(state.save_settings(replace(current, **changes)), "Settings Saved Successfully")

    for key, value in state.settings.to_dict().items():
        click.echo(f"  {key:<24} {value}")


main = cli


if __name__ == "__main__":
    main()
