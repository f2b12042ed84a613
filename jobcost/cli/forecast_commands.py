"""
Forecast CLI Commands - Cost-to-complete operations from the command line.

Provides command-line interface for:
- Printing a fresh cost-to-complete report
- Listing forecast periods and saved forecasts
- Saving, submitting, approving and archiving forecasts
- Earned vs burned analysis
- Monthly cost report
"""
import click
import json
import logging
from typing import Optional

from jobcost.models import SessionLocal, init_db
from jobcost.domain.exceptions import DomainError
from jobcost.domain.services import (
    CostBreakdownService,
    CostToCompleteService,
    ForecastLifecycleService,
)

logger = logging.getLogger(__name__)


def _money(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def _fail(error: DomainError) -> None:
    click.echo(click.style(f"✗ {error.message}", fg='red'))
    raise SystemExit(1)


@click.group()
def forecast():
    """Cost-to-complete forecast commands."""
    pass


@forecast.command('init-db')
def init_database():
    """Create database tables."""
    init_db()
    click.echo(click.style("✓ Database initialized", fg='green'))


@forecast.command()
@click.argument('job_id', type=int)
@click.option('--period', default=None, help="'Month N', N or YYYY-MM (latest when omitted)")
@click.option('--json', 'as_json', is_flag=True, help='Print the raw report as JSON')
def report(job_id: int, period: Optional[str], as_json: bool):
    """Print a fresh cost-to-complete report for a job."""
    db = SessionLocal()
    try:
        result = CostToCompleteService(db).build_report(job_id, period)
    except DomainError as e:
        _fail(e)
    finally:
        db.close()

    data = result.to_dict()
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    summary = data['summary']
    click.echo(click.style(
        f"\nJob {job_id} - {data['forecast_period']} ({data['year_month']})", bold=True
    ))
    click.echo(f"Progress report: {data['progress_report']['report_number']} "
               f"({data['progress_report']['report_date']})")
    click.echo(f"\n{'Group':<40} {'Budget':>15} {'Cost':>15} {'Earned':>15} {'CPI':>6} {'Forecast':>15}")
    for item in data['line_items']:
        color = {'over_budget': 'red', 'at_risk': 'yellow'}.get(item['status'])
        line = (
            f"{item['group_key'][:40]:<40} {_money(item['budget_value']):>15} "
            f"{_money(item['cost_to_date']):>15} {_money(item['earned_to_date']):>15} "
            f"{item['cpi']:>6.2f} {_money(item['forecasted_final_cost']):>15}"
        )
        click.echo(click.style(line, fg=color) if color else line)

    click.echo(f"\nCost to date:        {_money(summary['cost_to_date'])}")
    if summary['unattributed_cost']:
        click.echo(click.style(
            f"  unattributed:       {_money(summary['unattributed_cost'])}", fg='yellow'
        ))
    click.echo(f"Earned to date:      {_money(summary['earned_to_date'])}")
    click.echo(f"CPI / SPI:           {summary['cpi']:.3f} / {summary['spi']:.3f}")
    click.echo(f"Forecast final cost: {_money(summary['forecast_final_cost'])}")
    click.echo(f"Margin at completion: {_money(summary['margin_at_completion'])} "
               f"({summary['margin_at_completion_percent']:.1f}%)")


@forecast.command()
@click.argument('job_id', type=int)
def periods(job_id: int):
    """List valid forecast periods for a job."""
    db = SessionLocal()
    try:
        resolved = CostToCompleteService(db).reconciler.list_periods(job_id)
        if not resolved:
            click.echo("No approved progress reports yet.")
            return
        for p in resolved:
            click.echo(f"{p.label:<12} {p.year_month}  report {p.progress_report.report_number} "
                       f"({p.progress_report.report_date})")
    except DomainError as e:
        _fail(e)
    finally:
        db.close()


@forecast.command('list')
@click.argument('job_id', type=int)
def list_forecasts(job_id: int):
    """List saved and generated forecasts for a job."""
    db = SessionLocal()
    try:
        for f in ForecastLifecycleService(db).list_or_generate(job_id):
            status = f['status']
            color = 'green' if status == 'approved' else ('white' if status == 'not_created' else 'cyan')
            click.echo(
                f"{f['forecast_period']:<12} " + click.style(f"{status:<12}", fg=color)
                + f" forecast {_money(f['summary'].get('forecast_final_cost', 0))}"
            )
    except DomainError as e:
        _fail(e)
    finally:
        db.close()


@forecast.command()
@click.argument('job_id', type=int)
@click.option('--period', default=None, help="'Month N', N or YYYY-MM (latest when omitted)")
@click.option('--actor', default=None, help='User saving the forecast')
@click.option('--notes', default=None)
def save(job_id: int, period: Optional[str], actor: Optional[str], notes: Optional[str]):
    """Save the computed forecast for a period."""
    db = SessionLocal()
    try:
        saved = ForecastLifecycleService(db).create_or_update(
            job_id, period=period, actor=actor, notes=notes
        )
        click.echo(click.style(
            f"✓ Saved forecast {saved.id} for {saved.forecast_period} ({saved.status})", fg='green'
        ))
    except DomainError as e:
        _fail(e)
    finally:
        db.close()


def _transition(action: str, job_id: int, forecast_id: int, actor: Optional[str]) -> None:
    db = SessionLocal()
    try:
        service = ForecastLifecycleService(db)
        result = getattr(service, action)(job_id, forecast_id, actor)
        click.echo(click.style(f"✓ Forecast {result.id} is now {result.status}", fg='green'))
    except DomainError as e:
        _fail(e)
    finally:
        db.close()


@forecast.command()
@click.argument('job_id', type=int)
@click.argument('forecast_id', type=int)
@click.option('--actor', default=None)
def submit(job_id: int, forecast_id: int, actor: Optional[str]):
    """Submit a draft forecast."""
    _transition('submit', job_id, forecast_id, actor)


@forecast.command()
@click.argument('job_id', type=int)
@click.argument('forecast_id', type=int)
@click.option('--actor', default=None)
def approve(job_id: int, forecast_id: int, actor: Optional[str]):
    """Approve a submitted forecast."""
    _transition('approve', job_id, forecast_id, actor)


@forecast.command()
@click.argument('job_id', type=int)
@click.argument('forecast_id', type=int)
@click.option('--actor', default=None)
def archive(job_id: int, forecast_id: int, actor: Optional[str]):
    """Archive a forecast."""
    _transition('archive', job_id, forecast_id, actor)


@forecast.command('earned-vs-burned')
@click.argument('job_id', type=int)
@click.option('--as-of', 'as_of', type=click.DateTime(formats=['%Y-%m-%d']), default=None)
@click.option('--group-by', type=click.Choice(['flat', 'area', 'system']), default='flat')
def earned_vs_burned(job_id: int, as_of, group_by: str):
    """Compare earned value with actual cost."""
    db = SessionLocal()
    try:
        result = CostToCompleteService(db).earned_vs_burned(
            job_id, as_of.date() if as_of else None, group_by
        )
    except DomainError as e:
        _fail(e)
    finally:
        db.close()

    click.echo(f"\n{'Group':<40} {'Earned':>15} {'Burned':>15} {'CPI':>6} {'Status':>12}")
    for row in result['rows']:
        click.echo(f"{row['group'][:40]:<40} {_money(row['ev']):>15} {_money(row['ac']):>15} "
                   f"{row['cpi']:>6.2f} {row['status']:>12}")
    totals = result['totals']
    click.echo(click.style(
        f"{'Total':<40} {_money(totals['ev']):>15} {_money(totals['ac']):>15} "
        f"{totals['cpi']:>6.2f} {totals['status']:>12}", bold=True
    ))


@forecast.command('monthly-report')
@click.argument('job_id', type=int)
@click.option('--as-of', 'as_of', type=click.DateTime(formats=['%Y-%m-%d']), default=None)
def monthly_report(job_id: int, as_of):
    """Print cost and earned value month by month."""
    db = SessionLocal()
    try:
        result = CostBreakdownService(db).monthly_cost_report(job_id, as_of.date() if as_of else None)
    except DomainError as e:
        _fail(e)
    finally:
        db.close()

    click.echo(f"\n{'Month':<8} {'Labor':>15} {'Invoices':>15} {'Cumulative':>15} {'Earned':>15} {'Report':>8}")
    for row in result['months']:
        click.echo(f"{row['period']:<8} {_money(row['labor_cost']):>15} {_money(row['invoice_cost']):>15} "
                   f"{_money(row['cumulative_cost']):>15} {_money(row['earned_to_date']):>15} "
                   f"{row['progress_report_number'] or '-':>8}")
    totals = result['totals']
    click.echo(click.style(
        f"{'Total':<8} {_money(totals['labor_cost']):>15} {_money(totals['invoice_cost']):>15} "
        f"{_money(totals['total_cost']):>15} {_money(totals['earned_to_date']):>15}", bold=True
    ))


def register_commands(cli):
    """Register forecast commands with main CLI."""
    cli.add_command(forecast)
