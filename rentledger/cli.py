# rentledger/cli.py
import json

import click
from flask.cli import AppGroup, with_appcontext

from .errors import BillingError
from .extensions import db
from .models import Admin
from .services import get_billing

bills_cli = AppGroup("bills", help="Monthly bill generation and payment ledger.")


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


@click.command("init-db")
@with_appcontext
def init_db_cmd():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created")


@click.command("create-admin")
@click.argument("email")
@click.argument("password")
@click.option("--name", default="Admin")
@click.option("--role", type=click.Choice(Admin.ROLES), default="ADMIN")
@with_appcontext
def create_admin_cmd(email, password, name, role):
    admin = Admin.query.filter_by(email=email).first()
    if not admin:
        admin = Admin(email=email)
        db.session.add(admin)
    admin.name = name
    admin.role = role
    admin.status = "ACTIVE"
    admin.set_password(password)
    db.session.commit()
    click.echo(f"Admin ensured: {email} ({role}, id={admin.id})")


@bills_cli.command("generate")
@click.option("--month", help="Target month (YYYY-MM); defaults to the current month.")
@click.option("--admin-id", type=int, help="Only generate bills for this admin.")
@click.option("--reset-stuck", is_flag=True, help="Clear a run flag left set by a crashed run first.")
def generate_cmd(month, admin_id, reset_stuck):
    """Generate missing bills and print the run report."""
    billing = get_billing()
    status = billing.coordinator.get_status()
    click.echo(f"Scheduler status: {status['status']}")
    if status["is_running"] and reset_stuck:
        billing.coordinator.reset_running_flag()
        click.echo("Run flag reset")

    try:
        report = billing.scheduler.trigger_generation(month, admin_id)
    except BillingError as e:
        raise click.ClickException(e.message)

    if not report.success:
        raise click.ClickException(f"{report.message}: {report.error}")

    stats = report.statistics
    click.echo(report.message)
    click.echo(f"Month: {stats.month}")
    click.echo(f"Active tenants: {stats.total_tenants}")
    click.echo(f"Bills generated: {stats.bills_generated}")
    click.echo(f"Bills skipped: {stats.bills_skipped}")
    click.echo(f"Errors: {stats.errors}")
    for index, detail in enumerate(stats.error_details, start=1):
        click.echo(f"  {index}. {detail['tenant_name']} ({detail['tenant_email']}): {detail['error']}")


@bills_cli.command("stats")
@click.argument("month")
@click.option("--admin-id", type=int)
def stats_cmd(month, admin_id):
    """Existing bills vs eligible tenancies for MONTH."""
    try:
        _echo_json(get_billing().generation_service().get_generation_stats(month, admin_id))
    except BillingError as e:
        raise click.ClickException(e.message)


@bills_cli.command("scheduler-status")
def scheduler_status_cmd():
    _echo_json(get_billing().scheduler.get_status())


@bills_cli.command("reset-flag")
def reset_flag_cmd():
    """Clear the generation run flag."""
    get_billing().coordinator.reset_running_flag()
    click.echo("Bill scheduler flag reset")


@bills_cli.command("mark-paid")
@click.argument("bill_id", type=int)
def mark_paid_cmd(bill_id):
    try:
        result = get_billing().payment_service().mark_as_paid(bill_id, None)
    except BillingError as e:
        raise click.ClickException(e.message)
    _echo_json(result.to_dict("added"))


@bills_cli.command("undo-payment")
@click.argument("bill_id", type=int)
def undo_payment_cmd(bill_id):
    try:
        result = get_billing().payment_service().undo_payment(bill_id, None)
    except BillingError as e:
        raise click.ClickException(e.message)
    _echo_json(result.to_dict("subtracted"))


@bills_cli.command("reconcile")
@click.argument("admin_id", type=int)
@click.option("--fix", is_flag=True, help="Overwrite the ledger with the sum of paid bills.")
def reconcile_cmd(admin_id, fix):
    """Compare ADMIN_ID's profit ledger with their paid bills."""
    _echo_json(get_billing().payment_service().reconcile_profit(admin_id, fix=fix))


def register_cli(app):
    app.cli.add_command(init_db_cmd)
    app.cli.add_command(create_admin_cmd)
    app.cli.add_command(bills_cli)
