# tests/test_cli.py
"""
Tests for the ``flask bills`` operator commands.
"""

import json
from decimal import Decimal

import pytest
from passlib.hash import pbkdf2_sha256

from rentledger.extensions import db
from rentledger.models import Admin, Bill


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def owner(make_admin):
    return make_admin(name="Owner", id=7)


@pytest.fixture
def tenants(owner, make_property, make_tenant):
    prop = make_property(owner, monthly_rent=1000)
    return [
        make_tenant(owner, prop, name="Alice", rent=1200),
        make_tenant(owner, prop, name="Carol", rent=0),
    ]


class TestGenerateCommand:

    def test_prints_run_report(self, runner, tenants):
        result = runner.invoke(args=["bills", "generate", "--month", "2025-06"])

        assert result.exit_code == 0, result.output
        assert "Month: 2025-06" in result.output
        assert "Active tenants: 2" in result.output
        assert "Bills generated: 1" in result.output
        assert "Bills skipped: 0" in result.output
        assert "Errors: 1" in result.output
        assert "1. Carol" in result.output
        assert Bill.query.count() == 1

    def test_invalid_month_fails(self, runner):
        result = runner.invoke(args=["bills", "generate", "--month", "2025-6"])

        assert result.exit_code != 0
        assert "YYYY-MM" in result.output

    def test_rejected_while_running_unless_reset(self, runner, billing, tenants):
        billing.coordinator.try_start("2025-06")

        rejected = runner.invoke(args=["bills", "generate"])
        assert rejected.exit_code != 0
        assert "already in progress" in rejected.output

        recovered = runner.invoke(args=["bills", "generate", "--reset-stuck"])
        assert recovered.exit_code == 0, recovered.output
        assert "Run flag reset" in recovered.output
        assert not billing.coordinator.is_running()


class TestLedgerCommands:

    def test_mark_paid_and_undo(self, runner, owner, tenants, make_bill):
        make_bill(tenants[0], id=42, total=Decimal("950.00"))

        paid = runner.invoke(args=["bills", "mark-paid", "42"])
        assert paid.exit_code == 0, paid.output
        assert json.loads(paid.output)["profit"] == {"admin_id": 7, "total": 950.0, "added": 950.0}

        again = runner.invoke(args=["bills", "mark-paid", "42"])
        assert again.exit_code != 0

        undone = runner.invoke(args=["bills", "undo-payment", "42"])
        assert undone.exit_code == 0, undone.output
        assert json.loads(undone.output)["profit"]["total"] == 0.0

    def test_reconcile(self, runner, owner):
        result = runner.invoke(args=["bills", "reconcile", "7"])

        assert result.exit_code == 0
        assert json.loads(result.output)["consistent"] is True

    def test_stats_and_scheduler_status(self, runner, tenants):
        stats = runner.invoke(args=["bills", "stats", "2025-06"])
        assert json.loads(stats.output)["eligible_tenants"] == 2

        status = runner.invoke(args=["bills", "scheduler-status"])
        assert json.loads(status.output)["status"] == "idle"

        reset = runner.invoke(args=["bills", "reset-flag"])
        assert "flag reset" in reset.output


class TestAdminCommand:

    def test_create_admin(self, runner):
        result = runner.invoke(args=["create-admin", "root@example.com", "s3cret!", "--role", "SUPER_ADMIN"])

        assert result.exit_code == 0, result.output
        db.session.expire_all()
        admin = Admin.query.filter_by(email="root@example.com").one()
        assert admin.role == "SUPER_ADMIN"
        assert pbkdf2_sha256.verify("s3cret!", admin.password_hash)
