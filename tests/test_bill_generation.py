# tests/test_bill_generation.py
"""
Tests for monthly bill generation.

Tests cover:
- Per-tenant failure isolation (one bad tenant never aborts the batch)
- Idempotency across repeated runs
- Eligibility (status, lease start) and admin scoping
- Amount computation and due date policy
- The database uniqueness constraint backing idempotency
- Read-only generation statistics
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from rentledger.errors import ValidationError
from rentledger.extensions import db
from rentledger.models import Bill
from rentledger.services import BillGenerationService
from rentledger.services.stores import BillStore


@pytest.fixture
def engine(app, clock):
    return BillGenerationService.from_app(app, clock=clock)


@pytest.fixture
def landlord(make_admin):
    return make_admin(name="Landlord")


@pytest.fixture
def building(landlord, make_property):
    return make_property(landlord, monthly_rent=800)


# =============================================================================
# Batch behaviour
# =============================================================================

class TestGenerationBatch:

    def test_invalid_tenant_does_not_abort_batch(self, engine, landlord, building, make_tenant):
        """A=1200, B=1500, C=0 for 2025-06: two bills, one error for C."""
        a = make_tenant(landlord, building, name="Alice", rent=1200)
        b = make_tenant(landlord, building, name="Bob", rent=1500)
        c = make_tenant(landlord, building, name="Carol", rent=0)

        stats = engine.generate("2025-06")

        assert stats.total_tenants == 3
        assert stats.bills_generated == 2
        assert stats.bills_skipped == 0
        assert stats.errors == 1
        assert stats.error_details[0]["tenant_name"] == "Carol"
        assert stats.error_details[0]["tenant_email"] == c.email
        assert "rent" in stats.error_details[0]["error"]

        bills = {bill.tenant_id: bill for bill in Bill.query.filter_by(month="2025-06").all()}
        assert set(bills) == {a.id, b.id}
        assert bills[a.id].total_amount == Decimal("1200.00")
        assert bills[b.id].total_amount == Decimal("1500.00")

    def test_second_run_skips_every_tenant(self, engine, landlord, building, make_tenant):
        make_tenant(landlord, building, name="Alice", rent=1200)
        make_tenant(landlord, building, name="Bob", rent=1500)

        first = engine.generate("2025-06")
        second = engine.generate("2025-06")

        assert first.bills_generated == 2
        assert second.bills_generated == 0
        assert second.bills_skipped == second.total_tenants == 2
        assert Bill.query.filter_by(month="2025-06").count() == 2

    def test_error_details_follow_tenant_order(self, engine, landlord, building, make_tenant):
        first_bad = make_tenant(landlord, building, name="Zed", rent=0)
        make_tenant(landlord, building, name="Good", rent=900)
        second_bad = make_tenant(landlord, None, name="Homeless", rent=900)

        stats = engine.generate("2025-06")

        assert [d["tenant_id"] for d in stats.error_details] == [first_bad.id, second_bad.id]
        assert stats.bills_generated == 1

    def test_defaults_to_current_month(self, engine, landlord, building, make_tenant):
        make_tenant(landlord, building, rent=1000)

        stats = engine.generate()

        assert stats.month == "2025-06"
        assert Bill.query.one().month == "2025-06"

    def test_malformed_month_is_rejected_before_reading(self, engine):
        with pytest.raises(ValidationError):
            engine.generate("June 2025")

    def test_month_with_trailing_newline_cannot_bill_twice(self, engine, landlord, building, make_tenant):
        make_tenant(landlord, building, rent=1000)
        engine.generate("2025-06")

        with pytest.raises(ValidationError):
            engine.generate("2025-06\n")

        assert [b.month for b in Bill.query.all()] == ["2025-06"]


# =============================================================================
# Eligibility & scoping
# =============================================================================

class TestEligibility:

    def test_only_active_tenants_with_started_lease(self, engine, landlord, building, make_tenant):
        active = make_tenant(landlord, building, name="Active", rent=1000)
        make_tenant(landlord, building, name="Gone", rent=1000, status="INACTIVE")
        make_tenant(landlord, building, name="Old", rent=1000, status="EXPIRED")
        make_tenant(landlord, building, name="Future", rent=1000, join_date=date(2025, 7, 1))
        last_day = make_tenant(landlord, building, name="Late", rent=1000, join_date=date(2025, 6, 30))

        stats = engine.generate("2025-06")

        assert stats.total_tenants == 2
        assert {b.tenant_id for b in Bill.query.all()} == {active.id, last_day.id}

    def test_admin_scope(self, engine, make_admin, make_property, make_tenant):
        first, second = make_admin(name="First"), make_admin(name="Second")
        mine = make_tenant(first, make_property(first), rent=1000)
        make_tenant(second, make_property(second), rent=1000)

        stats = engine.generate("2025-06", admin_id=first.id)

        assert stats.total_tenants == 1
        assert stats.admin_id == first.id
        assert [b.tenant_id for b in Bill.query.all()] == [mine.id]

    def test_property_owned_by_other_admin_is_an_error(self, engine, make_admin, make_property, make_tenant):
        owner, other = make_admin(), make_admin()
        tenant = make_tenant(owner, make_property(other), rent=1000)

        stats = engine.generate("2025-06")

        assert stats.errors == 1
        assert stats.error_details[0]["tenant_id"] == tenant.id
        assert Bill.query.count() == 0


# =============================================================================
# Amounts & dates
# =============================================================================

class TestBillContents:

    def test_rent_falls_back_to_property_rent(self, engine, landlord, building, make_tenant):
        make_tenant(landlord, building, rent=None, charges=50)

        engine.generate("2025-06")

        bill = Bill.query.one()
        assert bill.rent_amount == Decimal("800.00")
        assert bill.charges == Decimal("50.00")
        assert bill.total_amount == Decimal("850.00")

    def test_due_date_bill_date_and_owner(self, engine, landlord, building, make_tenant):
        tenant = make_tenant(landlord, building, rent=1000)

        engine.generate("2025-06")

        bill = Bill.query.one()
        assert bill.due_date == date(2025, 7, 1)
        assert bill.bill_date == date(2025, 6, 15)
        assert bill.status == Bill.PENDING
        assert bill.payment_date is None
        assert bill.admin_id == tenant.admin_id == building.admin_id
        assert bill.property_id == building.id

    def test_due_date_offset_is_configurable(self, app, clock, landlord, building, make_tenant):
        app.config["BILL_DUE_MONTHS_AFTER"] = 0
        app.config["BILL_DUE_DAY"] = 5
        make_tenant(landlord, building, rent=1000)

        BillGenerationService.from_app(app, clock=clock).generate("2025-06")

        assert Bill.query.one().due_date == date(2025, 6, 5)


# =============================================================================
# Uniqueness
# =============================================================================

class TestUniqueness:

    def test_database_rejects_duplicate_tenant_month(self, landlord, building, make_tenant, make_bill):
        tenant = make_tenant(landlord, building, rent=1000)
        make_bill(tenant, month="2025-06")

        with pytest.raises(IntegrityError):
            make_bill(tenant, month="2025-06")
        db.session.rollback()

        assert Bill.query.filter_by(tenant_id=tenant.id, month="2025-06").count() == 1

    def test_lost_race_counts_as_skipped(self, app, clock, landlord, building, make_tenant, make_bill):
        """The existence check misses a concurrent insert; the constraint catches it."""
        tenant = make_tenant(landlord, building, rent=1000)
        make_bill(tenant, month="2025-06")

        class StaleBillStore(BillStore):
            calls = 0

            def find_one(self, tenant_id, month, admin_id):
                self.calls += 1
                if self.calls == 1:
                    return None
                return super().find_one(tenant_id, month, admin_id)

        engine = BillGenerationService(bills=StaleBillStore(), clock=clock)
        stats = engine.generate("2025-06")

        assert stats.bills_skipped == 1
        assert stats.errors == 0
        assert Bill.query.count() == 1


# =============================================================================
# Generation statistics
# =============================================================================

class TestGenerationStats:

    def test_stats_are_read_only(self, engine, landlord, building, make_tenant, make_bill):
        billed = make_tenant(landlord, building, rent=1000)
        make_tenant(landlord, building, rent=1000)
        make_bill(billed, month="2025-06")

        stats = engine.get_generation_stats("2025-06")

        assert stats["eligible_tenants"] == 2
        assert stats["existing_bills"] == 1
        assert stats["missing_bills"] == 1
        assert stats["bills_by_status"] == {"PENDING": 1}
        assert Bill.query.count() == 1

    def test_stats_reject_malformed_month(self, engine):
        with pytest.raises(ValidationError):
            engine.get_generation_stats("2025/06")
