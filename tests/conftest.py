# tests/conftest.py
"""
Pytest fixtures for rentledger tests.

The app runs on an in-memory SQLite database with a FixedClock pinned to
2025-06-15 10:00 UTC unless a test moves it.
"""

import itertools
from datetime import date, datetime
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from rentledger import create_app
from rentledger.config import TestingConfig
from rentledger.extensions import db
from rentledger.models import Admin, Bill, Property, Tenant
from rentledger.services import FixedClock


_emails = itertools.count(1)


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 6, 15, 10, 0, 0))


@pytest.fixture
def app(clock):
    app = create_app(TestingConfig, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def billing(app):
    return app.extensions["billing"]


# =============================================================================
# Model factories
# =============================================================================

@pytest.fixture
def make_admin(app):
    def _make(name="Admin", role="ADMIN", id=None):
        admin = Admin(id=id, name=name, email=f"admin{next(_emails)}@example.com", role=role)
        admin.set_password("secret123")
        db.session.add(admin)
        db.session.commit()
        return admin
    return _make


@pytest.fixture
def make_property(app):
    def _make(admin, title="Sunset Apartments", monthly_rent=None):
        prop = Property(
            admin_id=admin.id,
            title=title,
            address="1 Main Street",
            city="Lyon",
            monthly_rent=Decimal(str(monthly_rent)) if monthly_rent is not None else None,
        )
        db.session.add(prop)
        db.session.commit()
        return prop
    return _make


@pytest.fixture
def make_tenant(app):
    def _make(admin, prop, name="Tenant", rent=None, charges=None,
              status="ACTIVE", join_date=date(2025, 1, 1)):
        tenant = Tenant(
            admin_id=admin.id,
            property_id=prop.id if prop is not None else None,
            name=name,
            email=f"{name.lower().replace(' ', '.')}{next(_emails)}@example.com",
            status=status,
            join_date=join_date,
            rent_amount=Decimal(str(rent)) if rent is not None else None,
            charges_amount=Decimal(str(charges)) if charges is not None else None,
        )
        db.session.add(tenant)
        db.session.commit()
        return tenant
    return _make


@pytest.fixture
def make_bill(app):
    def _make(tenant, month="2025-06", total=Decimal("950.00"), status=Bill.PENDING,
              id=None, amount=None, payment_date=None):
        bill = Bill(
            id=id,
            tenant_id=tenant.id,
            property_id=tenant.property_id,
            admin_id=tenant.admin_id,
            month=month,
            amount=amount,
            rent_amount=total,
            charges=Decimal("0"),
            total_amount=total,
            due_date=date(2025, 7, 1),
            bill_date=date(2025, 6, 1),
            status=status,
            payment_date=payment_date,
        )
        db.session.add(bill)
        db.session.commit()
        return bill
    return _make


# =============================================================================
# Auth
# =============================================================================

@pytest.fixture
def auth_headers(app):
    def _headers(admin):
        token = create_access_token(identity=str(admin.id), additional_claims={"role": admin.role})
        return {"Authorization": f"Bearer {token}"}
    return _headers
