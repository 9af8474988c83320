"""
SQLAlchemy-backed stores used by the billing services.

- TenancyStore: read-only view over tenants joined to their property
- BillStore: bill rows; the (tenant_id, month, admin_id) uniqueness lives in
  the table constraint
- ProfitStore: one running total per admin, moved with atomic
  ``total_profit = total_profit + :delta`` updates

Stores never commit; the calling service owns the transaction.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Bill, Profit, Property, Tenant


@dataclass(frozen=True)
class Tenancy:
    tenant_id: int
    property_id: Optional[int]
    admin_id: int
    property_admin_id: Optional[int]
    name: str
    email: str
    rent_amount: Optional[Decimal]
    charges_amount: Optional[Decimal]
    property_monthly_rent: Optional[Decimal]
    join_date: date


class TenancyStore:

    def find_active_tenancies(self, cutoff, admin_id=None):
        """ACTIVE tenants whose lease started on or before ``cutoff``, by tenant id."""
        stmt = (
            select(
                Tenant.id,
                Tenant.property_id,
                Tenant.admin_id,
                Property.admin_id,
                Tenant.name,
                Tenant.email,
                Tenant.rent_amount,
                Tenant.charges_amount,
                Property.monthly_rent,
                Tenant.join_date,
            )
            .outerjoin(Property, Property.id == Tenant.property_id)
            .where(Tenant.status == 'ACTIVE', Tenant.join_date <= cutoff)
            .order_by(Tenant.id)
        )
        if admin_id is not None:
            stmt = stmt.where(Tenant.admin_id == admin_id)
        return [Tenancy(*row) for row in db.session.execute(stmt).all()]

    def find_tenant(self, tenant_id, admin_id):
        return Tenant.query.filter_by(id=tenant_id, admin_id=admin_id).first()

    def find_property(self, property_id, admin_id):
        return Property.query.filter_by(id=property_id, admin_id=admin_id).first()


class BillStore:

    def find_one(self, tenant_id, month, admin_id):
        return Bill.query.filter_by(tenant_id=tenant_id, month=month, admin_id=admin_id).first()

    def find_by_id(self, bill_id, admin_id=None):
        """Bill by id, scoped to ``admin_id`` unless it is None."""
        query = Bill.query.filter_by(id=bill_id)
        if admin_id is not None:
            query = query.filter_by(admin_id=admin_id)
        return query.first()

    def insert(self, bill):
        db.session.add(bill)
        db.session.flush()
        return bill

    def transition_status(self, bill_id, paid, values):
        """Conditional status update; False when another writer got there first.

        ``paid`` is the required current state: True only flips PAID bills,
        False only flips bills that are not PAID.
        """
        condition = Bill.status == Bill.PAID if paid else Bill.status != Bill.PAID
        result = db.session.execute(
            update(Bill)
            .where(Bill.id == bill_id, condition)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def delete_unpaid(self, bill_id):
        result = db.session.execute(
            delete(Bill)
            .where(Bill.id == bill_id, Bill.status != Bill.PAID)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def count_by_status(self, month, admin_id=None):
        stmt = select(Bill.status, func.count(Bill.id)).where(Bill.month == month).group_by(Bill.status)
        if admin_id is not None:
            stmt = stmt.where(Bill.admin_id == admin_id)
        return {status: count for status, count in db.session.execute(stmt).all()}

    def billed_tenant_ids(self, month, admin_id=None):
        stmt = select(Bill.tenant_id, Bill.admin_id).where(Bill.month == month)
        if admin_id is not None:
            stmt = stmt.where(Bill.admin_id == admin_id)
        return set(db.session.execute(stmt).all())

    def paid_total(self, admin_id):
        bills = Bill.query.filter_by(admin_id=admin_id, status=Bill.PAID).all()
        return sum((bill.payable_amount for bill in bills), Decimal("0"))


class ProfitStore:

    def get_total(self, admin_id):
        total = db.session.execute(
            select(Profit.total_profit).where(Profit.admin_id == admin_id)
        ).scalar()
        return Decimal(total or 0).quantize(Decimal("0.01"))

    def increment(self, admin_id, delta):
        """Add ``delta`` (negative for undo) to the admin's total; returns the new total."""
        if not self._add(admin_id, delta):
            try:
                with db.session.begin_nested():
                    db.session.add(Profit(admin_id=admin_id, total_profit=delta))
            except IntegrityError:
                # Row created concurrently; apply the delta to it instead.
                self._add(admin_id, delta)
        return self.get_total(admin_id)

    def set_total(self, admin_id, value):
        if not db.session.execute(
            update(Profit).where(Profit.admin_id == admin_id).values(total_profit=value)
        ).rowcount:
            db.session.add(Profit(admin_id=admin_id, total_profit=value))
            db.session.flush()
        return self.get_total(admin_id)

    def _add(self, admin_id, delta):
        result = db.session.execute(
            update(Profit)
            .where(Profit.admin_id == admin_id)
            .values(total_profit=Profit.total_profit + delta)
        )
        return result.rowcount == 1
