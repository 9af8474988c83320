from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError

from ..errors import BillLocked, DuplicateBill, NotFoundOrForbidden, ValidationError
from ..extensions import db
from ..models import Bill
from ..utils.months import normalize_month
from .clock import SystemClock
from .stores import BillStore, TenancyStore


def _decimal(value, field):
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, bool) or not number.is_finite():
        raise ValidationError(f"{field} must be a number")
    return number


def _int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def _due_date(value):
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError("Invalid due_date format. Use YYYY-MM-DD")


class BillService:
    """Manual bill creation, edits, deletion and per-admin bill reads."""

    def __init__(self, bills=None, tenancies=None, clock=None):
        self.bills = bills or BillStore()
        self.tenancies = tenancies or TenancyStore()
        self.clock = clock or SystemClock()

    def create_bill(self, admin_id, data):
        required_fields = ['tenant_id', 'property_id', 'amount', 'month', 'due_date']
        missing = [f for f in required_fields if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        month = normalize_month(data["month"])
        due_date = _due_date(data["due_date"])

        tenant = self.tenancies.find_tenant(_int(data["tenant_id"], "tenant_id"), admin_id)
        if tenant is None:
            raise NotFoundOrForbidden("Tenant not found or not authorized")
        prop = self.tenancies.find_property(_int(data["property_id"], "property_id"), admin_id)
        if prop is None:
            raise NotFoundOrForbidden("Property not found or not authorized")

        if self.bills.find_one(tenant.id, month, admin_id):
            raise DuplicateBill()

        amount = _decimal(data['amount'], 'amount')
        if data.get('rent_amount') not in (None, ""):
            rent_amount = _decimal(data['rent_amount'], 'rent_amount')
        elif prop.monthly_rent is not None:
            rent_amount = Decimal(prop.monthly_rent)
        else:
            rent_amount = amount
        charges = _decimal(data['charges'], 'charges') if data.get('charges') not in (None, "") else Decimal("0")
        total_amount = rent_amount + charges
        if amount <= 0 or total_amount <= 0:
            raise ValidationError("Bill amount must be greater than 0")

        bill = Bill(
            tenant_id=tenant.id,
            property_id=prop.id,
            admin_id=admin_id,
            month=month,
            amount=amount,
            rent_amount=rent_amount,
            charges=charges,
            total_amount=total_amount,
            due_date=due_date,
            bill_date=self.clock.today(),
            status=Bill.PENDING,
            description=data.get('description') or 'Monthly rent payment',
        )
        try:
            self.bills.insert(bill)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateBill()
        return bill

    def get_bill(self, bill_id, admin_id):
        bill = self.bills.find_by_id(bill_id, admin_id)
        if bill is None:
            raise NotFoundOrForbidden("Bill not found")
        return bill

    def update_bill(self, bill_id, admin_id, data):
        """Edit amount, due_date or description of an owned bill.

        Status only moves through PaymentService, and the amount of a PAID
        bill is frozen because the profit ledger already holds it.
        """
        if "status" in data:
            raise ValidationError("Bill status changes go through the pay and undo endpoints")
        bill = self.get_bill(bill_id, admin_id)

        values = {}
        if data.get("due_date") is not None:
            values["due_date"] = _due_date(data["due_date"])
        if "description" in data:
            description = data["description"]
            if description is not None and not isinstance(description, str):
                raise ValidationError("description must be a string")
            values["description"] = description

        if data.get("amount") is not None:
            amount = _decimal(data["amount"], "amount")
            if amount <= 0:
                raise ValidationError("Bill amount must be greater than 0")
            charges = Decimal(bill.charges or 0)
            if amount <= charges:
                raise ValidationError(f"Bill amount must exceed its charges ({charges})")
            values.update(amount=amount, total_amount=amount, rent_amount=amount - charges)
            # Only while unpaid, so a concurrent payment keeps the amount it posted.
            if not self.bills.transition_status(bill.id, False, values):
                db.session.rollback()
                raise BillLocked()
        elif values:
            for key, value in values.items():
                setattr(bill, key, value)

        db.session.commit()
        db.session.refresh(bill)
        return bill

    def delete_bill(self, bill_id, admin_id):
        """Delete an owned bill that is not PAID."""
        bill = self.get_bill(bill_id, admin_id)
        if bill.status == Bill.PAID or not self.bills.delete_unpaid(bill.id):
            db.session.rollback()
            raise BillLocked("Paid bills cannot be deleted; undo the payment first")
        db.session.commit()
        return bill_id

    def list_bills(self, admin_id, status=None, page=1, limit=10):
        page = max(1, page)
        limit = max(1, min(limit, 200))
        if status and status not in Bill.STATUSES:
            raise ValidationError(f"Unknown bill status: {status}")
        query = Bill.query.filter_by(admin_id=admin_id)
        if status:
            query = query.filter(Bill.status == status)
        total = query.count()
        bills = (query.order_by(desc(Bill.created_at), desc(Bill.id))
                 .limit(limit).offset((page - 1) * limit).all())
        return {
            "bills": [bill.serialize() for bill in bills],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": (total + limit - 1) // limit,
            },
        }

    def bill_statistics(self, admin_id, today=None):
        today = today or self.clock.today()
        breakdown = {}
        total_amount = Decimal("0")
        pending = overdue = 0

        bills = Bill.query.filter_by(admin_id=admin_id).all()
        for bill in bills:
            amount = bill.payable_amount
            total_amount += amount
            entry = breakdown.setdefault(bill.status, {"status": bill.status, "count": 0, "total_amount": Decimal("0")})
            entry["count"] += 1
            entry["total_amount"] += amount
            if bill.status == Bill.PENDING:
                pending += 1
            if bill.is_overdue(today):
                overdue += 1

        return {
            "total_bills": len(bills),
            "total_amount": float(total_amount),
            "pending_bills": pending,
            "overdue_bills": overdue,
            "status_breakdown": [
                {**entry, "total_amount": float(entry["total_amount"])} for entry in breakdown.values()
            ],
        }
