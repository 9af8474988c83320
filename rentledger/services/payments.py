"""
Bill payment transitions and the per-admin profit ledger.

mark_as_paid and undo_payment flip the bill and move the owning admin's
profit total in a single transaction: either both land or neither does.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from ..errors import AlreadyPaid, InvalidAmount, NotFoundOrForbidden, NotPaid, StorageError
from ..extensions import db
from ..models import Bill
from .clock import SystemClock
from .stores import BillStore, ProfitStore

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    bill: Bill
    amount: Decimal
    profit_total: Decimal

    def to_dict(self, amount_key="added"):
        return {
            "bill": {
                "id": self.bill.id,
                "status": self.bill.status,
                "payment_date": self.bill.payment_date.isoformat() if self.bill.payment_date else None,
                "amount": float(self.amount),
            },
            "profit": {
                "admin_id": self.bill.admin_id,
                "total": float(self.profit_total),
                amount_key: float(self.amount),
            },
        }


class PaymentService:

    def __init__(self, bills=None, profits=None, clock=None):
        self.bills = bills or BillStore()
        self.profits = profits or ProfitStore()
        self.clock = clock or SystemClock()

    def _load(self, bill_id, requesting_admin_id):
        bill = self.bills.find_by_id(bill_id, requesting_admin_id)
        if bill is None:
            raise NotFoundOrForbidden("Bill not found")
        return bill

    def mark_as_paid(self, bill_id, requesting_admin_id):
        """PENDING/OVERDUE/RECEIPT_SENT -> PAID; credits the bill owner's ledger.

        ``requesting_admin_id`` scopes the lookup; None is an unscoped
        operator call.
        """
        bill = self._load(bill_id, requesting_admin_id)
        if bill.status == Bill.PAID:
            raise AlreadyPaid()
        amount = bill.payable_amount
        if amount <= 0:
            raise InvalidAmount()

        values = {"status": Bill.PAID, "payment_date": self.clock.now()}
        total = self._post(bill, amount, paid=False, values=values)

        logger.info("Bill #%s marked as PAID: %s added to admin #%s profit (total %s)",
                    bill.id, amount, bill.admin_id, total)
        return PaymentResult(bill=bill, amount=amount, profit_total=total)

    def undo_payment(self, bill_id, requesting_admin_id):
        """PAID -> PENDING; debits the bill owner's ledger by the same amount."""
        bill = self._load(bill_id, requesting_admin_id)
        if bill.status != Bill.PAID:
            raise NotPaid()
        amount = bill.payable_amount
        if amount <= 0:
            raise InvalidAmount()

        values = {"status": Bill.PENDING, "payment_date": None}
        total = self._post(bill, -amount, paid=True, values=values)

        logger.info("Bill #%s payment undone: %s removed from admin #%s profit (total %s)",
                    bill.id, amount, bill.admin_id, total)
        return PaymentResult(bill=bill, amount=amount, profit_total=total)

    def _post(self, bill, delta, paid, values):
        # Ownership of the bill decides whose ledger moves.
        try:
            if not self.bills.transition_status(bill.id, paid, values):
                db.session.rollback()
                raise NotPaid() if paid else AlreadyPaid()
            total = self.profits.increment(bill.admin_id, delta)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Payment transition for bill #%s failed", bill.id)
            raise StorageError("Failed to update bill payment") from e
        db.session.refresh(bill)
        return total

    def get_total_profit(self, admin_id):
        return self.profits.get_total(admin_id)

    def reconcile_profit(self, admin_id, fix=False):
        """Compare the ledger total with the sum of the admin's PAID bills."""
        ledger = self.profits.get_total(admin_id)
        paid = self.bills.paid_total(admin_id).quantize(Decimal("0.01"))
        drift = ledger - paid
        report = {
            "admin_id": admin_id,
            "ledger_total": float(ledger),
            "paid_bills_total": float(paid),
            "drift": float(drift),
            "consistent": drift == 0,
            "fixed": False,
        }
        if drift != 0:
            logger.warning("Profit ledger drift for admin #%s: ledger=%s paid=%s", admin_id, ledger, paid)
            if fix:
                self.profits.set_total(admin_id, paid)
                db.session.commit()
                report["fixed"] = True
        return report
