from datetime import date, datetime
from decimal import Decimal

from ..extensions import db


class Bill(db.Model):
    __tablename__ = 'bills'
    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'month', 'admin_id', name='uq_bills_tenant_month_admin'),
    )

    PENDING = 'PENDING'
    PAID = 'PAID'
    OVERDUE = 'OVERDUE'
    RECEIPT_SENT = 'RECEIPT_SENT'
    STATUSES = (PENDING, PAID, OVERDUE, RECEIPT_SENT)

    id = db.Column(db.Integer, primary_key=True)

    # Foreign Keys (tenant, property and bill share one owning admin)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False)
    property_id = db.Column(db.Integer, db.ForeignKey('properties.id'), nullable=False)
    admin_id = db.Column(db.Integer, db.ForeignKey('admins.id'), nullable=False, index=True)

    month = db.Column(db.String(7), nullable=False, index=True)  # YYYY-MM

    # Financial details
    amount = db.Column(db.Numeric(10, 2), nullable=True)  # manual bills only
    rent_amount = db.Column(db.Numeric(10, 2), nullable=False)
    charges = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)

    # Dates
    due_date = db.Column(db.Date, nullable=False)
    bill_date = db.Column(db.Date, nullable=False)
    payment_date = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Bill {self.id}: Tenant {self.tenant_id}, {self.month}, {self.total_amount} ({self.status})>'

    @property
    def payable_amount(self):
        """Amount posted to the profit ledger: total_amount, falling back to amount."""
        return Decimal(self.total_amount or self.amount or 0)

    def is_overdue(self, today=None):
        today = today or date.today()
        if self.status == self.OVERDUE:
            return True
        return self.status == self.PENDING and self.due_date < today

    def serialize(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "property_id": self.property_id,
            "admin_id": self.admin_id,
            "month": self.month,
            "amount": float(self.amount) if self.amount is not None else None,
            "rent_amount": float(self.rent_amount),
            "charges": float(self.charges or 0),
            "total_amount": float(self.total_amount),
            "due_date": self.due_date.isoformat(),
            "bill_date": self.bill_date.isoformat(),
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "status": self.status,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "tenant_name": self.tenant.name if self.tenant else None,
            "property_title": self.property.title if self.property else None,
        }
