from datetime import datetime

from ..extensions import db


class Profit(db.Model):
    """Running total of collected rent per admin.

    Moved only by the payment transitions (mark paid / undo); never
    recomputed on read. See PaymentService.reconcile_profit for the check.
    """
    __tablename__ = 'profits'

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey('admins.id'), unique=True, nullable=False)
    total_profit = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Profit admin={self.admin_id}: {self.total_profit}>'
