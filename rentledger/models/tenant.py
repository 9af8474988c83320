from datetime import datetime

from ..extensions import db


class Tenant(db.Model):
    __tablename__ = 'tenants'

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey('admins.id'), nullable=False, index=True)
    property_id = db.Column(db.Integer, db.ForeignKey('properties.id'), nullable=True)

    # Personal Information
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=True)

    # Tenancy
    status = db.Column(db.String(20), nullable=False, default='ACTIVE', index=True)
    join_date = db.Column(db.Date, nullable=False)  # lease start
    rent_amount = db.Column(db.Numeric(10, 2), nullable=True)  # falls back to property rent
    charges_amount = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bills = db.relationship('Bill', backref='tenant', lazy=True)

    def __repr__(self):
        return f'<Tenant {self.id}: {self.name}>'
