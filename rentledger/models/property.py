from datetime import datetime

from ..extensions import db


class Property(db.Model):
    __tablename__ = 'properties'

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey('admins.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(512))
    city = db.Column(db.String(100))
    monthly_rent = db.Column(db.Numeric(10, 2), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tenants = db.relationship('Tenant', backref='property', lazy=True)
    bills = db.relationship('Bill', backref='property', lazy=True)

    def __repr__(self):
        return f'<Property {self.id}: {self.title}>'
