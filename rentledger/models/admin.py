from datetime import datetime

from passlib.hash import pbkdf2_sha256

from ..extensions import db


class Admin(db.Model):
    __tablename__ = 'admins'

    ROLES = ('ADMIN', 'SUPER_ADMIN')

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='ADMIN')
    status = db.Column(db.String(20), nullable=False, default='ACTIVE')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    properties = db.relationship('Property', backref='admin', lazy=True)
    tenants = db.relationship('Tenant', backref='admin', lazy=True)
    bills = db.relationship('Bill', backref='admin', lazy=True)

    def __repr__(self):
        return f'<Admin {self.id}: {self.email} ({self.role})>'

    def set_password(self, raw):
        self.password_hash = pbkdf2_sha256.hash(raw)
