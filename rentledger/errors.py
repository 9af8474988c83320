# rentledger/errors.py
from flask import current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db


class BillingError(Exception):
    status_code = 400
    error = "billing_error"

    def __init__(self, message=None, **details):
        super().__init__(message or self.__class__.__doc__ or self.error)
        self.message = message or self.__class__.__doc__ or self.error
        self.details = details

    def to_dict(self):
        payload = {"success": False, "error": self.error, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BillingError):
    """Invalid input."""
    status_code = 400
    error = "validation_error"


class InvalidAmount(ValidationError):
    """Bill amount must be greater than 0."""
    error = "invalid_amount"


class NotFoundOrForbidden(BillingError):
    """Resource not found."""
    status_code = 404
    error = "not_found"


class ConflictError(BillingError):
    """Conflicting state."""
    status_code = 409
    error = "conflict"


class DuplicateBill(ConflictError):
    """Bill already exists for this tenant and month."""
    error = "duplicate_bill"


class AlreadyPaid(ConflictError):
    """Bill is already marked as paid."""
    error = "already_paid"


class NotPaid(ConflictError):
    """Bill is not marked as paid."""
    error = "not_paid"


class BillLocked(ConflictError):
    """Paid bills cannot be modified; undo the payment first."""
    error = "bill_locked"


class ConcurrentRunRejected(ConflictError):
    """A bill generation run is already in progress."""
    error = "generation_in_progress"


class StorageError(BillingError):
    """Storage operation failed."""
    status_code = 500
    error = "storage_error"


def register_error_handlers(app):
    @app.errorhandler(BillingError)
    def billing_error(e):
        if e.status_code >= 500:
            current_app.logger.error("%s: %s", e.error, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def database_error(e):
        db.session.rollback()
        current_app.logger.exception("Database error: %s", e)
        return jsonify(StorageError().to_dict()), 500

    @app.errorhandler(400)
    def bad_request(e):
        msg = getattr(e, "description", "Bad Request")
        return jsonify(success=False, error="bad_request", message=msg), 400

    @app.errorhandler(401)
    def unauthorized(e): return jsonify(success=False, error="unauthorized"), 401

    @app.errorhandler(403)
    def forbidden(e): return jsonify(success=False, error="forbidden"), 403

    @app.errorhandler(404)
    def not_found(e): return jsonify(success=False, error="not_found"), 404

    @app.errorhandler(500)
    def server_error(e):
        current_app.logger.exception("Unhandled exception: %s", e)
        return jsonify(success=False, error="server_error"), 500
