# rentledger/security.py
from functools import wraps

from flask import jsonify
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

SUPER_ADMIN = "SUPER_ADMIN"


def current_admin_id():
    """Admin id carried as the access token identity."""
    return int(get_jwt_identity())


def current_admin_role():
    return get_jwt().get("role")


def is_super_admin():
    return current_admin_role() == SUPER_ADMIN


def roles_required(*allowed):
    """Usage: @roles_required("SUPER_ADMIN")"""
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if current_admin_role() not in allowed:
                return jsonify({"success": False, "error": "forbidden"}), 403
            return fn(*args, **kwargs)
        return wrapper
    return deco
