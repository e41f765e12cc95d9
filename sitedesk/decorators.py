"""
Route decorators for the admin API.

- admin_required: logged-in, active staff user with is_admin=True.
  Anonymous callers get the login manager's JSON 401; everyone else who
  fails the check gets a JSON 403.
"""

from functools import wraps

from flask import abort
from flask_login import current_user

from sitedesk.extensions import login_manager


def admin_required(f):
    """Require an authenticated, active admin."""

    @wraps(f)
    def decorated(*args, **kwargs):
        # is_authenticated is False for deactivated users too
        if current_user.is_anonymous:
            return login_manager.unauthorized()
        if not current_user.is_active:
            abort(403, description="This account has been deactivated.")
        if not current_user.is_admin:
            abort(403, description="Admin access required.")
        return f(*args, **kwargs)

    return decorated
