# gymmawy/admin/routes.py
from . import bp
from ..services import dashboard
from ..utils.api import ok
from ..utils.decorators import admin_required


@bp.get("/dashboard")
@admin_required
def dashboard_view():
    return ok("Dashboard fetched", dashboard.dashboard_stats())


@bp.get("/subscriptions/stats")
@admin_required
def subscription_stats():
    return ok("OK", dashboard.subscription_stats())


@bp.get("/programmes/stats")
@admin_required
def programme_stats():
    return ok("OK", dashboard.programme_stats())
