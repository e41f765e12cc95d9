"""Site status blueprint — /api/site-status

Public lookup used by the hosting edge: given the requested hostname,
answer whether the site is known and its billing service_status, so
suspended sites can be served the suspension page.

Route Map:
  GET /api/site-status?domain=<host>  — { status, service_status }
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from sitedesk.extensions import limiter
from sitedesk.services.site_service import find_site_by_domain
from sitedesk.store import get_store

site_status_bp = Blueprint("site_status", __name__, url_prefix="/api")

logger = logging.getLogger(__name__)


@site_status_bp.route("/site-status", methods=["GET"])
@limiter.limit(lambda: current_app.config["SITE_STATUS_RATE_LIMIT"])
def site_status():
    domain = (request.args.get("domain") or "").strip()
    if not domain:
        return jsonify(error="Domain required"), 400

    site = find_site_by_domain(get_store(), domain)
    if site is None:
        logger.info(f"Site status lookup: {domain} not found")
        return jsonify(status="not_found"), 404

    return jsonify(
        status="found",
        service_status=site.get("service_status") or "active",
    )
