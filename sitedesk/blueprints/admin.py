"""Admin blueprint — /admin/*

JSON API for agency staff: clients, sites and domain claims.
All routes protected by @admin_required decorator.

Route Map:
  GET    /admin/                               — Dashboard counters
  GET    /admin/clients                        — Client list (?status=)
  POST   /admin/clients                        — Create client
  GET    /admin/clients/<id>                   — Client detail + sites
  POST   /admin/clients/<id>/service-status    — Suspend / reactivate all sites
  GET    /admin/sites                          — Site list (?client_id=&project_id=)
  POST   /admin/sites                          — Create site (409 on domain conflict)
  GET    /admin/sites/suspended                — Suspended sites
  GET    /admin/sites/<id>                     — Site detail
  PATCH  /admin/sites/<id>                     — Update site (409 on domain conflict)
  DELETE /admin/sites/<id>                     — Delete site (idempotent)
  POST   /admin/sites/<id>/archive             — Archive (optionally recreate)
  POST   /admin/sites/<id>/unarchive           — Restore (409 + conflict when blocked)
  POST   /admin/domain-claims/repair           — Rebuild missing domain claims
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from sitedesk.decorators import admin_required
from sitedesk.extensions import db
from sitedesk.models.audit import AuditEvent
from sitedesk.services import client_service, site_service
from sitedesk.services.client_service import ClientNotFoundError, InvalidClientError
from sitedesk.services.domain_service import domain_field, ensure_protocol
from sitedesk.services.site_service import (
    DomainConflictError,
    InvalidSiteError,
    SiteNotFoundError,
)
from sitedesk.store import TransactionAborted, get_store

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

def _payload():
    """Request body as a dict (JSON or form POST)."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def _flag(value):
    if isinstance(value, bool):
        return value
    return str(value or "").lower() in ("1", "true", "yes", "on")


def _audit(action, metadata):
    """Record an admin action in the activity feed."""
    db.session.add(AuditEvent(
        actor_user_id=current_user.id,
        action=action,
        metadata_=metadata,
    ))
    db.session.commit()


def _site_json(site):
    """Site document plus a clickable link for its claimed field."""
    data = dict(site)
    field = domain_field(site.get("type"))
    data["link"] = ensure_protocol(site.get(field)) if field else None
    return data


# ──────────────────────────────────────────────
# Error handlers
# ──────────────────────────────────────────────

@admin_bp.errorhandler(DomainConflictError)
def handle_domain_conflict(e):
    return jsonify(
        ok=False, code=e.code, error=str(e), conflict=e.to_dict()
    ), 409


@admin_bp.errorhandler(SiteNotFoundError)
@admin_bp.errorhandler(ClientNotFoundError)
def handle_not_found(e):
    return jsonify(ok=False, error=str(e)), 404


@admin_bp.errorhandler(InvalidSiteError)
@admin_bp.errorhandler(InvalidClientError)
def handle_invalid(e):
    return jsonify(ok=False, error=str(e)), 400


@admin_bp.errorhandler(TransactionAborted)
def handle_aborted(e):
    logger.error(f"Admin request gave up after transaction conflicts: {e}")
    return jsonify(ok=False, error="The site store is busy. Please try again."), 503


# ══════════════════════════════════════════════
#  DASHBOARD
# ══════════════════════════════════════════════

@admin_bp.route("/")
@admin_required
def dashboard():
    """Counters: sites per status, suspended sites, clients, recent activity."""
    store = get_store()
    sites = site_service.list_sites(store)

    site_counts = {status: 0 for status in ("draft", "live", "paused", "archived")}
    for site in sites:
        site_counts[site.get("status")] = site_counts.get(site.get("status"), 0) + 1

    recent_activity = (
        AuditEvent.query
        .order_by(AuditEvent.created_at.desc())
        .limit(20)
        .all()
    )

    return jsonify(
        ok=True,
        site_counts=site_counts,
        suspended_count=len(site_service.list_suspended_sites(store)),
        client_count=len(client_service.list_clients(store)),
        recent_activity=[
            {
                "action": event.action,
                "metadata": event.metadata_,
                "created_at": event.created_at,
            }
            for event in recent_activity
        ],
    )


# ══════════════════════════════════════════════
#  CLIENTS
# ══════════════════════════════════════════════

@admin_bp.route("/clients", methods=["GET"])
@admin_required
def client_list():
    clients = client_service.list_clients(get_store(), status=request.args.get("status"))
    return jsonify(ok=True, clients=clients)


@admin_bp.route("/clients", methods=["POST"])
@admin_required
def client_create():
    store = get_store()
    client_id = client_service.create_client(store, _payload())
    client = client_service.get_client(store, client_id)

    _audit("client.created", {"client_id": client_id, "full_name": client["full_name"]})
    return jsonify(ok=True, client=client), 201


@admin_bp.route("/clients/<client_id>", methods=["GET"])
@admin_required
def client_detail(client_id):
    store = get_store()
    client = client_service.get_client(store, client_id)
    sites = site_service.list_sites(store, client_id=client_id)
    return jsonify(ok=True, client=client, sites=[_site_json(s) for s in sites])


@admin_bp.route("/clients/<client_id>/service-status", methods=["POST"])
@admin_required
def client_service_status(client_id):
    """Billing freeze / thaw. Sets service_status on all the client's sites."""
    service_status = (_payload().get("service_status") or "").strip()
    changed = site_service.set_client_service_status(
        get_store(), client_id, service_status
    )

    _audit("client.service_status_changed", {
        "client_id": client_id,
        "service_status": service_status,
        "sites_changed": changed,
    })
    return jsonify(ok=True, sites_changed=changed)


# ══════════════════════════════════════════════
#  SITES
# ══════════════════════════════════════════════

@admin_bp.route("/sites", methods=["GET"])
@admin_required
def site_list():
    sites = site_service.list_sites(
        get_store(),
        client_id=request.args.get("client_id") or None,
        project_id=request.args.get("project_id") or None,
    )
    return jsonify(ok=True, sites=[_site_json(s) for s in sites])


@admin_bp.route("/sites", methods=["POST"])
@admin_required
def site_create():
    store = get_store()
    site_id = site_service.create_site(store, _payload())
    site = site_service.get_site(store, site_id)

    _audit("site.created", {
        "site_id": site_id,
        "client_id": site["client_id"],
        "type": site["type"],
    })
    return jsonify(ok=True, site=_site_json(site)), 201


@admin_bp.route("/sites/suspended", methods=["GET"])
@admin_required
def site_suspended_list():
    sites = site_service.list_suspended_sites(get_store())
    return jsonify(ok=True, sites=[_site_json(s) for s in sites])


@admin_bp.route("/sites/<site_id>", methods=["GET"])
@admin_required
def site_detail(site_id):
    site = site_service.get_site(get_store(), site_id)
    return jsonify(ok=True, site=_site_json(site))


@admin_bp.route("/sites/<site_id>", methods=["PATCH"])
@admin_required
def site_update(site_id):
    store = get_store()
    changes = _payload()
    site_service.update_site(store, site_id, changes)
    site = site_service.get_site(store, site_id)

    _audit("site.updated", {"site_id": site_id, "fields": sorted(changes)})
    return jsonify(ok=True, site=_site_json(site))


@admin_bp.route("/sites/<site_id>", methods=["DELETE"])
@admin_required
def site_delete(site_id):
    site_service.delete_site(get_store(), site_id)

    _audit("site.deleted", {"site_id": site_id})
    return "", 204


@admin_bp.route("/sites/<site_id>/archive", methods=["POST"])
@admin_required
def site_archive(site_id):
    """Archive a site. Body: {recreate, new_payload, new_type}.

    Returns the new site id when a replacement was created so the caller can
    open it for editing.
    """
    data = _payload()
    new_payload = data.get("new_payload")
    if new_payload is not None and not isinstance(new_payload, dict):
        return jsonify(ok=False, error="new_payload must be an object."), 400

    new_site_id = site_service.archive_site(
        get_store(),
        site_id,
        recreate=_flag(data.get("recreate")),
        new_payload=new_payload,
        new_type=data.get("new_type") or None,
    )

    _audit("site.archived", {"site_id": site_id, "new_site_id": new_site_id})
    return jsonify(ok=True, new_site_id=new_site_id)


@admin_bp.route("/sites/<site_id>/unarchive", methods=["POST"])
@admin_required
def site_unarchive(site_id):
    """Restore an archived site. Body: {takeover_mode: "pause" | "archive"}.

    A blocked restore answers 409 with the conflicting site so the operator
    can retry with a takeover mode.
    """
    takeover_mode = _payload().get("takeover_mode") or None
    result = site_service.unarchive_site_safe(
        get_store(), site_id, takeover_mode=takeover_mode
    )

    if not result["success"]:
        return jsonify(ok=False, **result), 409

    _audit("site.unarchived", {"site_id": site_id})
    for holder_id in result.get("taken_over", []):
        _audit("site.takeover", {
            "site_id": site_id,
            "taken_from": holder_id,
            "mode": takeover_mode,
        })
    return jsonify(ok=True, **result)


# ══════════════════════════════════════════════
#  DOMAIN CLAIMS
# ══════════════════════════════════════════════

@admin_bp.route("/domain-claims/repair", methods=["POST"])
@admin_required
def domain_claims_repair():
    """Create claims missing for live sites; report real conflicts."""
    dry_run = _flag(_payload().get("dry_run"))
    report = site_service.repair_domain_claims(get_store(), dry_run=dry_run)

    if not dry_run:
        _audit("domain_claims.repaired", report["summary"])
    return jsonify(ok=True, **report)
