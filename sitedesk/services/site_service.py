"""Site service — site lifecycle and domain claim management.

Invariant: a domain claim (normalized domain -> site) exists iff a
non-archived site's effective domain equals that key, and it names exactly
that site. Claims naming archived or deleted sites are stale and may be
overwritten; a claim naming a live site never is, except by an explicit
restore takeover.

Every public mutation is one store.run_transaction() call. Transaction
bodies are split into a read phase and a write phase: every snapshot a
decision depends on is read before the first write (the store rejects a
read after a write). Conflicts detected in the read phase either raise
DomainConflictError (create, update, archive + recreate) or come back as
data (unarchive), because restoring has an operator follow-up (pause or
archive the current holder) and the others don't.

Functions take the store as their first argument.
"""

import logging
from datetime import datetime, timezone

from sitedesk.models.site import Site
from sitedesk.services.client_service import ClientNotFoundError, client_name
from sitedesk.services.domain_service import (
    domain_field,
    effective_domain,
    normalize_domain,
)

logger = logging.getLogger(__name__)

SITES = "sites"
CLAIMS = "domain_claims"
CLIENTS = "clients"

SITE_FIELDS = (
    "client_id",
    "project_id",
    "type",
    "label",
    "status",
    "domain",
    "external_url",
    "preview_url",
    "live_url",
    "template_key",
    "template_version",
    "notes",
    "service_status",
)

TAKEOVER_MODES = ("pause", "archive")


class SiteServiceError(Exception):
    """Base class for site lifecycle failures."""


class SiteNotFoundError(SiteServiceError, LookupError):
    """The site does not exist."""


class InvalidSiteError(SiteServiceError, ValueError):
    """Site input or requested transition is invalid."""


class DomainConflictError(SiteServiceError):
    """The domain is held by another live site.

    Carries the conflict dict (domain, site_id, owner_label, client_name,
    message) so callers can show who holds it.
    """

    code = "domain_conflict"

    def __init__(self, conflict):
        self.conflict = conflict
        self.domain = conflict["domain"]
        self.site_id = conflict["site_id"]
        self.owner_label = conflict["owner_label"]
        self.client_name = conflict["client_name"]
        super().__init__(conflict["message"])

    def to_dict(self):
        return dict(self.conflict)


# ──────────────────────────────────────────────
# Input validation
# ──────────────────────────────────────────────

def _clean_site_input(data, partial=False):
    """Validate and normalize site fields.

    Strings are trimmed (empty -> None) and `domain` is stored normalized.
    With partial=True only the supplied fields are returned (update);
    otherwise defaults are filled and required fields enforced (create).
    """
    unknown = set(data) - set(SITE_FIELDS)
    if unknown:
        raise InvalidSiteError(
            f"Unknown site field(s): {', '.join(sorted(unknown))}"
        )

    cleaned = {}
    for field, value in data.items():
        if value is not None and not isinstance(value, str):
            raise InvalidSiteError(f"Field '{field}' must be a string.")
        if value is not None:
            value = value.strip() or None
        cleaned[field] = value

    if "domain" in cleaned:
        cleaned["domain"] = normalize_domain(cleaned["domain"])

    if not partial:
        cleaned.setdefault("status", "draft")
        cleaned.setdefault("service_status", "active")
        if not cleaned.get("client_id"):
            raise InvalidSiteError("Client is required.")
        if not cleaned.get("type"):
            raise InvalidSiteError("Site type is required.")
    elif "client_id" in cleaned and not cleaned["client_id"]:
        raise InvalidSiteError("Client is required.")

    for field, allowed in (
        ("type", Site.TYPES),
        ("status", Site.STATUSES),
        ("service_status", Site.SERVICE_STATUSES),
    ):
        if field in cleaned and cleaned[field] not in allowed:
            raise InvalidSiteError(
                f"Invalid {field} '{cleaned[field]}'. "
                f"Must be one of: {', '.join(allowed)}"
            )

    return cleaned


def _is_active(site):
    return site.get("status") != "archived"


def _now():
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────
# Claim steps (transaction-scoped)
# ──────────────────────────────────────────────

def _conflict(tx, key, owner_id, owner):
    """Describe a live site holding `key`. Reads the owner's client."""
    label = owner.get("label")
    name = client_name(tx, owner.get("client_id"))
    message = f'Domain "{key}" is already used by {name}'
    if label:
        message += f' ("{label}")'
    return {
        "domain": key,
        "site_id": owner_id,
        "owner_label": label or "Unknown",
        "client_name": name,
        "message": message + ".",
    }


def _resolve_claim(tx, key, site_id, on_conflict="raise"):
    """Read phase for acquiring `key` on behalf of `site_id`.

    Reads the claim and, when it names another site, that site and its
    client. Returns (claim, owner, conflict):

    - claim: the current claim document or None
    - owner: the other site named by the claim, or None
    - conflict: None when the key may be acquired (no claim, our own claim,
      or a stale claim whose owner is archived or gone); otherwise the
      conflict dict. With on_conflict="raise" a conflict raises
      DomainConflictError instead.
    """
    claim = tx.get(CLAIMS, key)
    if claim is None or claim.get("site_id") == site_id:
        return claim, None, None

    owner_id = claim.get("site_id")
    owner = tx.get(SITES, owner_id) if owner_id else None
    if owner is None or not _is_active(owner):
        logger.info(
            f"Stale claim on {key} (site {owner_id} archived or missing) "
            f"may be overwritten by site {site_id}"
        )
        return claim, owner, None

    conflict = _conflict(tx, key, owner_id, owner)
    if on_conflict == "raise":
        logger.info(f"Domain conflict: {key} held by live site {owner_id}")
        raise DomainConflictError(conflict)
    return claim, owner, conflict


def _acquire(tx, key, site_id, client_id, repaired=False):
    """Upsert the claim. Callers have already ruled out a live owner."""
    tx.set(CLAIMS, key, {
        "site_id": site_id,
        "client_id": client_id,
        "repaired": repaired,
    })


def _release(tx, key, claim, site_id):
    """Delete the claim only if the snapshot read earlier names site_id."""
    if key and claim is not None and claim.get("site_id") == site_id:
        tx.delete(CLAIMS, key)
        return True
    return False


def _require_site(tx, site_id):
    site = tx.get(SITES, site_id)
    if site is None:
        raise SiteNotFoundError(f"Site {site_id} not found.")
    return site


def _require_client(tx, client_id):
    if tx.get(CLIENTS, client_id) is None:
        raise ClientNotFoundError(f"Client {client_id} not found.")


# ──────────────────────────────────────────────
# Lifecycle operations
# ──────────────────────────────────────────────

def create_site(store, data):
    """Create a site and claim its effective domain.

    Returns the new site id.

    Raises:
        InvalidSiteError: bad input.
        ClientNotFoundError: client_id does not exist.
        DomainConflictError: the domain is held by another live site.
    """
    doc = _clean_site_input(data)
    key = effective_domain(doc)
    claims = key is not None and _is_active(doc)
    site_id = store.new_id()

    def txn(tx):
        # --- reads ---
        _require_client(tx, doc["client_id"])
        if claims:
            _resolve_claim(tx, key, site_id)

        # --- writes ---
        tx.set(SITES, site_id, doc)
        if claims:
            _acquire(tx, key, site_id, doc["client_id"])
        return site_id

    store.run_transaction(txn)
    logger.info(
        f"Site created: {site_id} (client {doc['client_id']}, "
        f"domain {key if claims else 'none'})"
    )
    return site_id


def update_site(store, site_id, changes):
    """Apply a partial update, moving the domain claim along with it.

    The before/after effective domains are computed from the stored record
    and the merged record, so changing `type` together with `domain` /
    `external_url` resolves against the right field.

    Raises:
        InvalidSiteError: bad input.
        SiteNotFoundError: no such site.
        ClientNotFoundError: a new client_id does not exist.
        DomainConflictError: the new domain is held by another live site.
    """
    changes = _clean_site_input(changes, partial=True)

    def txn(tx):
        # --- reads ---
        current = _require_site(tx, site_id)
        merged = {**current, **changes}

        if merged["client_id"] != current["client_id"]:
            _require_client(tx, merged["client_id"])

        current_key = effective_domain(current)
        next_key = effective_domain(merged)
        was_active = _is_active(current)
        is_active = _is_active(merged)
        domain_changed = next_key != current_key

        old_claim = None
        releasing = current_key is not None and (domain_changed or not is_active)
        if releasing:
            old_claim = tx.get(CLAIMS, current_key)

        acquiring = (
            next_key is not None
            and is_active
            and (domain_changed or not was_active)
        )
        if acquiring:
            _resolve_claim(tx, next_key, site_id)

        # A held claim carries the client too
        held_claim = None
        if (
            not acquiring
            and next_key is not None
            and is_active
            and merged["client_id"] != current["client_id"]
        ):
            held_claim = tx.get(CLAIMS, next_key)

        # --- writes ---
        payload = dict(changes)
        if (
            "service_status" in payload
            and payload["service_status"] != current.get("service_status")
        ):
            payload["suspended_at"] = (
                _now() if payload["service_status"] == "suspended" else None
            )

        released = releasing and _release(tx, current_key, old_claim, site_id)
        if acquiring:
            _acquire(tx, next_key, site_id, merged["client_id"])
        elif held_claim is not None and held_claim.get("site_id") == site_id:
            _acquire(tx, next_key, site_id, merged["client_id"])
        if payload:
            tx.update(SITES, site_id, payload)
        return current_key, next_key, released, acquiring

    current_key, next_key, released, acquired = store.run_transaction(txn)
    if released:
        logger.info(f"Site {site_id} released domain {current_key}")
    if acquired:
        logger.info(f"Site {site_id} claimed domain {next_key}")


def archive_site(store, site_id, recreate=False, new_payload=None, new_type=None):
    """Archive a site, releasing its domain claim.

    With recreate=True and a new_payload, a replacement site is created in
    the same transaction as status "draft". It inherits the archived site's
    client and (unless new_type or the payload says otherwise) its type.
    Its domain is taken without a check only when it is the key this call
    just released; any other domain goes through the normal conflict check.

    Returns the new site id, or None when nothing was recreated.

    Raises:
        SiteNotFoundError: no such site.
        InvalidSiteError: bad replacement payload.
        ClientNotFoundError: the replacement's client does not exist.
        DomainConflictError: the replacement's domain is held by a live site.
    """
    replacement = None
    if recreate and new_payload:
        replacement = _clean_site_input(new_payload, partial=True)
        replacement.pop("status", None)
        if new_type is not None:
            replacement["type"] = new_type
    new_site_id = store.new_id() if replacement is not None else None

    def txn(tx):
        # --- reads ---
        site = _require_site(tx, site_id)
        key = effective_domain(site)
        claim = tx.get(CLAIMS, key) if key and _is_active(site) else None
        releases = claim is not None and claim.get("site_id") == site_id

        new_doc = new_key = None
        if replacement is not None:
            new_doc = {
                "client_id": site["client_id"],
                "type": site["type"],
                "service_status": "active",
                **replacement,
                "status": "draft",
            }
            new_doc = _clean_site_input(new_doc)
            if new_doc["client_id"] != site["client_id"]:
                _require_client(tx, new_doc["client_id"])
            new_key = effective_domain(new_doc)
            if new_key and not (new_key == key and releases):
                _resolve_claim(tx, new_key, new_site_id)

        # --- writes ---
        _release(tx, key, claim, site_id)
        tx.update(SITES, site_id, {"status": "archived"})
        if new_doc is not None:
            tx.set(SITES, new_site_id, new_doc)
            if new_key:
                _acquire(tx, new_key, new_site_id, new_doc["client_id"])
        return key if releases else None, new_key

    released_key, new_key = store.run_transaction(txn)
    logger.info(
        f"Site archived: {site_id}"
        + (f", released {released_key}" if released_key else "")
    )
    if new_site_id:
        logger.info(
            f"Site {new_site_id} recreated from {site_id}"
            + (f", claimed {new_key}" if new_key else "")
        )
    return new_site_id


def _fallback_candidates(store, key):
    """Sites whose raw fields equal `key`, straight from the site collection.

    Non-transactional query; failures propagate and abort the restore.
    """
    by_domain = store.query(SITES, "domain", key)
    by_url = store.query(SITES, "external_url", key)
    return by_domain + by_url


def _uses_domain(site, key):
    return key in (normalize_domain(site.get("domain")), effective_domain(site))


def _takeover_changes(owner, key, mode):
    """Fields to write on the current holder when a restore takes its domain."""
    if mode == "archive":
        # Keeps its domain field; the claim moves to the restored site.
        return {"status": "archived"}

    changes = {"status": "paused"}
    field = domain_field(owner.get("type"))
    if field and normalize_domain(owner.get(field)) == key:
        changes[field] = None
    if normalize_domain(owner.get("domain")) == key:
        changes["domain"] = None
    return changes


def unarchive_site_safe(store, site_id, takeover_mode=None):
    """Restore an archived site to "draft" and reclaim its domain.

    If a live site holds the domain (by claim, or found by scanning the
    site collection in case the claims drifted), nothing is written unless
    takeover_mode is given:

    - "archive": the holder is archived (its domain field is kept).
    - "pause":   the holder is paused and its domain-bearing field cleared.

    Returns:
        {"success": True} on restore; "taken_over" lists the site ids
        paused/archived by a takeover, when there were any.
        {"success": False, "conflict": {...}} when blocked and no
        takeover_mode was given.

    Raises:
        InvalidSiteError: unknown takeover mode or site not archived.
        SiteNotFoundError: no such site.
    """
    if takeover_mode is not None and takeover_mode not in TAKEOVER_MODES:
        raise InvalidSiteError(
            f"Invalid takeover mode '{takeover_mode}'. "
            f"Must be one of: {', '.join(TAKEOVER_MODES)}"
        )

    def txn(tx):
        # --- reads ---
        site = _require_site(tx, site_id)
        if _is_active(site):
            raise InvalidSiteError(f"Site {site_id} is not archived.")

        key = effective_domain(site)
        if key is None:
            tx.update(SITES, site_id, {"status": "draft"})
            return {"success": True}

        claim, owner, conflict = _resolve_claim(
            tx, key, site_id, on_conflict="report"
        )
        holders = []  # (site_id, site doc, conflict)
        if conflict:
            holders.append((claim["site_id"], owner, conflict))

        seen = {site_id}
        if claim is not None:
            seen.add(claim.get("site_id"))
        for candidate in _fallback_candidates(store, key):
            candidate_id = candidate["id"]
            if candidate_id in seen:
                continue
            seen.add(candidate_id)
            fresh = tx.get(SITES, candidate_id)
            if fresh is None or not _is_active(fresh) or not _uses_domain(fresh, key):
                continue
            logger.warning(
                f"Site {candidate_id} uses {key} without holding its claim"
            )
            holders.append(
                (candidate_id, fresh, _conflict(tx, key, candidate_id, fresh))
            )

        if holders and takeover_mode is None:
            return {"success": False, "conflict": holders[0][2]}

        # --- writes ---
        for holder_id, holder, _ in holders:
            tx.update(SITES, holder_id, _takeover_changes(holder, key, takeover_mode))
        tx.update(SITES, site_id, {"status": "draft"})
        _acquire(tx, key, site_id, site["client_id"])

        result = {"success": True}
        if holders:
            result["taken_over"] = [holder_id for holder_id, _, _ in holders]
        return result

    result = store.run_transaction(txn)
    if result["success"]:
        logger.info(f"Site restored: {site_id}")
        for holder_id in result.get("taken_over", []):
            logger.info(
                f"Domain takeover ({takeover_mode}): site {holder_id} -> {site_id}"
            )
    else:
        conflict = result["conflict"]
        logger.info(
            f"Restore of {site_id} blocked: {conflict['domain']} held by "
            f"{conflict['site_id']}"
        )
    return result


def delete_site(store, site_id):
    """Delete a site and release its claim. Missing site is a no-op."""

    def txn(tx):
        site = tx.get(SITES, site_id)
        if site is None:
            return False
        key = effective_domain(site)
        claim = tx.get(CLAIMS, key) if key else None

        _release(tx, key, claim, site_id)
        tx.delete(SITES, site_id)
        return True

    if store.run_transaction(txn):
        logger.info(f"Site deleted: {site_id}")


# ──────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────

def _created_sort_key(site):
    created = site.get("created_at")
    return created.timestamp() if created is not None else 0


def get_site(store, site_id):
    site = store.get(SITES, site_id)
    if site is None:
        raise SiteNotFoundError(f"Site {site_id} not found.")
    return site


def list_sites(store, client_id=None, project_id=None):
    """Sites, newest first, optionally filtered by client and/or project."""
    if client_id:
        sites = store.query(SITES, "client_id", client_id)
    else:
        sites = store.list(SITES)
    if project_id:
        sites = [s for s in sites if s.get("project_id") == project_id]
    return sorted(sites, key=_created_sort_key, reverse=True)


def list_suspended_sites(store):
    return store.query(SITES, "service_status", "suspended")


def find_site_by_domain(store, value):
    """Resolve a requested hostname to a site for the edge status check.

    Uses the claim first; falls back to the site collection's `domain`
    field, preferring a non-archived match. Returns None when unknown.
    """
    key = normalize_domain(value)
    if key is None:
        return None

    claim = store.get(CLAIMS, key)
    if claim is not None:
        site = store.get(SITES, claim["site_id"])
        if site is not None and _is_active(site) and effective_domain(site) == key:
            return site

    matches = store.query(SITES, "domain", key)
    live = [s for s in matches if _is_active(s)]
    if live:
        return live[0]
    return matches[0] if matches else None


# ──────────────────────────────────────────────
# Billing read side
# ──────────────────────────────────────────────

def set_client_service_status(store, client_id, service_status):
    """Set service_status on every site of a client (billing freeze/thaw).

    Returns the number of sites updated.
    """
    if service_status not in Site.SERVICE_STATUSES:
        raise InvalidSiteError(
            f"Invalid service_status '{service_status}'. "
            f"Must be one of: {', '.join(Site.SERVICE_STATUSES)}"
        )
    site_ids = [s["id"] for s in store.query(SITES, "client_id", client_id)]

    def txn(tx):
        _require_client(tx, client_id)
        sites = [tx.get(SITES, sid) for sid in site_ids]

        changed = 0
        for site in sites:
            if site is None or site.get("service_status") == service_status:
                continue
            tx.update(SITES, site["id"], {
                "service_status": service_status,
                "suspended_at": _now() if service_status == "suspended" else None,
            })
            changed += 1
        return changed

    changed = store.run_transaction(txn)
    logger.info(
        f"Service status for client {client_id} set to {service_status} "
        f"on {changed} site(s)"
    )
    return changed


# ──────────────────────────────────────────────
# Claim repair
# ──────────────────────────────────────────────

def repair_domain_claims(store, dry_run=False):
    """Rebuild missing claims from the site collection.

    For every non-archived site with an effective domain:
    - no claim            -> create one (flagged repaired)
    - claim names site    -> fine
    - claim stale (owner archived / gone) -> reassign to this site
    - claim names another live site       -> reported, left alone

    Each site is checked in its own transaction. Returns a summary dict
    with counters, the conflicts found and human-readable log lines.
    """
    logs = []
    conflicts = []
    counts = {"created": 0, "reassigned": 0, "existed": 0}

    sites = store.list(SITES)
    logs.append(f"Found {len(sites)} sites.")

    for site in sites:
        site_id = site["id"]
        key = effective_domain(site)
        if key is None:
            logs.append(f"Skipping site {site_id} (no effective domain)")
            continue
        if not _is_active(site):
            logs.append(f"Skipping archived site {site_id}")
            continue

        def txn(tx, site_id=site_id, key=key):
            fresh = tx.get(SITES, site_id)
            if fresh is None or not _is_active(fresh) or effective_domain(fresh) != key:
                return "skipped", None
            claim = tx.get(CLAIMS, key)
            if claim is None:
                outcome = "created"
            elif claim.get("site_id") == site_id:
                return "existed", None
            else:
                owner = tx.get(SITES, claim.get("site_id"))
                if owner is not None and _is_active(owner):
                    return "conflict", claim.get("site_id")
                outcome = "reassigned"
            if not dry_run:
                _acquire(tx, key, site_id, fresh.get("client_id"), repaired=True)
            return outcome, None

        outcome, holder_id = store.run_transaction(txn)
        if outcome == "skipped":
            logs.append(f"Skipping site {site_id} (changed during repair)")
        elif outcome == "existed":
            counts["existed"] += 1
        elif outcome == "conflict":
            conflicts.append({"domain": key, "site_id": site_id, "claimed_by": holder_id})
            logs.append(
                f'CONFLICT: Domain "{key}" claimed by {holder_id}, '
                f"but site {site_id} also uses it."
            )
        else:
            counts[outcome] += 1
            verb = "Would repair" if dry_run else "Repaired"
            logs.append(f'{verb}: {outcome} claim for "{key}" -> {site_id}')

    summary = {
        "total_sites": len(sites),
        "claims_created": counts["created"],
        "claims_reassigned": counts["reassigned"],
        "claims_existed": counts["existed"],
        "conflicts_found": len(conflicts),
        "dry_run": dry_run,
    }
    logger.info(f"Domain claim repair finished: {summary}")
    return {"summary": summary, "conflicts": conflicts, "logs": logs}
