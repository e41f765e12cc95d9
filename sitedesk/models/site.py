"""Site model.

A website the agency built or tracks for a client.

- type "managed": hosted by us; claims its `domain`.
- type "external": lives elsewhere; claims its `external_url`.

status is the lifecycle axis used by domain claims (only non-archived sites
may own a claim). service_status is the billing axis read by the edge
lookup. The two are independent.
"""

import uuid

from sitedesk.extensions import db


class Site(db.Model):
    __tablename__ = "sites"

    TYPES = ["external", "managed"]
    STATUSES = ["draft", "live", "paused", "archived"]
    SERVICE_STATUSES = ["active", "grace", "suspended"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id"), nullable=False, index=True
    )
    project_id = db.Column(db.String(36), nullable=True, index=True)
    type = db.Column(db.String(20), nullable=False)  # external | managed
    label = db.Column(db.String(255), nullable=True)
    status = db.Column(
        db.String(20), default="draft", nullable=False
    )  # draft | live | paused | archived

    domain = db.Column(
        db.String(255), nullable=True, index=True
    )  # normalized custom domain (managed)
    external_url = db.Column(
        db.String(500), nullable=True, index=True
    )  # as entered (external)
    preview_url = db.Column(db.String(500), nullable=True)
    live_url = db.Column(db.String(500), nullable=True)
    template_key = db.Column(db.String(100), nullable=True)
    template_version = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # --- Retainer / suspension (billing-driven) ---
    service_status = db.Column(
        db.String(20), default="active", nullable=False
    )  # active | grace | suspended
    suspended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Optimistic concurrency token, rewritten on every store write.
    version = db.Column(db.String(32), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    client = db.relationship("Client", back_populates="sites")

    def __repr__(self):
        return f"<Site {self.label or self.id} ({self.status})>"
