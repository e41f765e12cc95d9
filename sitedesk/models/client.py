"""Client model.

A business the agency works with, from lead through active retainer.
Sites only need the client for ownership and for the name shown in
domain conflict messages.
"""

import uuid

from sitedesk.extensions import db


class Client(db.Model):
    __tablename__ = "clients"

    STATUSES = [
        "lead",
        "active",
        "paused",
        "archived_lead",
        "migrated_lead",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    email_lower = db.Column(db.String(255), nullable=True, index=True)
    phone = db.Column(db.String(50), nullable=True)
    phone_normalized = db.Column(db.String(50), nullable=True, index=True)
    status = db.Column(db.String(30), default="lead", nullable=False)
    notes = db.Column(db.Text, nullable=True)

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
    sites = db.relationship("Site", back_populates="client", lazy="dynamic")

    def __repr__(self):
        return f"<Client {self.full_name} ({self.status})>"
