"""Domain claim model.

Secondary index: normalized domain -> the one non-archived site allowed to
use it. The site row is the source of truth; claims are maintained in the
same transaction as the site write that changes them.

No foreign key to sites: a claim may outlive its
owner (archived or deleted) and is then overwritable.
"""

from sitedesk.extensions import db


class DomainClaim(db.Model):
    __tablename__ = "domain_claims"

    domain = db.Column(db.String(255), primary_key=True)  # normalized key
    site_id = db.Column(db.String(36), nullable=False, index=True)
    client_id = db.Column(db.String(36), nullable=True)
    repaired = db.Column(
        db.Boolean, default=False, nullable=False
    )  # written by claim repair, not by a lifecycle operation

    version = db.Column(db.String(32), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<DomainClaim {self.domain} -> {self.site_id}>"
