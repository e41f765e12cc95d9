# Models package — import all models here so Alembic can discover them.

from sitedesk.models.user import User  # noqa: F401
from sitedesk.models.client import Client  # noqa: F401
from sitedesk.models.site import Site  # noqa: F401
from sitedesk.models.domain_claim import DomainClaim  # noqa: F401
from sitedesk.models.audit import AuditEvent  # noqa: F401
