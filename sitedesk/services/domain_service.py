"""Domain service — canonical domain keys and the effective domain of a site.

- normalize_domain: free-form URL / domain -> comparison key used by claims.
- ensure_protocol: add https:// for links (display only, never compared).
- effective_domain: the one domain a site claims, chosen by its type.

Purely textual. No DNS, no syntax validation.
"""

import re

_PROTOCOL_RE = re.compile(r"^https?://")

# Which field carries the claimable domain for each site type.
DOMAIN_FIELDS = {
    "managed": "domain",
    "external": "external_url",
}


# ──────────────────────────────────────────────
# Normalization
# ──────────────────────────────────────────────

def normalize_domain(value):
    """Collapse a URL or bare domain to its claim key.

    "https://WWW.Example.com/" -> "example.com"

    Protocols are stripped repeatedly so pasted duplicates like
    "https://https://example.com" collapse too. The passes repeat until
    nothing changes, which keeps normalize(normalize(x)) == normalize(x)
    for inputs such as "www.www.example.com". Returns None when nothing is
    left.
    """
    if not value:
        return None

    domain = value.lower()
    while True:
        previous = domain
        domain = domain.strip()
        while _PROTOCOL_RE.match(domain):
            domain = _PROTOCOL_RE.sub("", domain, count=1)
        domain = domain.rstrip("/")
        if domain.startswith("www."):
            domain = domain[4:]
        if domain == previous:
            break

    return domain or None


def ensure_protocol(url):
    """Return url with an https:// prefix unless it already has a protocol."""
    if not url:
        return None
    url = url.strip()
    if not url:
        return None
    if url.startswith(("http://", "https://")):
        return url
    return f"https://{url}"


# ──────────────────────────────────────────────
# Effective domain
# ──────────────────────────────────────────────

def domain_field(site_type):
    """Name of the field a site of this type claims, or None."""
    return DOMAIN_FIELDS.get(site_type)


def effective_domain(site):
    """The normalized domain a site (or site-like dict) claims, or None.

    managed  -> normalize(domain)
    external -> normalize(external_url)

    Everything that needs "the site's domain" goes through here so both
    site types stay consistent.
    """
    field = domain_field(site.get("type"))
    if field is None:
        return None
    return normalize_domain(site.get(field))
