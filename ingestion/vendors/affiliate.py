"""
Affiliate link construction.
"""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# Extra parameters the vendor expects on tagged product links
AFFILIATE_PARAMS = {"linkCode": "ogi", "th": "1", "psc": "1"}


def build_affiliate_url(base_url: str, tag: str = "") -> str:
    """
    Add the tenant's affiliate tag to a product URL.

    Existing query parameters are kept; an existing tag is replaced.
    Without a tag the URL is returned unchanged.

    Args:
        base_url: Vendor product page URL
        tag: Affiliate/partner tag

    Returns:
        Tagged URL
    """
    if not base_url or not tag:
        return base_url or ""

    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "tag"]
    query.append(("tag", tag))
    existing = {k for k, _ in query}
    query.extend((k, v) for k, v in AFFILIATE_PARAMS.items() if k not in existing)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
