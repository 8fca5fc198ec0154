"""
Dedupe key computation for incoming catalog records.

Identity keys in strict priority order (first match wins):
1. Vendor item id            -> "id:<value>"
2. Barcode (JAN, EAN, UPC)   -> "barcode:<value>"
3. Manufacturer model number -> "model:<value>"
4. Model-like token in title -> "model:<token>"
5. Primary image basename    -> "img:<basename>"
6. Normalized title          -> "title:<text>"

Stronger identifiers come first so they prevent false merges; the title
fallback accepts some false-merge risk to stop duplicates multiplying.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from ingestion.catalog.types import CatalogRecord

logger = logging.getLogger(__name__)

# Upper-cased alphanumeric runs that look like model numbers
MODEL_TOKEN_PATTERN = re.compile(r"[A-Z0-9-]{4,}")

# Generic connector/protocol tokens that are never model numbers
MODEL_TOKEN_STOPLIST = frozenset([
    "USB", "USBC", "USB-C", "TYPEC", "TYPE-C", "PD", "QC", "LED",
    "HDMI", "WIFI", "WI-FI", "5G", "4K", "8K", "1080P", "2160P",
])

MAX_TITLE_KEY_LENGTH = 120


@dataclass(frozen=True)
class DedupeKey:
    """A dedupe key and the rule that produced it."""

    key: str
    reason: str


def normalize_title(title: str) -> str:
    """Lowercase, collapse whitespace, truncate to 120 characters."""
    collapsed = re.sub(r"\s+", " ", (title or "").lower()).strip()
    return collapsed[:MAX_TITLE_KEY_LENGTH]


def model_token_from_title(title: str) -> Optional[str]:
    """
    First model-like token of the upper-cased title.

    Tokens on the stoplist, and purely punctuation tokens, are ignored.
    """
    for token in MODEL_TOKEN_PATTERN.findall((title or "").upper()):
        stripped = token.strip("-")
        if len(stripped) < 4 or token in MODEL_TOKEN_STOPLIST or stripped in MODEL_TOKEN_STOPLIST:
            continue
        return token
    return None


def image_basename(url: str) -> Optional[str]:
    """Filename part of an image URL, ignoring query string and fragment."""
    if not url or not url.strip():
        return None
    try:
        path = urlsplit(url.strip()).path
    except ValueError:
        path = url.split("?")[0].split("#")[0]
    basename = path.rstrip("/").rsplit("/", 1)[-1]
    return basename or None


def build_dedupe_key(record: CatalogRecord) -> DedupeKey:
    """
    Compute the dedupe key of a record. Pure and deterministic.

    Args:
        record: Incoming catalog record

    Returns:
        DedupeKey with the key string and the rule name
    """
    item_id = (record.item_id or "").strip()
    if item_id:
        return DedupeKey(f"id:{item_id}", "id")

    barcode = record.barcode
    if barcode:
        return DedupeKey(f"barcode:{barcode}", "barcode")

    model_number = (record.model_number or "").strip()
    if model_number:
        return DedupeKey(f"model:{model_number}", "model_number")

    token = model_token_from_title(record.title)
    if token:
        return DedupeKey(f"model:{token}", "title_model")

    basename = image_basename(record.image_url)
    if basename:
        return DedupeKey(f"img:{basename}", "image")

    return DedupeKey(f"title:{normalize_title(record.title)}", "title")


def compute_dedupe_key(record: CatalogRecord) -> str:
    """Key string only; see build_dedupe_key."""
    return build_dedupe_key(record).key
