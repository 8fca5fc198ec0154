"""
Title-based product spec extraction and tenant tag rules.

extract_specs pulls a handful of numeric specs out of free text:
- capacity_mah: "20000mAh"
- capacity_wh: "512Wh"
- output_w: "65W" or "PD 100W"
- weight_g: "180g"
- usb_c: "USB-C" / "Type-C"

Tag rules are stored on Tenant.tag_rules:

    [{"tag": "fast-charge", "any": [{"type": "title_matches", "pattern": "PD|急速"}]}]

Condition types: title_matches, feature_matches, material_matches,
price_lte, tag_will_be (a tag assigned by an earlier rule), all, any.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

CAPACITY_MAH_PATTERN = re.compile(r"(\d{4,6})\s*mAh", re.IGNORECASE)
CAPACITY_WH_PATTERN = re.compile(r"(\d{3,4})\s*Wh", re.IGNORECASE)
OUTPUT_W_PATTERN = re.compile(r"(\d{2,4})\s*W(?!h)", re.IGNORECASE)
PD_OUTPUT_W_PATTERN = re.compile(r"PD\s*([1-9]\d{1,3})\s*W", re.IGNORECASE)
WEIGHT_G_PATTERN = re.compile(r"(?<![\d.])(\d{2,4})\s*g\b", re.IGNORECASE)
USB_C_PATTERN = re.compile(r"USB[\s-]?C|Type[\s-]?C", re.IGNORECASE)


def extract_specs(title: str, features: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """
    Extract numeric specs from a title and feature bullets.

    Args:
        title: Product title
        features: Optional feature bullet strings

    Returns:
        Dict with any of capacity_mah, capacity_wh, output_w, weight_g, usb_c
    """
    text = " ".join([title or ""] + list(features or []))
    specs: Dict[str, Any] = {}

    match = CAPACITY_MAH_PATTERN.search(text)
    if match:
        specs["capacity_mah"] = int(match.group(1))

    match = CAPACITY_WH_PATTERN.search(text)
    if match:
        specs["capacity_wh"] = int(match.group(1))

    match = OUTPUT_W_PATTERN.search(text) or PD_OUTPUT_W_PATTERN.search(text)
    if match:
        specs["output_w"] = int(match.group(1))

    match = WEIGHT_G_PATTERN.search(text)
    if match:
        specs["weight_g"] = int(match.group(1))

    if USB_C_PATTERN.search(text):
        specs["usb_c"] = True

    return specs


def _search(pattern: str, text: str) -> bool:
    try:
        return re.search(pattern or "", text or "", re.IGNORECASE) is not None
    except re.error as e:
        logger.warning(f"Invalid tag rule pattern {pattern!r}: {e}")
        return False


def _evaluate(condition: Dict[str, Any], context: Dict[str, Any], assigned: set) -> bool:
    cond_type = condition.get("type")

    if cond_type == "title_matches":
        return _search(condition.get("pattern"), context["title"])
    if cond_type == "feature_matches":
        return _search(condition.get("pattern"), context["features"])
    if cond_type == "material_matches":
        return _search(condition.get("pattern"), context["material"])
    if cond_type == "price_lte":
        price = context["price"]
        value = condition.get("value")
        return price is not None and value is not None and price <= value
    if cond_type == "tag_will_be":
        return condition.get("tag") in assigned
    if cond_type == "all":
        nested = condition.get("all") or []
        return bool(nested) and all(_evaluate(c, context, assigned) for c in nested)
    if cond_type in ("any", "or"):
        nested = condition.get("any") or []
        return any(_evaluate(c, context, assigned) for c in nested)

    return False


def apply_tag_rules(
    rules: List[Dict[str, Any]],
    title: str = "",
    features: Iterable[str] = (),
    material: str = "",
    price: Optional[int] = None,
) -> List[str]:
    """
    Evaluate tenant tag rules in order.

    A rule assigns its tag when any of its conditions holds. Rules can refer
    to tags assigned by earlier rules via tag_will_be.

    Returns:
        Assigned tags in rule order
    """
    context = {
        "title": title or "",
        "features": " / ".join(features or ()),
        "material": material or "",
        "price": price,
    }
    assigned: List[str] = []
    assigned_set: set = set()

    for rule in rules or []:
        tag = rule.get("tag")
        if not tag or tag in assigned_set:
            continue
        if any(_evaluate(c, context, assigned_set) for c in rule.get("any") or []):
            assigned.append(tag)
            assigned_set.add(tag)

    return assigned
