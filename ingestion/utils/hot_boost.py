"""
Hot-boost rules: tenant-configured predicates that force a product into
the hot refresh tier.

Rules are stored as JSON on Tenant.hot_boost_rules, for example:

    [
        {"type": "seed"},
        {"type": "price_between", "min": 1000, "max": 3000},
        {"type": "tag_will_be", "tag": "usb-c"},
        {"type": "keyword_matches", "pattern": "magsafe|100w"},
    ]

Any matching rule boosts the product. Unknown rule types never match.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class HotBoostRules:
    """
    Hot-boost predicate built from a tenant's rule list.

    Args:
        rules: Rule dicts (see module docstring)
        seed_item_ids: Item ids matched by the "seed" rule
    """

    def __init__(self, rules: Optional[List[Dict[str, Any]]] = None, seed_item_ids: Iterable[str] = ()):
        self.rules = list(rules or [])
        self.seed_item_ids = {str(s) for s in seed_item_ids or ()}

    @classmethod
    def for_tenant(cls, tenant) -> "HotBoostRules":
        return cls(tenant.hot_boost_rules, tenant.seed_item_ids)

    def matches(
        self,
        item_id: str = "",
        price: Optional[float] = None,
        tags: Iterable[str] = (),
        text: str = "",
    ) -> bool:
        """True if any rule matches the product."""
        tags = set(tags or ())
        for rule in self.rules:
            rule_type = rule.get("type")

            if rule_type == "seed":
                if item_id and str(item_id) in self.seed_item_ids:
                    return True

            elif rule_type == "price_between":
                if price is None:
                    continue
                low = rule.get("min")
                high = rule.get("max")
                if (low is None or low <= price) and (high is None or price <= high):
                    return True

            elif rule_type == "tag_will_be":
                if rule.get("tag") in tags:
                    return True

            elif rule_type == "keyword_matches":
                try:
                    if re.search(rule.get("pattern", ""), text or "", re.IGNORECASE):
                        return True
                except re.error as e:
                    logger.warning(f"Invalid hot-boost pattern {rule.get('pattern')!r}: {e}")

        return False
