"""Map feed activity to ledger categories.

This is the single place where item-name heuristics live. The keyword table
comes from ``config/categories.yaml``; the function itself is pure.
"""

from enum import Enum

from ranch_ledger.config.categories import load_category_rules
from ranch_ledger.models import ActivityType, ExternalActivity


class Category(str, Enum):
    """Ledger categories. ``OUTROS`` is the catch-all."""

    SEEDS_IN = "seeds_in"
    SEEDS_OUT = "seeds_out"
    ANIMALS_IN = "animals_in"
    ANIMALS_OUT = "animals_out"
    FEED_IN = "feed_in"
    FEED_OUT = "feed_out"
    MANUFACTURED_IN = "manufactured_in"
    PLANTS_IN = "plants_in"
    ANIMAL_PRODUCTS_IN = "animal_products_in"
    FINANCIAL = "financial"
    OUTROS = "outros"

    @property
    def is_inventory_linked(self) -> bool:
        return self not in (Category.FINANCIAL, Category.OUTROS)

    @property
    def is_uncategorized(self) -> bool:
        return self is Category.OUTROS


def categorize(activity: ExternalActivity) -> Category:
    """Return the ledger category for a feed activity.

    Never raises: anything that matches no rule is ``Category.OUTROS``.
    """
    if activity.item:
        removal = activity.type is ActivityType.REMOVE
        for rule in load_category_rules():
            if rule.matches(activity.item):
                return Category(rule.category_for(removal))
        return Category.OUTROS

    if activity.amount is not None:
        return Category.FINANCIAL

    return Category.OUTROS
