"""Tests for activity categorization."""

from decimal import Decimal

import pytest

from ranch_ledger.categorizer import Category, categorize
from ranch_ledger.config import load_category_rules
from ranch_ledger.models import ExternalActivity


def _activity(item=None, tipo="adicionar", amount=None):
    return ExternalActivity(author="x", type=tipo, item=item, amount=amount)


class TestCategoryRules:
    def test_rules_load_in_priority_order(self):
        names = [rule.name for rule in load_category_rules()]
        assert names[:3] == ["seeds", "animals", "feed"]

    def test_rules_are_cached(self):
        assert load_category_rules() is load_category_rules()


class TestCategorize:
    @pytest.mark.parametrize(
        ("item", "tipo", "expected"),
        [
            ("semente_milho", "adicionar", Category.SEEDS_IN),
            ("corn_seed", "remover", Category.SEEDS_OUT),
            ("ovelha_femea", "add", Category.ANIMALS_IN),
            ("Chicken", "remove", Category.ANIMALS_OUT),
            ("racao_animal", "adicionar", Category.FEED_IN),
            ("feed_bag", "remover", Category.FEED_OUT),
            ("caixa_madeira", "adicionar", Category.MANUFACTURED_IN),
            ("milho", "add", Category.PLANTS_IN),
            ("reed", "add", Category.PLANTS_IN),
            ("reed_bundle", "remover", Category.PLANTS_IN),
            ("leite", "adicionar", Category.ANIMAL_PRODUCTS_IN),
            ("wool", "remover", Category.ANIMAL_PRODUCTS_IN),
        ],
    )
    def test_keyword_rules(self, item, tipo, expected):
        assert categorize(_activity(item, tipo)) is expected

    def test_container_removal_still_manufactured_in(self):
        assert categorize(_activity("box_of_nails", "remove")) is Category.MANUFACTURED_IN

    def test_seed_wins_over_plant(self):
        # "semente_milho" contains both "semente" and "milho"
        assert categorize(_activity("semente_milho", "remover")) is Category.SEEDS_OUT

    def test_no_item_with_amount_is_financial(self):
        result = categorize(_activity(None, "deposito", Decimal("50")))
        assert result is Category.FINANCIAL
        assert not result.is_inventory_linked

    def test_unmatched_item_is_outros(self):
        result = categorize(_activity("pedra_rara", "adicionar", Decimal("3")))
        assert result is Category.OUTROS
        assert result.is_uncategorized

    def test_nothing_at_all_is_outros(self):
        assert categorize(_activity()) is Category.OUTROS

    def test_is_deterministic(self):
        activity = _activity("Vaca leiteira", "remover")
        assert {categorize(activity) for _ in range(5)} == {Category.ANIMALS_OUT}

    def test_inventory_linked_categories(self):
        assert Category.PLANTS_IN.is_inventory_linked
        assert not Category.OUTROS.is_inventory_linked
