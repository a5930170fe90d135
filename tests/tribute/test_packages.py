"""Tests for the token package catalogue and custom pricing."""
import pytest

from app.services.tribute import packages


class TestCatalogue:
    @pytest.mark.parametrize("currency", ["eur", "rub", "usd"])
    def test_four_packages_per_currency(self, currency):
        tokens = [p.tokens for p in packages.get_packages(currency)]
        assert tokens == [50, 120, 300, 800]

    def test_find_package(self):
        pkg = packages.find_package("rub_300", "rub")
        assert pkg.tokens == 300
        assert pkg.amount == 54000

    def test_find_package_wrong_currency(self):
        assert packages.find_package("rub_300", "eur") is None

    def test_to_dict_omits_missing_bonus(self):
        assert "bonus" not in packages.find_package("eur_50", "eur").to_dict()
        assert packages.find_package("eur_300", "eur").to_dict()["bonus"] == "+11%"

    def test_title_and_description(self):
        assert packages.package_title(120) == "120 AiVerse Tokens"
        assert packages.package_description(120) == "Purchase 120 tokens for AI image generation"


class TestCustomPrice:
    @pytest.mark.parametrize(
        "tokens, discount",
        [(50, 0.0), (99, 0.0), (100, 0.05), (299, 0.05), (300, 0.10), (10000, 0.10)],
    )
    def test_discount_tiers(self, tokens, discount):
        assert packages.discount_for_tokens(tokens) == discount

    def test_rub_price(self):
        assert packages.custom_price(50, "rub") == 10000
        assert packages.custom_price(100, "rub") == 19000

    def test_eur_price_rounds(self):
        # 75 * 2.2 = 165
        assert packages.custom_price(75, "eur") == 165
        # 1000 * 2.2 * 0.9 = 1980
        assert packages.custom_price(1000, "eur") == 1980
