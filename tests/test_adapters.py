"""Tests for site adapters, the adapter registry and the supported-site table."""

from __future__ import annotations

import re
from decimal import Decimal
from unittest.mock import patch

import pytest

from src.config import Currency, ExtractionConfidence, ItemCategory, ItemCondition
import src.scraper as scraper_module
from src.scraper.adapters import (
    AdapterRegistry,
    BaseAdapter,
    GenericAdapter,
    InterencheresAdapter,
    SiteAdapter,
    lot_title_from_document_title,
)
from src.scraper.domain_config import (
    default_buyer_premium,
    detect_lot_page,
    get_domain_config,
    is_spa_site,
)

INTERENCHERES_LOT = "https://www.interencheres.com/meubles-objets-art/lot-678.html"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestParseCondition:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Comme neuf", ItemCondition.LIKE_NEW),
            ("Neuf sous blister", ItemCondition.NEW),
            ("Très bon état", ItemCondition.VERY_GOOD),
            ("Bon état général", ItemCondition.GOOD),
            ("Vendu pour pièces", ItemCondition.FOR_PARTS),
            ("HS", ItemCondition.FOR_PARTS),
            ("Voir photos", ItemCondition.UNKNOWN),
            (None, ItemCondition.UNKNOWN),
        ],
    )
    def test_keywords(self, text: str | None, expected: ItemCondition) -> None:
        assert BaseAdapter.parse_condition(text) == expected


class TestLotTitleFromDocumentTitle:
    def test_strips_site_and_lot_suffix(self) -> None:
        assert lot_title_from_document_title("iPhone 13 - Lot 42 | Interenchères") == "iPhone 13"

    def test_empty(self) -> None:
        assert lot_title_from_document_title(None) is None
        assert lot_title_from_document_title(" | Interenchères") is None


# ---------------------------------------------------------------------------
# Generic adapter
# ---------------------------------------------------------------------------


class TestGenericAdapter:
    @pytest.mark.asyncio
    async def test_extracts_title_and_price(self, fake_page) -> None:
        page = fake_page(selectors={
            "h1": "Vintage Omega Seamaster",
            '[class*="price"]': "$1,250.00",
        })
        data = await GenericAdapter(page).extract_data()

        assert data is not None
        assert data.title == "Vintage Omega Seamaster"
        assert data.current_bid == Decimal("1250.00")
        assert data.currency == Currency.USD
        assert data.locale == "en"
        assert data.total_price == Decimal("1500.00")
        assert data.site_domain == "www.example-auction.com"
        assert data.extraction_confidence == ExtractionConfidence.LOW

    @pytest.mark.asyncio
    async def test_locale_from_html_lang(self, fake_page) -> None:
        page = fake_page(
            selectors={"h1": "Commode Louis XV", '[class*="price"]': "800 €"},
            attributes={"html": {"lang": "fr-FR"}},
        )
        data = await GenericAdapter(page).extract_data()
        assert data.locale == "fr"
        assert data.currency == Currency.EUR

    @pytest.mark.asyncio
    async def test_locale_from_tld(self, fake_page) -> None:
        page = fake_page(
            url="https://www.auktion-beispiel.de/lot/7",
            selectors={"h1": "Leica M6", '[class*="price"]': "1.200,00 €"},
        )
        data = await GenericAdapter(page).extract_data()
        assert data.locale == "de"
        assert data.current_bid == Decimal("1200.00")

    @pytest.mark.asyncio
    async def test_not_a_lot_page(self, fake_page) -> None:
        page = fake_page(url="https://www.example-auction.com/about", selectors={"h1": "About us"})
        assert await GenericAdapter(page).extract_data() is None

    @pytest.mark.asyncio
    async def test_no_price_returns_none(self, fake_page) -> None:
        page = fake_page(selectors={"h1": "Vintage Omega Seamaster"})
        assert await GenericAdapter(page).extract_data() is None

    def test_satisfies_protocol(self, fake_page) -> None:
        assert isinstance(GenericAdapter(fake_page()), SiteAdapter)

    def test_default_mutation_config(self, fake_page) -> None:
        with patch.object(scraper_module.settings, "LIVE_UPDATE_DEBOUNCE_MS", 250):
            config = GenericAdapter(fake_page()).get_mutation_config()
        assert config.debounce_ms == 250
        assert config.target_selector == "body"


# ---------------------------------------------------------------------------
# Interencheres adapter
# ---------------------------------------------------------------------------


class TestInterencheresAdapter:
    @pytest.mark.asyncio
    async def test_full_lot(self, fake_page) -> None:
        page = fake_page(
            url=INTERENCHERES_LOT,
            selectors={
                "h1": "Apple iPhone 13 Pro 256 Go",
                '[class*="price"]': "450 €",
                '[class*="condition"], [class*="etat"]': "Très bon état",
            },
        )
        data = await InterencheresAdapter(page).extract_data()

        assert data.title == "Apple iPhone 13 Pro 256 Go"
        assert data.current_bid == Decimal("450")
        assert data.total_price == Decimal("562.50")
        assert data.brand == "Apple"
        assert data.category == ItemCategory.PRODUCT
        assert data.condition == ItemCondition.VERY_GOOD
        assert data.lot_id == "678"
        assert data.extraction_confidence == ExtractionConfidence.MEDIUM

    @pytest.mark.asyncio
    async def test_vehicle_category(self, fake_page) -> None:
        page = fake_page(
            url=INTERENCHERES_LOT,
            selectors={"h1": "Peugeot 208 1.2 PureTech 2019", '[class*="price"]': "6 500 €"},
        )
        data = await InterencheresAdapter(page).extract_data()
        assert data.category == ItemCategory.VEHICLE
        assert data.current_bid == Decimal("6500")

    @pytest.mark.asyncio
    async def test_price_next_to_label(self, fake_page) -> None:
        page = fake_page(
            url=INTERENCHERES_LOT,
            selectors={"h1": "Montre Rolex Datejust"},
            body="Lot 12\nEnchère actuelle : 1 200 €\nEstimation : 1 500 - 2 000 €",
        )
        data = await InterencheresAdapter(page).extract_data()
        assert data.current_bid == Decimal("1200")

    @pytest.mark.asyncio
    async def test_price_from_body_amounts(self, fake_page) -> None:
        """Without a label, the second-largest amount is taken."""
        page = fake_page(
            url=INTERENCHERES_LOT,
            selectors={"h1": "Montre Rolex Datejust"},
            body="Départ 50 €, puis 200 €, record 900 €, frais 5 €",
        )
        data = await InterencheresAdapter(page).extract_data()
        assert data.current_bid == Decimal("200")

    @pytest.mark.asyncio
    async def test_price_from_itemprop(self, fake_page) -> None:
        page = fake_page(
            url=INTERENCHERES_LOT,
            selectors={"h1": "Montre Rolex Datejust"},
            attributes={'[itemprop="price"]': {"content": "349.90"}},
        )
        data = await InterencheresAdapter(page).extract_data()
        assert data.current_bid == Decimal("349.90")

    @pytest.mark.asyncio
    async def test_price_from_json_ld(self, fake_page) -> None:
        page = fake_page(
            url=INTERENCHERES_LOT,
            selectors={
                "h1": "Montre Rolex Datejust",
                'script[type="application/ld+json"]': [
                    "not json",
                    '{"@type": "Product", "offers": {"price": "1299.00"}}',
                ],
            },
        )
        data = await InterencheresAdapter(page).extract_data()
        assert data.current_bid == Decimal("1299.00")

    @pytest.mark.asyncio
    async def test_title_without_price_gives_zero_bid(self, fake_page) -> None:
        page = fake_page(url=INTERENCHERES_LOT, selectors={"h1": "Montre Rolex Datejust"})
        data = await InterencheresAdapter(page).extract_data()
        assert data.current_bid == Decimal("0")
        assert data.total_price == Decimal("0.00")
        assert not data.has_price

    @pytest.mark.asyncio
    async def test_document_title_fallback(self, fake_page) -> None:
        page = fake_page(
            url=INTERENCHERES_LOT,
            title="Montre Rolex Datejust - Lot 42 | Interenchères",
            selectors={"h1": "Lot", '[class*="price"]': "3 000 €"},
        )
        data = await InterencheresAdapter(page).extract_data()
        assert data.title == "Montre Rolex Datejust"
        assert data.brand == "Rolex"

    @pytest.mark.asyncio
    async def test_no_title(self, fake_page) -> None:
        page = fake_page(url=INTERENCHERES_LOT)
        assert await InterencheresAdapter(page).extract_data() is None

    def test_lot_page_detection(self, fake_page) -> None:
        assert InterencheresAdapter(fake_page(url=INTERENCHERES_LOT)).is_lot_page()
        assert not InterencheresAdapter(fake_page(url="https://www.interencheres.com/")).is_lot_page()

    def test_mutation_config(self, fake_page) -> None:
        assert InterencheresAdapter(fake_page()).get_mutation_config().debounce_ms == 800


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestAdapterRegistry:
    def test_dedicated_adapter_first(self) -> None:
        registry = AdapterRegistry()
        assert registry.get_adapter_class(INTERENCHERES_LOT) is InterencheresAdapter
        assert registry.get_adapter_class("https://www.drouot.com/lot/1") is GenericAdapter
        assert registry.adapter_ids == ["interencheres", "generic"]

    def test_without_generic(self) -> None:
        registry = AdapterRegistry([InterencheresAdapter])
        assert registry.get_adapter_class("https://www.drouot.com/lot/1") is None

    def test_get_adapter_binds_page(self, fake_page) -> None:
        page = fake_page(url=INTERENCHERES_LOT)
        adapter = AdapterRegistry().get_adapter(page)
        assert isinstance(adapter, InterencheresAdapter)
        assert adapter.page is page

    def test_register_custom_adapter(self) -> None:
        class DrouotAdapter(GenericAdapter):
            id = "drouot"
            url_patterns = [re.compile(r"drouot\.com")]

        registry = AdapterRegistry()
        registry.register(DrouotAdapter)
        assert registry.get_adapter_class("https://www.drouot.com/lot/1") is DrouotAdapter


# ---------------------------------------------------------------------------
# Supported sites
# ---------------------------------------------------------------------------


class TestDomainConfig:
    def test_lookup(self) -> None:
        assert get_domain_config("www.interencheres.com").id == "interencheres"
        assert get_domain_config("www.encheres-domaine.gouv.fr").id == "encheres-domaine"
        assert get_domain_config("www.drouot.com") is None

    def test_buyer_premium(self) -> None:
        assert default_buyer_premium("www.auctelia.com") == Decimal("0.18")
        assert default_buyer_premium("www.alcopa-auction.fr") == Decimal("0")
        assert default_buyer_premium("www.drouot.com") == Decimal("0.20")

    def test_spa_sites(self) -> None:
        assert is_spa_site("www.auctelia.be")
        assert not is_spa_site("www.interencheres.com")

    def test_detect_lot_page(self) -> None:
        info = detect_lot_page("https://www.moniteurdesventes.com/fr/l/123-montre")
        assert info.is_lot_page is True
        assert info.config_id == "moniteur-des-ventes"
        assert info.buyer_premium == Decimal("0.20")
        assert info.pathname == "/fr/l/123-montre"

    def test_detect_vehicle_lot_page(self) -> None:
        info = detect_lot_page("https://www.alcopa-auction.fr/voiture-occasion/paris/renault-clio-12345")
        assert info.is_lot_page is True

    def test_known_site_non_lot_page(self) -> None:
        info = detect_lot_page("https://www.interencheres.com/")
        assert info.is_lot_page is False
        assert info.config_id == "interencheres"

    def test_unknown_site(self) -> None:
        info = detect_lot_page("https://www.drouot.com/lot/1")
        assert info.is_lot_page is False
        assert info.config_id is None
        assert info.domain == "www.drouot.com"
