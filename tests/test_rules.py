"""
Criterion scorer tests.

Tests validate:
- Partial-credit defaults when requirements or profile data are absent
- Location exact / regional / global matching
- Certification tiers and both certificate shapes
- Industry text, catalog verification and preferred-category bonus
- Capacity tiers and volume parsing
- Packaging and allergen catalog checks with lookup failures
- Additional requirement themes
- Engine fallback when a criterion raises
"""

import asyncio

import pytest

from mfgmatch.pipelines.ingest import CatalogRow, CategoryKind
from mfgmatch.rules import (
    MAX_SCORES,
    CandidateCatalog,
    Criterion,
    CriterionEngine,
    catalog_matches_product,
    preferred_category_matches,
    score_additional,
    score_allergens,
    score_capacity,
    score_certifications,
    score_industry,
    score_location,
    score_packaging,
)

from factories import FakeCatalog, bare_candidate, make_candidate, make_requirements


def rows_for(catalog: FakeCatalog, candidate):
    return CandidateCatalog(catalog, candidate)


# ============================================================================
# Location
# ============================================================================

class TestLocation:

    def test_no_location_is_half_credit(self):
        result = score_location(make_requirements(), make_candidate(address="Osaka, Japan"))
        assert result.score == 7
        assert result.max_score == 15

    def test_global_is_full_credit_without_address(self):
        result = score_location(make_requirements(locations=["Global"]), bare_candidate())
        assert result.score == 15

    def test_global_mixed_with_countries(self):
        result = score_location(
            make_requirements(locations=["Germany", "GLOBAL"]),
            make_candidate(address="Lima, Peru"),
        )
        assert result.score == 15

    def test_missing_address(self):
        result = score_location(make_requirements(locations=["Japan"]), bare_candidate())
        assert result.score == 0

    def test_exact_match_partial(self):
        result = score_location(
            make_requirements(locations=["Japan", "Korea"]),
            make_candidate(address="Chiba, JAPAN"),
        )
        assert result.score == 8  # round(15 * 1/2), half up
        assert "japan" in result.explanation

    def test_regional_match(self):
        result = score_location(
            make_requirements(locations=["Asia"]),
            make_candidate(address="Bangkok, Thailand"),
        )
        assert result.score == 11

    def test_regional_partial(self):
        result = score_location(
            make_requirements(locations=["Europe", "Africa"]),
            make_candidate(address="Lyon, France"),
        )
        assert result.score == 6  # round(11 * 1/2), half up

    def test_exact_match_wins_over_regional(self):
        result = score_location(
            make_requirements(locations=["Japan", "Europe"]),
            make_candidate(address="Tokyo, Japan"),
        )
        assert result.score == 8

    def test_no_match(self):
        result = score_location(
            make_requirements(locations=["Oceania"]),
            make_candidate(address="Nairobi, Kenya"),
        )
        assert result.score == 0


# ============================================================================
# Certifications
# ============================================================================

class TestCertifications:

    def test_none_required(self):
        assert score_certifications(make_requirements(), bare_candidate()).score == 10

    def test_half_matched_scores_fifteen(self):
        result = score_certifications(
            make_requirements(certifications=["ISO 9001", "Organic"]),
            make_candidate(certificates=["ISO 9001"]),
        )
        assert result.score == 15
        assert "1/2" in result.explanation

    def test_all_matched(self):
        result = score_certifications(
            make_requirements(certifications=["HACCP"]),
            make_candidate(certificates=["haccp"]),
        )
        assert result.score == 20

    def test_partial_below_half(self):
        result = score_certifications(
            make_requirements(certifications=["HACCP", "BRC", "Kosher"]),
            make_candidate(certificates=["BRC Global Standard"]),
        )
        assert result.score == 10

    def test_settings_certifications_merged(self):
        result = score_certifications(
            make_requirements(certifications=["ISO 22000", "Halal"]),
            make_candidate(certificates=["ISO 22000:2018"], certifications=["Halal"]),
        )
        assert result.score == 20

    def test_bidirectional_substring(self):
        result = score_certifications(
            make_requirements(certifications=["ISO 9001:2015"]),
            make_candidate(certificates=["iso 9001"]),
        )
        assert result.score == 20

    def test_candidate_without_certificates(self):
        result = score_certifications(
            make_requirements(certifications=["HACCP"]),
            make_candidate(certificates=["  "]),
        )
        assert result.score == 0

    def test_no_overlap(self):
        result = score_certifications(
            make_requirements(certifications=["Kosher"]),
            make_candidate(certificates=["Halal"]),
        )
        assert result.score == 0


# ============================================================================
# Industry / product category
# ============================================================================

class TestIndustry:

    async def test_no_product_selected(self, catalog):
        candidate = make_candidate(industry="Sauces")
        result = await score_industry(make_requirements(), candidate, rows_for(catalog, candidate))
        assert result.score == 0
        assert catalog.owner_calls == []

    async def test_direct_industry_match(self, catalog):
        candidate = make_candidate(industry="Soy Sauce Production")
        result = await score_industry(
            make_requirements(product="Soy Sauce"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 20

    async def test_related_category(self, catalog):
        candidate = make_candidate(industry="Condiment manufacturing")
        result = await score_industry(
            make_requirements(product="BBQ Marinade"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 15
        assert "sauce" in result.explanation

    async def test_general_food_fallback(self, catalog):
        candidate = make_candidate(industry="Food processing")
        result = await score_industry(
            make_requirements(product="Frozen Dumplings", kind=CategoryKind.CATEGORY),
            candidate,
            rows_for(catalog, candidate),
        )
        assert result.score == 10

    async def test_general_food_requires_category_kind(self, catalog):
        candidate = make_candidate(industry="Food processing")
        result = await score_industry(
            make_requirements(product="Frozen Dumplings", kind=CategoryKind.PRODUCT),
            candidate,
            rows_for(catalog, candidate),
        )
        assert result.score == 0

    async def test_catalog_match_raises_floor(self):
        candidate = make_candidate(1, industry="Packaging")
        catalog = FakeCatalog(by_owner={1: [CatalogRow(category="Soy Sauce")]})
        result = await score_industry(
            make_requirements(product="Soy Sauce"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 20
        assert "Product catalog match" in result.explanation

    async def test_catalog_floor_is_not_additive(self):
        candidate = make_candidate(1, industry="Soy Sauce")
        catalog = FakeCatalog(by_owner={1: [CatalogRow(category="soy sauce")]})
        result = await score_industry(
            make_requirements(product="Soy Sauce"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 20

    async def test_catalog_synonym_match(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [CatalogRow(food_type="Salad Dressing")]})
        result = await score_industry(
            make_requirements(product="Sesame Sauce"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 20

    async def test_catalog_falls_back_to_company_name(self):
        candidate = make_candidate(9, company_name="Kikko Foods")
        catalog = FakeCatalog(by_name={"Kikko Foods Co., Ltd.": [CatalogRow(category="Miso")]})
        result = await score_industry(
            make_requirements(product="White Miso"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 20
        assert catalog.owner_calls == [9]
        assert catalog.name_calls == ["Kikko Foods"]

    async def test_preferred_category_bonus_capped(self):
        candidate = make_candidate(1, industry="Sauce", preferred_categories=["Sauce"])
        catalog = FakeCatalog(by_owner={1: [CatalogRow(category="Sauce")]})
        result = await score_industry(
            make_requirements(product="Chili Sauce"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 25

    async def test_preferred_category_bonus_alone(self, catalog):
        candidate = make_candidate(1, preferred_categories=["Beverage"])
        result = await score_industry(
            make_requirements(product="Green Tea"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 5

    async def test_catalog_failure_keeps_other_sources(self):
        candidate = make_candidate(1, industry="Soy Sauce", preferred_categories=["sauce"])
        catalog = FakeCatalog(failing={1})
        result = await score_industry(
            make_requirements(product="Soy Sauce"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 25
        assert "Product catalog unavailable" in result.explanation

    def test_catalog_matches_product_helpers(self):
        assert catalog_matches_product("soy sauce", [CatalogRow(category="SoySauce")])
        assert not catalog_matches_product("miso", [CatalogRow(category="Juice")])
        assert not catalog_matches_product("miso", [CatalogRow()])

    def test_preferred_category_both_directions(self):
        assert preferred_category_matches("dairy", "greek yogurt")
        assert preferred_category_matches("cheese", "dairy blend")
        assert not preferred_category_matches("bakery", "cold brew")


# ============================================================================
# Capacity
# ============================================================================

class TestCapacity:

    def test_volume_absent(self):
        assert score_capacity(make_requirements(), bare_candidate()).score == 7

    def test_capacity_undeclared(self):
        assert score_capacity(make_requirements(volume="500"), bare_candidate()).score == 6

    def test_range_upper_bound_full_capacity(self):
        result = score_capacity(
            make_requirements(volume="50k-100k"),
            make_candidate(production_capacity=120_000),
        )
        assert result.score == 15
        assert "100000" in result.explanation

    @pytest.mark.parametrize(
        "capacity, expected",
        [
            (100_000, 15),
            (85_000, 12),
            (60_000, 9),
            (45_000, 6),
            (1_000, 3),
            (0, 0),
        ],
    )
    def test_tiers(self, capacity, expected):
        result = score_capacity(
            make_requirements(volume="100k"),
            make_candidate(production_capacity=capacity),
        )
        assert result.score == expected

    def test_unparseable_volume_counts_as_zero(self):
        result = score_capacity(
            make_requirements(volume="TBD"),
            make_candidate(production_capacity=10),
        )
        assert result.score == 15


# ============================================================================
# Packaging
# ============================================================================

class TestPackaging:

    async def test_no_requirement(self, catalog):
        candidate = make_candidate(1)
        result = await score_packaging(make_requirements(), candidate, rows_for(catalog, candidate))
        assert result.score == 4

    async def test_canonical_bucket_match(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [CatalogRow(packaging_type="Glass Bottle")]})
        result = await score_packaging(
            make_requirements(packaging=["bottle"]), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 10

    async def test_partial_match_has_floor(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [CatalogRow(packaging_type="Carton")]})
        result = await score_packaging(
            make_requirements(packaging=["box", "jar", "sachet", "tray"]),
            candidate,
            rows_for(catalog, candidate),
        )
        assert result.score == 6  # max(6, round(10 * 1/4))

    async def test_raw_substring_fallback(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [CatalogRow(packaging_type="Vacuum wrap film")]})
        result = await score_packaging(
            make_requirements(packaging=["vacuum wrap"]), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 10

    async def test_no_match(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [CatalogRow(packaging_type="Pouch")]})
        result = await score_packaging(
            make_requirements(packaging=["can"]), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 0

    async def test_no_catalog_data(self, catalog):
        candidate = make_candidate(1)
        result = await score_packaging(
            make_requirements(packaging=["bottle"]), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 4
        assert result.explanation == "No product data available"

    async def test_rows_without_packaging_types_do_not_match(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [CatalogRow(category="sauce", allergens=("soy",))]})
        result = await score_packaging(
            make_requirements(packaging=["bottle"]), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 0
        assert result.explanation == "No packaging match"

    async def test_catalog_failure(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(failing={1})
        result = await score_packaging(
            make_requirements(packaging=["bottle"]), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 4


# ============================================================================
# Allergens
# ============================================================================

class TestAllergens:

    async def test_no_requirement(self, catalog):
        candidate = make_candidate(1)
        result = await score_allergens(make_requirements(), candidate, rows_for(catalog, candidate))
        assert result.score == 4

    async def test_peanut_free_against_soy_and_gluten(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [CatalogRow(allergens=("soy", "gluten"))]})
        result = await score_allergens(
            make_requirements(allergens=["Peanut Free"]), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 0

    async def test_union_across_rows(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [
            CatalogRow(allergens=("Soy",)),
            CatalogRow(allergens=("gluten", "sesame")),
        ]})
        result = await score_allergens(
            make_requirements(allergens=["soy free", "Gluten-Free", "peanut"]),
            candidate,
            rows_for(catalog, candidate),
        )
        assert result.score == 7  # round(10 * 2/3)

    async def test_no_rows(self, catalog):
        candidate = make_candidate(1)
        result = await score_allergens(
            make_requirements(allergens=["peanut"]), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 4

    async def test_catalog_timeout(self):
        class SlowCatalog(FakeCatalog):
            async def find_by_owner(self, owner_id):
                await asyncio.sleep(1)
                return []

        candidate = make_candidate(1)
        result = await score_allergens(
            make_requirements(allergens=["peanut"]),
            candidate,
            CandidateCatalog(SlowCatalog(), candidate, timeout=0.01),
        )
        assert result.score == 4


# ============================================================================
# Additional requirements
# ============================================================================

class TestAdditional:

    async def test_blank_text(self, catalog):
        candidate = make_candidate(1)
        result = await score_additional(
            make_requirements(additional="   "), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 3

    async def test_theme_matches(self, catalog):
        candidate = make_candidate(
            1,
            description="Sustainable plant with premium quality inspection",
            industry="Organic sauces",
        )
        result = await score_additional(
            make_requirements(additional="We need organic, premium product with custom label"),
            candidate,
            rows_for(catalog, candidate),
        )
        assert result.score == 2  # sustainability + quality
        assert "sustainability" in result.explanation

    async def test_no_theme_with_catalog(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(by_owner={1: [CatalogRow(category="Miso")]})
        result = await score_additional(
            make_requirements(additional="Halal only"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 2

    async def test_no_theme_without_catalog(self, catalog):
        candidate = make_candidate(1)
        result = await score_additional(
            make_requirements(additional="Halal only"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 1

    async def test_catalog_failure(self):
        candidate = make_candidate(1)
        catalog = FakeCatalog(failing={1})
        result = await score_additional(
            make_requirements(additional="Halal only"), candidate, rows_for(catalog, candidate)
        )
        assert result.score == 2


# ============================================================================
# Engine
# ============================================================================

class TestCriterionEngine:

    async def test_all_criteria_present_in_order(self, catalog):
        engine = CriterionEngine(catalog)
        scores = await engine.evaluate(make_requirements(), bare_candidate())
        assert [s.criterion for s in scores] == list(Criterion)
        for s in scores:
            assert 0 <= s.score <= MAX_SCORES[s.criterion]

    async def test_catalog_fetched_once_per_candidate(self):
        catalog = FakeCatalog(by_owner={1: [CatalogRow(category="Sauce", packaging_type="Jar")]})
        engine = CriterionEngine(catalog)
        await engine.evaluate(
            make_requirements(product="Sauce", packaging=["jar"], allergens=["soy"], additional="x"),
            make_candidate(1),
        )
        assert catalog.owner_calls == [1]

    async def test_raising_criterion_uses_fallback(self, catalog, monkeypatch):
        def explode(requirements, candidate):
            raise RuntimeError("boom")

        engine = CriterionEngine(catalog)
        monkeypatch.setattr(
            engine,
            "sync_scorers",
            ((Criterion.LOCATION, explode),) + CriterionEngine.sync_scorers[1:],
        )
        scores = await engine.evaluate(make_requirements(locations=["Japan"]), bare_candidate())
        location = scores[0]
        assert location.criterion is Criterion.LOCATION
        assert location.score == 0
        assert "boom" in location.explanation
