"""Tests for query spec construction and budget repair."""

import asyncio
import json

import pytest

from giftwise.common.messages import Budget, RecipientProfile
from giftwise.planner.spec_builder import (
    GeminiSpecSuggester,
    QuerySpecBuilder,
    build_default_spec,
    infer_categories,
    infer_keywords,
    prioritize_stores,
    sanitize_budget,
)
from tests.fakes import FakeBackend


class TestSanitizeBudget:
    def test_empty_budget_gets_default_range(self):
        budget = sanitize_budget(Budget(min=0, max=0, currency="EUR"))
        assert (budget.min, budget.max, budget.currency) == (25, 150, "EUR")

    def test_min_only_derives_max(self):
        assert sanitize_budget(Budget(min=40, max=0)).max == 90
        assert sanitize_budget(Budget(min=200, max=0)).max == 300

    def test_inverted_range_is_swapped(self):
        budget = sanitize_budget(Budget(min=100, max=30))
        assert (budget.min, budget.max) == (30, 100)

    def test_max_only_keeps_zero_min(self):
        budget = sanitize_budget(Budget(min=0, max=80))
        assert (budget.min, budget.max) == (0, 80)

    @pytest.mark.parametrize("low,high", [(0, 0), (40, 0), (100, 30), (0, 80), (20, 60), (15, 15)])
    def test_idempotent(self, low, high):
        once = sanitize_budget(Budget(min=low, max=high))
        twice = sanitize_budget(once)
        assert once == twice
        assert once.min <= once.max


class TestInference:
    def test_keywords_are_interests_and_brands_lowercased(self):
        profile = RecipientProfile(
            interests=["Tech", "Travel", "tech"],
            favorite_brands=["Anker"],
            occasion="Birthday",
            favorite_color="Blue",
        )
        assert infer_keywords(profile) == ["tech", "travel", "anker"]

    def test_categories_map_interests_and_add_occasion_hints(self):
        profile = RecipientProfile(interests=["Fitness", "knitting"], occasion="Birthday", relationship="Sister")
        assert infer_categories(profile) == ["fitness", "health", "recovery", "knitting", "birthday", "sister"]

    def test_categories_are_unique(self):
        profile = RecipientProfile(interests=["tech", "gadgets", "coffee"])
        categories = infer_categories(profile)
        assert len(categories) == len(set(categories))
        assert categories[:3] == ["electronics", "tech", "gadgets"]
        assert "kitchen" in categories


class TestStorePriority:
    def test_default_order(self):
        assert prioritize_stores(150) == ["amazon", "aliexpress", "shein", "ebay", "etsy", "bestbuy"]

    def test_low_budget_moves_cheap_stores_first_stably(self):
        assert prioritize_stores(40) == ["aliexpress", "shein", "amazon", "ebay", "etsy", "bestbuy"]

    def test_threshold_is_inclusive(self):
        assert prioritize_stores(60)[:2] == ["aliexpress", "shein"]
        assert prioritize_stores(60.01)[0] == "amazon"


class TestDefaultSpec:
    def test_builds_from_profile(self, complete_profile):
        spec = build_default_spec(complete_profile)
        assert spec.keywords == ["tech", "travel", "anker"]
        assert spec.brands_preferred == ["anker"]
        assert spec.colors_preferred == ["black"]
        assert (spec.price.min, spec.price.max) == (20, 60)
        assert spec.limit == 24
        assert spec.sort == "relevance"
        assert spec.store_priority[0] == "aliexpress"

    def test_empty_profile_still_valid(self):
        spec = build_default_spec(RecipientProfile())
        assert spec.keywords == []
        assert (spec.price.min, spec.price.max) == (25, 150)


class TestQuerySpecBuilder:
    @pytest.mark.asyncio
    async def test_without_suggester_uses_deterministic_spec(self, complete_profile):
        spec = await QuerySpecBuilder().build(complete_profile)
        assert spec == build_default_spec(complete_profile)

    @pytest.mark.asyncio
    async def test_valid_suggestion_is_used(self, complete_profile):
        suggested = {
            "keywords": ["power bank"],
            "categories": ["electronics"],
            "price": {"min": 20, "max": 60, "currency": "USD"},
            "brands_preferred": ["anker"],
            "colors_preferred": [],
            "store_priority": ["amazon"],
            "limit": 10,
            "sort": "price_low_high",
        }
        backend = FakeBackend(reply="```json\n" + json.dumps({"spec": suggested}) + "\n```")
        builder = QuerySpecBuilder(GeminiSpecSuggester(backend))

        spec = await builder.build(complete_profile)

        assert spec.keywords == ["power bank"]
        assert spec.limit == 10
        assert spec.store_priority == ["amazon"]
        assert backend.prompts and '"spec"' in backend.prompts[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [
        "not json at all",
        json.dumps({"spec": {"keywords": ["x"]}}),
        json.dumps({"spec": {"keywords": [], "categories": [], "price": {"min": 0, "max": 10}, "extra": 1}}),
        json.dumps({"spec": {"keywords": [], "categories": [], "price": {"min": 0, "max": 10}, "limit": 500}}),
        json.dumps({"spec": {"keywords": [""], "categories": [], "price": {"min": 0, "max": 10}}}),
        json.dumps({"spec": {"keywords": ["tech"], "categories": [], "price": {"min": 0, "max": 10},
                             "brands_preferred": ["  "]}}),
        json.dumps({"spec": {"keywords": [], "categories": [""], "price": {"min": 0, "max": 10}}}),
        json.dumps({"spec": {"keywords": [], "categories": [], "price": {"min": 0, "max": 10},
                             "colors_preferred": [""]}}),
        json.dumps(["a", "list"]),
        "",
    ])
    async def test_bad_suggestion_falls_back(self, complete_profile, reply):
        builder = QuerySpecBuilder(GeminiSpecSuggester(FakeBackend(reply=reply)))
        spec = await builder.build(complete_profile)
        assert spec == build_default_spec(complete_profile)

    @pytest.mark.asyncio
    async def test_backend_error_falls_back(self, complete_profile):
        builder = QuerySpecBuilder(GeminiSpecSuggester(FakeBackend(error=RuntimeError("quota"))))
        spec = await builder.build(complete_profile)
        assert spec == build_default_spec(complete_profile)

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, complete_profile):
        backend = FakeBackend(reply="{}", delay=1.0)
        builder = QuerySpecBuilder(GeminiSpecSuggester(backend, timeout=0.01))
        spec = await asyncio.wait_for(builder.build(complete_profile), timeout=2)
        assert spec == build_default_spec(complete_profile)
