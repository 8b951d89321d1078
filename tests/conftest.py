"""Shared fixtures for the giftwise test suite."""

from typing import Dict, List

import pytest

from giftwise.common.messages import RecipientProfile
from tests.fakes import build_product, build_spec, catalog_item


@pytest.fixture
def make_product():
    return build_product


@pytest.fixture
def make_spec():
    return build_spec


@pytest.fixture
def complete_profile() -> RecipientProfile:
    return RecipientProfile(
        age=30,
        gender="female",
        occasion="Birthday",
        relationship="Friend",
        budget={"min": 20, "max": 60, "currency": "USD"},
        interests=["tech", "travel"],
        favorite_color="black",
        favorite_brands=["Anker"],
    )


@pytest.fixture
def scenario_a_profile() -> RecipientProfile:
    return RecipientProfile(
        age=30,
        interests=["tech"],
        budget={"min": 20, "max": 60, "currency": "USD"},
        favorite_brands=["Anker"],
    )


@pytest.fixture
def scenario_a_catalog() -> List[Dict]:
    return [
        catalog_item(
            "amazon_B0CX59VH6C", 19.99,
            title="Anker Nano Power Bank",
            description_short="Compact 10,000mAh charger",
            rating=4.6,
            badges=["prime_shipping", "compact"],
            interests=["tech", "travel", "charging", "gadgets"],
            categories=["electronics", "tech", "accessories"],
            colors=["black"],
            brands=["Anker"],
        ),
        catalog_item(
            "amazon_B0B45XQH8L", 199.0,
            title="Theragun Mini Massager",
            description_short="Premium percussive therapy device",
            rating=4.7,
            badges=["premium", "prime_shipping"],
            interests=["fitness", "wellness", "recovery", "tech"],
            categories=["health", "fitness", "tech"],
            colors=["black"],
            brands=["Theragun", "Therabody"],
        ),
    ]
