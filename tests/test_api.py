"""HTTP-level tests for the FastAPI app."""

from typing import Optional

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from giftwise.config import Settings
from giftwise.discovery.adapters import AmazonAdapter
from giftwise.discovery.agent import DiscoveryAgent
from giftwise.discovery.phrases import FallbackPhraseExpander
from giftwise.main import create_app
from giftwise.planner.agent import PlannerAgent
from giftwise.planner.spec_builder import QuerySpecBuilder
from giftwise.wishlist.identity import Actor
from giftwise.wishlist.store import InMemoryKeyValueStore, SqliteWishlist

POWER_BANK_ID = "amazon_B0CX59VH6C"

SCENARIO_A_BODY = {
    "age": 30,
    "interests": ["tech"],
    "budget": {"min": 20, "max": 60, "currency": "USD"},
    "favorite_brands": ["Anker"],
}


class HeaderIdentityProvider:
    """Treats an X-User-Id header as a signed-in user."""

    async def current_actor(self, request: Request) -> Optional[Actor]:
        user_id = request.headers.get("x-user-id")
        if not user_id:
            return None
        return Actor(id=user_id, email=f"{user_id}@example.com", name="Test User")


class FailingPlanner(PlannerAgent):
    async def handle_recommendation(self, profile, session_id, request_id=None):
        raise RuntimeError("pipeline exploded")


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, GUEST_COOKIE_NAME="guest_session_id")


@pytest.fixture
def planner(scenario_a_catalog) -> PlannerAgent:
    return PlannerAgent(
        spec_builder=QuerySpecBuilder(),
        expander=FallbackPhraseExpander(),
        discovery=DiscoveryAgent({"amazon": AmazonAdapter("trendella-20", products=scenario_a_catalog)}),
    )


@pytest.fixture
def client(settings, planner, tmp_path):
    app = create_app(
        settings=settings,
        planner=planner,
        store=InMemoryKeyValueStore(),
        identity=HeaderIdentityProvider(),
        user_wishlist=SqliteWishlist(str(tmp_path / "wishlist.db")),
    )
    with TestClient(app) as test_client:
        yield test_client


class TestHealthAndProfile:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_me_for_guest_and_user(self, client):
        assert client.get("/api/me").json() == {"user": None}

        user = client.get("/api/me", headers={"X-User-Id": "u1"}).json()["user"]
        assert user["id"] == "u1"
        assert user["email"] == "u1@example.com"


class TestRecommend:
    def test_returns_rendering_contract(self, client):
        response = client.post("/api/recommend", json=SCENARIO_A_BODY)

        assert response.status_code == 200
        body = response.json()
        assert body["products_ranked"] == [POWER_BANK_ID]
        assert body["products"][0]["id"] == POWER_BANK_ID
        assert body["explanations"][0]["product_id"] == POWER_BANK_ID
        assert body["meta"]["next_action"] == "collect_missing_profile"
        assert body["meta"]["gemini_links"]
        assert 1 <= len(body["follow_up_suggestions"]) <= 3

    @pytest.mark.parametrize("payload", [
        {"budget": {"min": -5, "max": 10}},
        {"age": "not a number"},
        {"budget": {"min": 10, "max": 20, "currency": "DOLLARS"}},
        {"constraints": {"shipping_days_max": 0}},
    ])
    def test_invalid_profile_is_rejected(self, client, payload):
        assert client.post("/api/recommend", json=payload).status_code == 422

    def test_pipeline_failure_is_a_500(self, settings, tmp_path):
        failing = FailingPlanner(QuerySpecBuilder(), FallbackPhraseExpander(), DiscoveryAgent({}))
        app = create_app(settings=settings, planner=failing,
                         user_wishlist=SqliteWishlist(str(tmp_path / "wishlist.db")))

        with TestClient(app) as test_client:
            response = test_client.post("/api/recommend", json=SCENARIO_A_BODY)

        assert response.status_code == 500
        assert response.json()["detail"] == "Error processing recommendation"


class TestWishlist:
    def test_unknown_product_is_404(self, client):
        response = client.post("/api/wishlist/add", json={"productId": "nope"})

        assert response.status_code == 404
        assert response.json()["detail"] == "Product not found in recent recommendations"

    def test_guest_add_list_remove(self, client):
        client.post("/api/recommend", json=SCENARIO_A_BODY)

        added = client.post("/api/wishlist/add", json={"productId": POWER_BANK_ID, "store": "amazon"})
        assert added.status_code == 200
        assert added.json() == {"success": True}
        assert "guest_session_id" in added.cookies

        listed = client.get("/api/wishlist").json()["products"]
        assert [p["id"] for p in listed] == [POWER_BANK_ID]

        removed = client.post("/api/wishlist/remove", json={"productId": POWER_BANK_ID})
        assert removed.json() == {"success": True}
        assert client.get("/api/wishlist").json()["products"] == []

    def test_guests_with_different_cookies_are_separate(self, client, settings):
        client.post("/api/recommend", json=SCENARIO_A_BODY)
        client.post("/api/wishlist/add", json={"productId": POWER_BANK_ID},
                    headers={"Cookie": f"{settings.GUEST_COOKIE_NAME}=guest-a"})

        other = client.get("/api/wishlist", headers={"Cookie": f"{settings.GUEST_COOKIE_NAME}=guest-b"})

        assert other.json()["products"] == []

    def test_signed_in_user_gets_persistent_wishlist(self, client):
        headers = {"X-User-Id": "u1"}
        client.post("/api/recommend", json=SCENARIO_A_BODY)

        client.post("/api/wishlist/add", json={"productId": POWER_BANK_ID}, headers=headers)

        user_items = client.get("/api/wishlist", headers=headers).json()["products"]
        assert [p["id"] for p in user_items] == [POWER_BANK_ID]
        assert "guest_session_id" not in client.cookies

    def test_signing_in_merges_guest_wishlist(self, client):
        client.post("/api/recommend", json=SCENARIO_A_BODY)
        client.post("/api/wishlist/add", json={"productId": POWER_BANK_ID})
        assert "guest_session_id" in client.cookies

        signed_in = client.get("/api/wishlist", headers={"X-User-Id": "u1"})

        assert [p["id"] for p in signed_in.json()["products"]] == [POWER_BANK_ID]
        set_cookie = signed_in.headers["set-cookie"]
        assert "guest_session_id=" in set_cookie
        assert "Max-Age=0" in set_cookie

        again = client.get("/api/wishlist", headers={"X-User-Id": "u1"})
        assert [p["id"] for p in again.json()["products"]] == [POWER_BANK_ID]
        assert client.get("/api/wishlist").json()["products"] == []

    def test_blank_product_id_is_rejected(self, client):
        assert client.post("/api/wishlist/add", json={"productId": ""}).status_code == 422


class TestChat:
    def test_echoes_latest_user_message(self, client):
        response = client.post("/api/chat", json={"messages": [
            {"role": "user", "content": "She loves hiking"},
            {"role": "assistant", "content": "Noted."},
            {"role": "user", "content": "Under $40 please"},
        ]})

        assert response.json() == {"reply": 'Thanks! I noted: "Under $40 please". Let me refine the gift ideas.'}

    def test_no_user_message(self, client):
        response = client.post("/api/chat", json={"messages": [{"role": "assistant", "content": "Hi"}]})
        assert response.json() == {"reply": "Happy to keep ideating whenever you're ready."}

    def test_empty_conversation_is_rejected(self, client):
        assert client.post("/api/chat", json={"messages": []}).status_code == 422
