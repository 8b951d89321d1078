from typing import Optional
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from .common.messages import ChatRequest, RecipientProfile, RecommendResponse, WishlistRequest
from .common.utils import logger, log_context, generate_request_id
from .config import Settings, settings as default_settings
from .planner.agent import PlannerAgent
from .wishlist.identity import (
    Actor, AnonymousIdentityProvider, IdentityProvider, clear_guest_cookie, ensure_guest_id, session_id_for
)
from .wishlist.store import (
    GuestWishlist, InMemoryKeyValueStore, KeyValueStore, RecommendationMemory, SqliteWishlist
)

def create_app(settings: Optional[Settings] = None,
               planner: Optional[PlannerAgent] = None,
               store: Optional[KeyValueStore] = None,
               identity: Optional[IdentityProvider] = None,
               user_wishlist: Optional[SqliteWishlist] = None) -> FastAPI:
    """Build the API. Collaborators default to the configured production ones."""
    settings = settings or default_settings
    store = store if store is not None else InMemoryKeyValueStore()
    memory = RecommendationMemory(store)
    planner = planner or PlannerAgent.from_settings(settings, memory=memory)
    identity = identity or AnonymousIdentityProvider()
    user_wishlist = user_wishlist or SqliteWishlist(settings.DATABASE_PATH)
    guest_wishlist = GuestWishlist(store)

    app = FastAPI(title="Giftwise API", description="Gift recommendations from a recipient profile")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        await user_wishlist.init_db()
        logger.info("Giftwise API started")

    @app.on_event("shutdown")
    async def shutdown_event():
        await planner.close()

    async def merge_guest_wishlist(guest_id: str, actor_id: str):
        """Move a guest's saved items into the signed-in wishlist."""
        products = await guest_wishlist.drain(guest_id)
        for product in products:
            await user_wishlist.save(actor_id, product)
        if products:
            logger.info(f"Merged {len(products)} guest wishlist items into user wishlist")

    async def resolve_wishlist_owner(request: Request, response: Response):
        actor = await identity.current_actor(request)
        if actor is not None:
            guest_id = request.cookies.get(settings.GUEST_COOKIE_NAME)
            if guest_id:
                await merge_guest_wishlist(guest_id, actor.id)
                clear_guest_cookie(response, settings.GUEST_COOKIE_NAME)
            return user_wishlist, actor.id
        guest_id = ensure_guest_id(request, response, settings.GUEST_COOKIE_NAME, settings.GUEST_COOKIE_MAX_AGE)
        return guest_wishlist, guest_id

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.post("/api/recommend", response_model=RecommendResponse)
    async def recommend(profile: RecipientProfile, request: Request):
        request_id = generate_request_id()
        try:
            return await planner.handle_recommendation(profile, session_id_for(request), request_id)
        except Exception as e:
            with log_context(request_id):
                logger.error(f"Recommendation failed: {e}")
            raise HTTPException(status_code=500, detail="Error processing recommendation")

    @app.get("/api/wishlist")
    async def get_wishlist(request: Request, response: Response):
        wishlist, owner_id = await resolve_wishlist_owner(request, response)
        products = await wishlist.list(owner_id)
        return {"products": [product.model_dump() for product in products]}

    @app.post("/api/wishlist/add")
    async def add_to_wishlist(body: WishlistRequest, request: Request, response: Response):
        product = planner.memory.lookup(session_id_for(request), body.productId, body.store)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found in recent recommendations")

        wishlist, owner_id = await resolve_wishlist_owner(request, response)
        await wishlist.save(owner_id, product)
        return {"success": True}

    @app.post("/api/wishlist/remove")
    async def remove_from_wishlist(body: WishlistRequest, request: Request, response: Response):
        wishlist, owner_id = await resolve_wishlist_owner(request, response)
        await wishlist.remove(owner_id, body.productId, body.store)
        return {"success": True}

    @app.post("/api/chat")
    async def chat(body: ChatRequest):
        last_user = next((m for m in reversed(body.messages) if m.role == "user"), None)
        if last_user is None:
            return {"reply": "Happy to keep ideating whenever you're ready."}
        return {"reply": f'Thanks! I noted: "{last_user.content[:200]}". Let me refine the gift ideas.'}

    @app.get("/api/me")
    async def me(request: Request):
        actor: Optional[Actor] = await identity.current_actor(request)
        return {"user": actor.model_dump() if actor else None}

    return app

app = create_app()
