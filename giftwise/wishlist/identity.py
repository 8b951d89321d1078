import uuid
from typing import Optional, Protocol
from fastapi import Request, Response
from pydantic import BaseModel

class Actor(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None

class IdentityProvider(Protocol):
    async def current_actor(self, request: Request) -> Optional[Actor]:
        """Return the signed-in actor for this request, or None for guests."""
        ...

class AnonymousIdentityProvider:
    """No sign-in configured: every caller is a guest."""

    async def current_actor(self, request: Request) -> Optional[Actor]:
        return None

def session_id_for(request: Request) -> str:
    """Opaque per-caller key for recommendation memory."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"

def ensure_guest_id(request: Request, response: Response, cookie_name: str, max_age: int) -> str:
    """Read the guest cookie, issuing a fresh one when absent."""
    guest_id = request.cookies.get(cookie_name)
    if guest_id:
        return guest_id

    guest_id = str(uuid.uuid4())
    response.set_cookie(
        key=cookie_name,
        value=guest_id,
        max_age=max_age,
        httponly=True,
        samesite="lax"
    )
    return guest_id

def clear_guest_cookie(response: Response, cookie_name: str):
    response.delete_cookie(key=cookie_name, httponly=True, samesite="lax")
