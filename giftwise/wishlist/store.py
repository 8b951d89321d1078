import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol
import aiosqlite
from ..common.messages import NormalizedProduct
from ..common.utils import logger

def item_key(store: str, product_id: str) -> str:
    return f"{store}|{product_id}"

class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

class InMemoryKeyValueStore:
    """Process-local key/value store. State is lost on restart."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

class RecommendationMemory:
    """Remembers the products last shown to a session so they can be wishlisted later."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _key(self, session_id: str) -> str:
        return f"recommendations:{session_id}"

    def remember(self, session_id: str, products: List[NormalizedProduct]) -> None:
        memory: Dict[str, NormalizedProduct] = dict(self.store.get(self._key(session_id)) or {})
        for product in products:
            memory[item_key(product.store, product.id)] = product
        self.store.set(self._key(session_id), memory)

    def lookup(self, session_id: str, product_id: str, store: Optional[str] = None) -> Optional[NormalizedProduct]:
        """Return a copy of a remembered product, matching on store too when given."""
        memory: Dict[str, NormalizedProduct] = self.store.get(self._key(session_id)) or {}
        if store:
            product = memory.get(item_key(store, product_id))
        else:
            product = next((p for p in memory.values() if p.id == product_id), None)
        return product.model_copy(deep=True) if product is not None else None

class WishlistStore(Protocol):
    async def save(self, actor_id: str, product: NormalizedProduct) -> None:
        ...

    async def remove(self, actor_id: str, product_id: str, store: Optional[str] = None) -> None:
        ...

    async def list(self, actor_id: str) -> List[NormalizedProduct]:
        ...

class GuestWishlist:
    """Wishlist for guests, keyed by the guest cookie, held in a key/value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _key(self, actor_id: str) -> str:
        return f"wishlist:{actor_id}"

    async def save(self, actor_id: str, product: NormalizedProduct) -> None:
        items: Dict[str, NormalizedProduct] = dict(self.store.get(self._key(actor_id)) or {})
        items[item_key(product.store, product.id)] = product.model_copy(deep=True)
        self.store.set(self._key(actor_id), items)

    async def remove(self, actor_id: str, product_id: str, store: Optional[str] = None) -> None:
        items: Dict[str, NormalizedProduct] = dict(self.store.get(self._key(actor_id)) or {})
        if store:
            items.pop(item_key(store, product_id), None)
        else:
            items = {key: p for key, p in items.items() if p.id != product_id}
        self.store.set(self._key(actor_id), items)

    async def list(self, actor_id: str) -> List[NormalizedProduct]:
        items: Dict[str, NormalizedProduct] = self.store.get(self._key(actor_id)) or {}
        return [product.model_copy(deep=True) for product in items.values()]

    async def drain(self, actor_id: str) -> List[NormalizedProduct]:
        """Remove and return everything a guest saved, in insertion order."""
        items: Dict[str, NormalizedProduct] = self.store.get(self._key(actor_id)) or {}
        self.store.delete(self._key(actor_id))
        return list(items.values())

class SqliteWishlist:
    """Wishlist for signed-in users, persisted with aiosqlite."""

    def __init__(self, database_path: str):
        self.database_path = database_path

    async def init_db(self):
        async with aiosqlite.connect(self.database_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS wishlist (
                    actor_id TEXT NOT NULL,
                    store TEXT NOT NULL,
                    product_id TEXT NOT NULL,
                    product_json TEXT NOT NULL,
                    added_at TEXT NOT NULL,
                    PRIMARY KEY (actor_id, store, product_id)
                )
            """)
            await db.commit()
        logger.info(f"Wishlist database ready at {self.database_path}")

    async def save(self, actor_id: str, product: NormalizedProduct) -> None:
        async with aiosqlite.connect(self.database_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO wishlist (actor_id, store, product_id, product_json, added_at) VALUES (?, ?, ?, ?, ?)",
                (actor_id, product.store, product.id, product.model_dump_json(), datetime.now().isoformat())
            )
            await db.commit()

    async def remove(self, actor_id: str, product_id: str, store: Optional[str] = None) -> None:
        async with aiosqlite.connect(self.database_path) as db:
            if store:
                await db.execute(
                    "DELETE FROM wishlist WHERE actor_id = ? AND store = ? AND product_id = ?",
                    (actor_id, store, product_id)
                )
            else:
                await db.execute(
                    "DELETE FROM wishlist WHERE actor_id = ? AND product_id = ?",
                    (actor_id, product_id)
                )
            await db.commit()

    async def list(self, actor_id: str) -> List[NormalizedProduct]:
        async with aiosqlite.connect(self.database_path) as db:
            cursor = await db.execute(
                "SELECT product_json FROM wishlist WHERE actor_id = ? ORDER BY added_at, rowid",
                (actor_id,)
            )
            rows = await cursor.fetchall()
        return [NormalizedProduct.model_validate(json.loads(row[0])) for row in rows]
