from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import Settings
from errors import DuplicateEmail, PersistenceFailure

logger = logging.getLogger(__name__)

# Each kind of document => one collection, lowercased name
ORDERS = "order"
ACCOUNTS = "account"
ACCOUNT_EMAILS = "account_email"


def _with_id(doc: dict[str, Any]) -> dict[str, Any]:
    doc["id"] = str(doc.pop("_id"))
    return doc


class DocumentStore:
    """Orders and accounts on top of a motor database.

    Orders live in one collection and are scoped to their owner through
    `owner_uid`; `created_at` is always stamped by the server.
    """

    def __init__(self, db: AsyncIOMotorDatabase, ping_timeout: float = 2.0):
        self.db = db
        self.ping_timeout = ping_timeout

    async def ensure_indexes(self) -> None:
        try:
            await self.db[ORDERS].create_index([("owner_uid", 1), ("created_at", DESCENDING)])
        except PyMongoError as e:
            raise PersistenceFailure("Failed to create indexes", str(e)) from e

    async def ping(self) -> bool:
        try:
            await asyncio.wait_for(self.db.command("ping"), self.ping_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Database ping timed out after {self.ping_timeout}s")
            return False
        except PyMongoError as e:
            logger.warning(f"Database ping failed: {e}")
            return False
        return True

    async def add_order(self, uid: str, doc: dict[str, Any]) -> str:
        order_id = ObjectId()
        data = {**doc, "owner_uid": uid}
        data.pop("created_at", None)
        try:
            # upsert on a fresh _id is an insert; $currentDate lets the server pick the time
            await self.db[ORDERS].update_one(
                {"_id": order_id},
                {"$setOnInsert": data, "$currentDate": {"created_at": True}},
                upsert=True,
            )
        except PyMongoError as e:
            raise PersistenceFailure("Failed to create order", str(e)) from e
        return str(order_id)

    async def recent_orders(self, uid: str, limit: int = 50) -> list[dict[str, Any]]:
        try:
            cursor = self.db[ORDERS].find({"owner_uid": uid}).sort("created_at", DESCENDING).limit(limit)
            return [_with_id(d) async for d in cursor]
        except PyMongoError as e:
            raise PersistenceFailure("Failed to fetch orders", str(e)) from e

    async def create_account(self, email: str, password_hash: str) -> str:
        uid = str(ObjectId())
        try:
            # the unique _id makes this claim atomic across concurrent signups
            await self.db[ACCOUNT_EMAILS].insert_one({"_id": email, "uid": uid})
        except DuplicateKeyError as e:
            raise DuplicateEmail("Email already registered") from e
        except PyMongoError as e:
            raise PersistenceFailure("Failed to create account", str(e)) from e

        try:
            await self.db[ACCOUNTS].insert_one({
                "_id": uid,
                "email": email,
                "password_hash": password_hash,
                "created_at": datetime.now(timezone.utc),
            })
        except PyMongoError as e:
            await self._release_email(email, uid)
            raise PersistenceFailure("Failed to create account", str(e)) from e
        return uid

    async def _release_email(self, email: str, uid: str) -> None:
        try:
            await self.db[ACCOUNT_EMAILS].delete_one({"_id": email, "uid": uid})
        except PyMongoError as e:
            logger.error(f"Could not release email claim for {email}: {e}")

    async def find_account(self, email: str) -> Optional[dict[str, Any]]:
        try:
            claim = await self.db[ACCOUNT_EMAILS].find_one({"_id": email})
            if not claim:
                return None
            account = await self.db[ACCOUNTS].find_one({"_id": claim["uid"]})
        except PyMongoError as e:
            raise PersistenceFailure("Failed to look up account", str(e)) from e
        return _with_id(account) if account else None


def open_store(settings: Settings) -> tuple[AsyncIOMotorClient, DocumentStore]:
    client = AsyncIOMotorClient(
        settings.DATABASE_URL,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.DATABASE_TIMEOUT_MS,
    )
    return client, DocumentStore(client[settings.DATABASE_NAME], ping_timeout=settings.DATABASE_TIMEOUT_MS / 1000)


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store
