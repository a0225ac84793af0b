"""Test doubles for the document store and the provider's key endpoint."""

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from uuid import uuid4

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt import PyJWKClientError

from errors import DuplicateEmail, PersistenceFailure

PROJECT_ID = "zapp-test"
JWT_SECRET = "test-secret-with-enough-bytes-for-hs256"

PROVIDER_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)


def provider_token(
    uid: str = "firebase-uid-1",
    email: Optional[str] = "ann@example.com",
    name: Optional[str] = "Ann",
    audience: str = PROJECT_ID,
    expires_in: timedelta = timedelta(hours=1),
    key=PROVIDER_KEY,
) -> str:
    """Mint an RS256 token shaped like a Firebase ID token."""
    now = datetime.now(timezone.utc)
    claims = {
        "iss": f"https://securetoken.google.com/{PROJECT_ID}",
        "aud": audience,
        "sub": uid,
        "iat": now,
        "exp": now + expires_in,
        "email": email,
        "name": name,
    }
    return jwt.encode(claims, key, algorithm="RS256", headers={"kid": "test-key"})


class StubJWKClient:
    """Stands in for PyJWKClient; counts lookups so tests can assert no provider call."""

    def __init__(self, key=PROVIDER_KEY, fail: bool = False):
        self.public_key = key.public_key()
        self.fail = fail
        self.calls = 0

    def get_signing_key_from_jwt(self, token: str):
        self.calls += 1
        if self.fail:
            raise PyJWKClientError("Fail to fetch data from the url, err: timed out")
        # malformed tokens fail here just like with the real client
        jwt.get_unverified_header(token)
        return SimpleNamespace(key=self.public_key)


class InMemoryStore:
    """Async document store with the same contract as database.DocumentStore."""

    def __init__(self):
        self.orders: List[Dict[str, Any]] = []
        self.emails: Dict[str, str] = {}
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.fail: Optional[str] = None
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def ping(self) -> bool:
        return self.fail is None

    async def add_order(self, uid: str, doc: Dict[str, Any]) -> str:
        self.calls.append("add_order")
        if self.fail:
            raise PersistenceFailure("Failed to create order", self.fail)
        order_id = uuid4().hex
        self.orders.append({**doc, "owner_uid": uid, "_id": order_id, "created_at": self._tick()})
        return order_id

    async def recent_orders(self, uid: str, limit: int = 50) -> List[Dict[str, Any]]:
        self.calls.append("recent_orders")
        if self.fail:
            raise PersistenceFailure("Failed to fetch orders", self.fail)
        mine = [o for o in self.orders if o["owner_uid"] == uid]
        mine.sort(key=lambda o: o["created_at"], reverse=True)
        return [{**{k: v for k, v in o.items() if k != "_id"}, "id": o["_id"]} for o in mine[:limit]]

    async def create_account(self, email: str, password_hash: str) -> str:
        self.calls.append("create_account")
        # let a concurrent signup run up to this point too
        await asyncio.sleep(0)
        if email in self.emails:
            raise DuplicateEmail("Email already registered")
        uid = uuid4().hex
        self.emails[email] = uid
        self.accounts[uid] = {"email": email, "password_hash": password_hash}
        return uid

    async def find_account(self, email: str) -> Optional[Dict[str, Any]]:
        self.calls.append("find_account")
        uid = self.emails.get(email)
        if uid is None:
            return None
        return {**self.accounts[uid], "id": uid}
