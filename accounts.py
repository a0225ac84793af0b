from __future__ import annotations
import logging
from typing import NamedTuple

import bcrypt
from fastapi.concurrency import run_in_threadpool

from config import Settings
from database import DocumentStore
from errors import InvalidCredential
from schemas import Credentials, SignupCredentials
from tokens import require_secret, sign_token

logger = logging.getLogger(__name__)

LOGIN_FAILED = "Invalid email or password"

# checked against when the email is unknown so both failures cost one bcrypt round
_DUMMY_HASH = bcrypt.hashpw(b"zapp-dummy-password", bcrypt.gensalt())


class Session(NamedTuple):
    uid: str
    email: str
    token: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str | bytes) -> bool:
    if isinstance(password_hash, str):
        password_hash = password_hash.encode("utf-8")
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash)
    except ValueError:
        return False


async def signup(store: DocumentStore, creds: SignupCredentials, settings: Settings) -> Session:
    require_secret(settings)
    password_hash = await run_in_threadpool(hash_password, creds.password)
    uid = await store.create_account(creds.email, password_hash)
    logger.info(f"Account {uid} created")
    return Session(uid, creds.email, sign_token(uid, creds.email, settings))


async def login(store: DocumentStore, creds: Credentials, settings: Settings) -> Session:
    require_secret(settings)
    account = await store.find_account(creds.email)
    stored_hash = account["password_hash"] if account else _DUMMY_HASH
    matches = await run_in_threadpool(check_password, creds.password, stored_hash)
    if not account or not matches:
        logger.info("Login rejected")
        raise InvalidCredential(LOGIN_FAILED)
    return Session(account["id"], account["email"], sign_token(account["id"], account["email"], settings))
