import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from accounts import login, signup
from auth import build_authenticator, require_auth
from config import Settings, get_settings, resolve_project_id
from database import DocumentStore, get_store, open_store
from errors import PersistenceFailure, install_error_handlers
from pricing import normalize_items
from schemas import Credentials, Identity, Order, OrderIn, SignupCredentials, StoredOrder

logging.basicConfig(level=get_settings().LOG_LEVEL)
logger = logging.getLogger(__name__)

ROUTES = [
    "GET  /health",
    "GET  /me           (auth)",
    "GET  /orders       (auth)",
    "POST /orders       (auth)",
    "POST /auth/signup",
    "POST /auth/login",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    client, store = open_store(settings)
    app.state.store = store
    app.state.project_id = resolve_project_id(settings)
    app.state.authenticator = build_authenticator(settings)
    logger.info(f"Accepting tokens from: {[s.value for s in app.state.authenticator.schemes]}")
    try:
        await store.ensure_indexes()
    except PersistenceFailure as e:
        logger.warning(f"{e.message}: {e.error}")
    yield
    client.close()


app = FastAPI(title="Zapp Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

install_error_handlers(app)


@app.get("/", response_class=PlainTextResponse)
async def root(settings: Settings = Depends(get_settings)):
    return "\n".join([f"{settings.SERVICE_NAME} is running", "", "Available routes:", *ROUTES]) + "\n"


@app.get("/health")
async def health(
    request: Request,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    project_id = getattr(request.app.state, "project_id", None)
    return {
        "ok": True,
        "service": settings.SERVICE_NAME,
        "firebaseProjectId": project_id or "(missing)",
        "database": "connected" if await store.ping() else "unavailable",
        "time": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/me")
async def me(identity: Identity = Depends(require_auth)):
    return {"success": True, "user": identity.model_dump(mode="json", by_alias=True)}


# Orders are scoped to the caller: owner_uid == identity.uid

@app.get("/orders")
async def list_orders(
    identity: Identity = Depends(require_auth),
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    docs = await store.recent_orders(identity.uid, settings.ORDERS_LIMIT)
    orders = [StoredOrder.model_validate(d).model_dump(mode="json", by_alias=True) for d in docs]
    return {"success": True, "orders": orders}


@app.post("/orders")
async def create_order(
    payload: Optional[OrderIn] = None,
    identity: Identity = Depends(require_auth),
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    payload = payload or OrderIn()
    priced = normalize_items(payload.items, settings.PRICE_CATALOG)
    order = Order(
        **priced.model_dump(),
        owner_uid=identity.uid,
        status=(payload.status or "").strip() or "PLACED",
    )
    order_id = await store.add_order(identity.uid, order.model_dump(exclude={"created_at"}))
    logger.info(f"Order {order_id} placed by {identity.uid}: {len(order.items)} items, total {order.total:.2f}")
    return {
        "success": True,
        "orderId": order_id,
        "order": order.model_dump(mode="json", by_alias=True, exclude={"created_at"}),
    }


@app.post("/auth/signup")
async def signup_route(
    creds: SignupCredentials,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    session = await signup(store, creds, settings)
    return {"success": True, **session._asdict()}


@app.post("/auth/login")
async def login_route(
    creds: Credentials,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    session = await login(store, creds, settings)
    return {"success": True, **session._asdict()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", get_settings().PORT)))
