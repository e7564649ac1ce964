import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from restopos.config import settings
from restopos.db import Base, SessionLocal, engine
from restopos.deps import resolve_context
from restopos.errors import AuthenticationError, register_exception_handlers
from restopos.middleware import RequestIdMiddleware
from restopos.models.core import ConversationMember
from restopos.services.notify import NotificationHub, QueueListener
from restopos.util.logs import setup_logging

from restopos.routers import auth, branches, inventory, recipes, menu, addons, orders
from restopos.routers import transactions, invoices, users, analytics, tickets, chat, it, admin
from restopos.routers import customers, procurement
from restopos.routers import settings as settings_router

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    app.state.hub = NotificationHub()
    logger.info(f"RestoPOS API starting ({settings.APP_ENV})")
    yield
    app.state.hub.close()
    logger.info("RestoPOS API stopped")


app = FastAPI(title="RestoPOS API", version="1.0.0", lifespan=lifespan)
register_exception_handlers(app)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(branches.router)
app.include_router(inventory.router)
app.include_router(recipes.router)
app.include_router(menu.router)
app.include_router(addons.router)
app.include_router(customers.router)
app.include_router(procurement.router)
app.include_router(orders.router)
app.include_router(transactions.router)
app.include_router(invoices.router)
app.include_router(settings_router.router)
app.include_router(users.router)
app.include_router(analytics.router)
app.include_router(tickets.router)
app.include_router(chat.router)
app.include_router(it.router)
app.include_router(admin.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}


def _listener_identity(token: str | None):
    db = SessionLocal()
    try:
        ctx = resolve_context(db, token)
        if ctx.restaurant_id is None:
            return ctx, set()
        conv_ids = {cid for (cid,) in db.query(ConversationMember.conversation_id)
                    .filter(ConversationMember.user_id == ctx.user_id,
                            ConversationMember.restaurant_id == ctx.restaurant_id)}
        return ctx, conv_ids
    finally:
        db.close()


async def _wait_disconnect(ws: WebSocket):
    # clients never send anything meaningful; this only notices the close
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        return


@app.websocket("/ws/notifications")
async def notifications(ws: WebSocket, token: str | None = None):
    try:
        ctx, conv_ids = await run_in_threadpool(_listener_identity, token)
    except AuthenticationError:
        await ws.close(code=4401)
        return
    if ctx.restaurant_id is None:
        # IT accounts have no tenant stream
        await ws.close(code=4403)
        return

    await ws.accept()
    hub: NotificationHub = ws.app.state.hub
    listener = QueueListener(ctx.restaurant_id, ctx.user_id, conv_ids, asyncio.get_running_loop())
    hub.register(listener)
    closed = asyncio.create_task(_wait_disconnect(ws))
    try:
        while True:
            nxt = asyncio.create_task(listener.queue.get())
            done, _ = await asyncio.wait({nxt, closed}, return_when=asyncio.FIRST_COMPLETED)
            if closed in done:
                nxt.cancel()
                break
            await ws.send_text(nxt.result())
    except WebSocketDisconnect:
        pass
    finally:
        closed.cancel()
        hub.unregister(listener)
