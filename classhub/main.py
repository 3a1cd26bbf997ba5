# classhub/main.py
import os
from dotenv import load_dotenv

# 1) load environment variables from .env before anything reads them
load_dotenv()

import asyncio
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from classhub.api.chat import router as chat_router
from classhub.api.notifications import router as notifications_router
from classhub.api.websocket import router as ws_router
from classhub.infra.servicebus_consumer import consume_notifications
from classhub.infra.table_client import NotificationStore
from classhub.services.error_channel import ErrorChannel
from classhub.services.permission_presenter import PermissionErrorPresenter

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="ClassHub Central")

# 2) CORS (restrict origins in prod)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3) shared state: one store, one channel for errors raised outside a client session
app.state.notification_store = NotificationStore()
app.state.error_channel = ErrorChannel()
app.state.permission_presenter = PermissionErrorPresenter()
app.state.permission_presenter.mount(app.state.error_channel)

# 4) REST routes
app.include_router(notifications_router)
app.include_router(chat_router)
# 5) WebSocket route
app.include_router(ws_router)


@app.on_event("startup")
async def startup_event():
    # 6) run the Service Bus consumer in the background
    app.state.consumer_task = asyncio.create_task(
        consume_notifications(app.state.notification_store, app.state.error_channel)
    )


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "consumer_task", None)
    if task is not None:
        task.cancel()
    await app.state.notification_store.close()
