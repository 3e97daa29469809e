"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from offernav.api import nav, ops
from offernav.domain.navigation.sockets import NavNamespace, get_namespace, set_namespace
from offernav.infra import postgres
from offernav.obs import init as obs_init
from offernav.settings import allowed_origins

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	try:
		await postgres.init_pool()
	except Exception:
		# snapshot reads retry the pool lazily; the badge stays stale until then
		logger.warning("postgres.init_failed", exc_info=True)
	try:
		yield
	finally:
		namespace = get_namespace()
		if namespace is not None:
			await namespace.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Offer Navigation", lifespan=lifespan)

origins = allowed_origins()

app.add_middleware(
	CORSMiddleware,
	allow_origins=origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=origins)
nav_namespace = NavNamespace()
sio.register_namespace(nav_namespace)
set_namespace(nav_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init()

app.include_router(ops.router, tags=["ops"])
app.include_router(nav.router, tags=["nav"])
