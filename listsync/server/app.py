from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRouter
from loguru import logger

from listsync.server.locks import WorkspaceLocks
from listsync.server.log import setup_logging
from listsync.server.managers.sync import SyncManager
from listsync.server.managers.workspaces import WorkspaceDirectory
from listsync.server.notifier import PushNotifier
from listsync.server.push import PushSender, WebPushSender
from listsync.server.registry import ConnectionRegistry
from listsync.server.settings import SyncSettings, get_settings
from listsync.server.store.base import RecordStore
from listsync.server.store.local import LocalRecordStore


def create_record_store(settings: SyncSettings) -> RecordStore:
    """Create the record store backend based on configuration."""
    if settings.record_store == "s3":
        from listsync.server.store.s3 import S3RecordStore

        if not settings.s3_bucket:
            msg = "LISTSYNC_S3_BUCKET is required when LISTSYNC_RECORD_STORE=s3"
            raise ValueError(msg)
        return S3RecordStore(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key.get_secret_value() if settings.s3_secret_key else None,
            prefix=settings.data_prefix,
            region=settings.s3_region,
            path_style=settings.s3_path_style,
        )
    return LocalRecordStore(settings.data_root, prefix=settings.data_prefix)


def _create_push_sender(settings: SyncSettings) -> PushSender | None:
    if settings.vapid_private_key is None:
        return None
    return WebPushSender(settings.vapid_private_key.get_secret_value(), settings.vapid_subject)


def init_services(app: FastAPI, settings: SyncSettings, store: RecordStore) -> None:
    """Build the process-level service objects and attach them to ``app.state``."""
    locks = WorkspaceLocks()
    connections = ConnectionRegistry(send_timeout=settings.live_send_timeout)
    app.state.store = store
    app.state.connections = connections
    app.state.directory = WorkspaceDirectory(store)
    app.state.sync_manager = SyncManager(store=store, locks=locks, connections=connections)
    app.state.notifier = PushNotifier(
        store=store,
        locks=locks,
        connections=connections,
        sender=_create_push_sender(settings),
        title=settings.push_title,
        icon=settings.push_icon,
        timeout=settings.push_timeout,
        skip_live_devices=settings.push_skip_live_devices,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)

    logger.info("Sync server starting (host={}, port={})", settings.host, settings.port)
    prefix_info = f", prefix={settings.data_prefix}" if settings.data_prefix else ""
    logger.info("Data root: {} (store={}{})", settings.data_root, settings.record_store, prefix_info)

    init_services(_app, settings, create_record_store(settings))

    if _app.state.notifier.enabled:
        logger.info("Push notifications: enabled (timeout={}s)", settings.push_timeout)
    else:
        logger.warning("LISTSYNC_VAPID_PRIVATE_KEY not set -- push notifications disabled")

    yield

    # -- Shutdown --------------------------------------------------------------
    connections: ConnectionRegistry = _app.state.connections
    logger.info("Sync server shutting down (live_connections={})", connections.active_count)
    connections.begin_shutdown()
    closed = await connections.close_all()
    logger.info("Live channel: closed {} connections", closed)


app = FastAPI(title="listsync", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# ---------------------------------------------------------------------------
# API router -- all request/response endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from listsync.server.routers.live import router as live_router  # noqa: E402
from listsync.server.routers.sync import router as sync_router  # noqa: E402
from listsync.server.routers.workspaces import router as workspaces_router  # noqa: E402

api.include_router(workspaces_router)
api.include_router(sync_router)

app.include_router(api)
app.include_router(live_router)
