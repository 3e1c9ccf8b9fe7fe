from contextlib import asynccontextmanager
from typing import List, Optional
import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from web3 import Web3
import uvicorn

from yieldex_staking import __version__
from yieldex_staking.chain_reader import ChainReader, get_async_web3
from yieldex_staking.config import Settings, load_settings, validate_settings
from yieldex_staking.logger import setup_service_logger
from yieldex_staking.refresher import StakingRefresher
from yieldex_staking.registry import TokenRegistry
from yieldex_staking.store import (
    SnapshotStore,
    StakingSnapshot,
    StoreError,
    SupabaseSnapshotStore,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "Yieldex Staking API"

FETCH_ERROR = "Failed to fetch staking data"
UPDATE_ERROR = "Failed to update staking data"
NOT_FOUND_ERROR = "Staking data not found"


# API data models
class UpdateResponse(BaseModel):
    message: str = Field(..., description="Confirmation message")
    attempted: int = Field(..., description="Number of tokens refreshed")
    succeeded: int = Field(..., description="Number of tokens written")


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    rpc_connected: bool


# Dependencies
def get_store(request: Request) -> SnapshotStore:
    return request.app.state.store


def get_refresher(request: Request) -> StakingRefresher:
    return request.app.state.refresher


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SnapshotStore] = None,
    reader: Optional[ChainReader] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Clients that are not injected are created once in the lifespan handler
    from settings and shared by every request.

    Args:
        settings: Service settings, loaded from config and environment if None
        store: Snapshot store, Supabase-backed if None
        reader: Chain reader, built on AsyncWeb3 for settings.rpc_url if None
    """
    if settings is None:
        settings = load_settings()
        setup_service_logger(settings)

    registry = TokenRegistry.from_config(settings.tokens)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.store is None or app.state.reader is None:
            if not validate_settings(settings):
                logger.warning("Required configuration missing, clients may fail")
        if app.state.reader is None:
            app.state.reader = ChainReader(get_async_web3(settings.rpc_url))
        if app.state.store is None:
            app.state.store = await SupabaseSnapshotStore.connect(
                settings.supabase_url, settings.supabase_key, settings.table
            )
        app.state.refresher = StakingRefresher(
            registry, app.state.reader, app.state.store, settings
        )
        logger.info(f"{SERVICE_NAME} ready, tracking {len(registry)} tokens")
        yield

    app = FastAPI(
        title=SERVICE_NAME,
        description="Latest APY and TVL of staking contracts mirrored from chain",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.store = store
    app.state.reader = reader
    app.state.refresher = None
    if store is not None and reader is not None:
        app.state.refresher = StakingRefresher(registry, reader, store, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/", tags=["Info"], response_model=HealthResponse)
    async def root(request: Request):
        """API health check"""
        reader = request.app.state.reader
        connected = await reader.is_connected() if reader is not None else False
        return HealthResponse(
            status="ok",
            service=SERVICE_NAME,
            version=__version__,
            rpc_connected=connected,
        )

    @app.get("/staking", tags=["Staking"], response_model=List[StakingSnapshot])
    async def get_staking_data(store: SnapshotStore = Depends(get_store)):
        """All stored staking snapshots"""
        try:
            return await store.list_all()
        except StoreError as e:
            logger.error(f"Error fetching staking data: {str(e)}")
            raise HTTPException(status_code=500, detail=FETCH_ERROR)

    @app.get(
        "/staking/protocol/{id_protocol}",
        tags=["Staking"],
        response_model=List[StakingSnapshot],
    )
    async def get_staking_by_protocol(
        id_protocol: str, store: SnapshotStore = Depends(get_store)
    ):
        """Snapshots of one protocol id; empty list when none match"""
        try:
            return await store.find_by_protocol(id_protocol)
        except StoreError as e:
            logger.error(f"Error fetching staking data for {id_protocol}: {str(e)}")
            raise HTTPException(status_code=500, detail=FETCH_ERROR)

    @app.get(
        "/staking/address/{address}",
        tags=["Staking"],
        response_model=StakingSnapshot,
    )
    async def get_staking_by_address(
        address: str, store: SnapshotStore = Depends(get_store)
    ):
        """Snapshot of one token address"""
        if Web3.is_address(address):
            address = Web3.to_checksum_address(address)
        try:
            snapshot = await store.find_by_address(address)
        except StoreError as e:
            logger.error(f"Error fetching staking data for {address}: {str(e)}")
            raise HTTPException(status_code=500, detail=FETCH_ERROR)

        if snapshot is None:
            raise HTTPException(status_code=404, detail=NOT_FOUND_ERROR)
        return snapshot

    @app.post("/staking/update", tags=["Staking"], response_model=UpdateResponse)
    async def update_staking(refresher: StakingRefresher = Depends(get_refresher)):
        """Refresh every registered token from chain"""
        try:
            report = await refresher.refresh_all()
        except Exception as e:
            logger.error(f"Error updating staking data: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail=UPDATE_ERROR)

        return UpdateResponse(
            message="All staking data updated successfully",
            attempted=report.attempted,
            succeeded=len(report.succeeded),
        )

    # Legacy single-segment path, protocol lookup
    app.add_api_route(
        "/staking/{id_protocol}",
        get_staking_by_protocol,
        methods=["GET"],
        tags=["Staking"],
        response_model=List[StakingSnapshot],
    )

    return app


def start_api_server():
    """Function to start API server from command line"""
    settings = load_settings()
    setup_service_logger(settings)
    uvicorn.run(
        "yieldex_staking.api:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    start_api_server()
