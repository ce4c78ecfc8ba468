#!/usr/bin/env python3
"""
Storage Quota Web Application
FastAPI server with WebSocket support for quota and cleanup progress updates
"""

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Set

from storage_quota.config import load_settings

# Configure logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from storage_quota.models import CleanupCriteria, CleanupProgress, CleanupResult, QuotaState
from storage_quota.service import StorageService


class ConnectionManager:
    """Manage WebSocket connections"""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()
        self._pending: Set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket):
        self.active_connections.discard(websocket)

    async def broadcast(self, message_type: str, data: Dict):
        """Broadcast message to all connected clients"""
        message = json.dumps({"type": message_type, "data": data})
        disconnected = set()

        for connection in list(self.active_connections):
            try:
                await connection.send_text(message)
            except Exception as error:
                logger.debug(f"Dropping websocket after send failure: {error}")
                disconnected.add(connection)

        # Remove disconnected clients
        for conn in disconnected:
            self.active_connections.discard(conn)

    def broadcast_soon(self, message_type: str, data: Dict) -> None:
        """Schedule a broadcast from synchronous code running on the event loop"""
        task = asyncio.get_running_loop().create_task(self.broadcast(message_type, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


# Request models
class CleanupRequest(BaseModel):
    account_ids: Optional[List[str]] = None
    older_than_days: Optional[float] = Field(default=None, ge=0)
    min_size_bytes: Optional[int] = Field(default=None, ge=0)

    def to_criteria(self) -> CleanupCriteria:
        return CleanupCriteria(
            account_ids=self.account_ids,
            older_than_days=self.older_than_days,
            min_size_bytes=self.min_size_bytes
        )


class AgeCleanupRequest(BaseModel):
    older_than_days: float = Field(ge=0)
    account_id: Optional[str] = None


class SizeCleanupRequest(BaseModel):
    min_size_bytes: int = Field(ge=0)
    account_id: Optional[str] = None


class MonitorConfigRequest(BaseModel):
    warning_threshold: Optional[float] = None
    critical_threshold: Optional[float] = None
    check_interval_ms: Optional[int] = None


def create_app(service: Optional[StorageService] = None, monitor: bool = True) -> FastAPI:
    """Build the application around a StorageService (from environment settings by default)"""
    if service is None:
        service = StorageService.from_settings(load_settings())

    manager = ConnectionManager()

    def on_quota_state(state: QuotaState) -> None:
        manager.broadcast_soon("quota_state", state.to_dict())

    async def on_cleanup_progress(progress: CleanupProgress) -> None:
        await manager.broadcast("cleanup_progress", progress.to_dict())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        unsubscribe = service.subscribe(on_quota_state)
        service.set_progress_callback(on_cleanup_progress)
        if monitor:
            try:
                await service.monitor.start_monitoring()
            except Exception as error:
                logger.error(f"Initial storage quota check failed: {error}")
        try:
            yield
        finally:
            unsubscribe()
            await service.aclose()

    app = FastAPI(
        title="Storage Quota",
        description="Monitor local email storage and clean it up",
        lifespan=lifespan
    )
    app.state.service = service
    app.state.manager = manager

    async def run_cleanup(coro) -> Dict:
        try:
            result: CleanupResult = await coro
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Cleanup error: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Cleanup failed: {str(e)}")

        await manager.broadcast("cleanup_completed", result.to_dict())
        return {"status": "completed", "result": result.to_dict()}

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    @app.get("/quota")
    def get_quota(request: Request):
        """Last known quota state, without polling"""
        current = request.app.state.service.get_quota_state()
        return {
            "state": current.to_dict() if current else None,
            "storage_api_available": request.app.state.service.monitor.is_storage_api_available(),
            "monitoring": request.app.state.service.monitor.is_monitoring
        }

    @app.post("/quota/check")
    async def check_quota(request: Request):
        """Poll storage usage now"""
        try:
            state = await request.app.state.service.check_quota()
        except Exception as e:
            logger.error(f"Quota check error: {e}")
            raise HTTPException(status_code=500, detail=f"Quota check failed: {str(e)}")
        return {"state": state.to_dict()}

    @app.patch("/quota/config")
    async def update_quota_config(request: Request, body: MonitorConfigRequest):
        """Change thresholds or interval; the current state is re-classified"""
        changes = body.model_dump(exclude_none=True)
        try:
            config = request.app.state.service.update_monitor_config(**changes)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {
            "warning_threshold": config.warning_threshold,
            "critical_threshold": config.critical_threshold,
            "check_interval_ms": config.check_interval_ms
        }

    @app.get("/breakdown")
    async def get_breakdown(request: Request):
        """Storage breakdown by account, age and size"""
        try:
            report = await request.app.state.service.get_breakdown()
        except Exception as e:
            logger.error(f"Breakdown error: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Breakdown failed: {str(e)}")
        return report.to_dict()

    @app.post("/cleanup/estimate")
    async def estimate_cleanup(request: Request, body: CleanupRequest):
        """Preview what a cleanup would free"""
        try:
            estimate = await request.app.state.service.estimate_cleanup(body.to_criteria())
        except Exception as e:
            logger.error(f"Estimate error: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Estimate failed: {str(e)}")
        return estimate.to_dict()

    @app.post("/cleanup")
    async def cleanup(request: Request, body: CleanupRequest):
        """Remove emails matching all given criteria"""
        return await run_cleanup(request.app.state.service.cleanup(body.to_criteria()))

    @app.post("/cleanup/age")
    async def cleanup_by_age(request: Request, body: AgeCleanupRequest):
        return await run_cleanup(
            request.app.state.service.cleanup_by_age(body.older_than_days, body.account_id)
        )

    @app.post("/cleanup/size")
    async def cleanup_by_size(request: Request, body: SizeCleanupRequest):
        return await run_cleanup(
            request.app.state.service.cleanup_by_size(body.min_size_bytes, body.account_id)
        )

    @app.post("/cleanup/account/{account_id}")
    async def cleanup_by_account(request: Request, account_id: str):
        return await run_cleanup(request.app.state.service.cleanup_by_account(account_id))

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """WebSocket endpoint for real-time updates"""
        await manager.connect(websocket)

        current = service.get_quota_state()
        if current is not None:
            await websocket.send_text(json.dumps({"type": "quota_state", "data": current.to_dict()}))

        try:
            while True:
                # Keep connection alive
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(websocket)

    return app


def main() -> None:
    import uvicorn

    logger.info(f"Starting Storage Quota with log level: {LOG_LEVEL}")
    uvicorn.run(
        "storage_quota.main:create_app",
        factory=True,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000"))
    )


if __name__ == "__main__":
    main()
