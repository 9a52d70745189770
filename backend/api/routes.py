"""
dockcup HTTP API

Serves the latest update report as JSON and lets clients trigger a fresh
check. Only one check runs at a time; concurrent refreshes wait for the
running check and then start their own.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException

from models.update_models import UpdateReport
from updates.update_checker import UpdateChecker

logger = logging.getLogger(__name__)


class ReportStore:
    """Holds the last report and serializes check runs."""

    def __init__(self, checker: UpdateChecker):
        self.checker = checker
        self.report: Optional[UpdateReport] = None
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        # Created on first use so it belongs to the server's event loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def _run(self) -> UpdateReport:
        run = await self.checker.run()
        self.report = UpdateReport.from_run(run)
        return self.report

    async def refresh(self) -> UpdateReport:
        async with self._get_lock():
            return await self._run()

    async def latest(self) -> UpdateReport:
        if self.report is not None:
            return self.report
        async with self._get_lock():
            # Another request may have produced a report while we waited
            if self.report is not None:
                return self.report
            return await self._run()


def create_router(store: ReportStore) -> APIRouter:
    router = APIRouter(tags=["updates"])

    @router.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @router.get("/json", response_model=UpdateReport)
    async def get_report():
        """Latest report; runs a check first if none has completed yet."""
        try:
            return await store.latest()
        except Exception as e:
            logger.error(f"Update check failed: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Update check failed: {e}")

    @router.post("/refresh", response_model=UpdateReport)
    async def refresh_report():
        """Run a check now and return the new report."""
        try:
            return await store.refresh()
        except Exception as e:
            logger.error(f"Update check failed: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Update check failed: {e}")

    return router


def create_app(checker: UpdateChecker) -> FastAPI:
    """Build the FastAPI app around an UpdateChecker."""
    app = FastAPI(
        title="dockcup",
        description="Container image update checker",
    )
    store = ReportStore(checker)
    app.state.store = store
    app.include_router(create_router(store))
    return app
