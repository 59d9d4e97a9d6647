"""
Rules worker service: runs a RulesWorker for the lifetime of a FastAPI app.
"""

from typing import Any, Dict, Iterable, Optional

from shared.base_service import BaseService
from .handlers.models import Action, Condition
from .store.client import OADAClient
from .store.protocol import DocumentStore
from .worker import RulesWorker


class RulesWorkerService(BaseService):
    """Service wrapper exposing worker status next to health and metrics."""

    def __init__(
        self,
        service_name: str,
        actions: Optional[Iterable[Action]] = None,
        conditions: Optional[Iterable[Condition]] = None,
        store: Optional[DocumentStore] = None,
        port: int = 8090
    ):
        super().__init__(service_name, port)

        # A store passed in is owned (connected/closed) by the caller
        self._owns_store = store is None
        self.store = store or OADAClient(
            self.config.oada_domain,
            token=self.config.oada_token,
            timeout=self.config.request_timeout
        )
        self.worker = RulesWorker(
            service_name,
            self.store,
            actions=actions,
            conditions=conditions,
            rules_root=self.config.rules_root,
            services_root=self.config.services_root,
            metrics=self.metrics
        )

        self._setup_worker_routes()
        self.app.state.rules_worker_service = self

    async def startup(self):
        if self._owns_store:
            await self.store.connect()
        self.worker.start()

    async def shutdown(self):
        try:
            await self.worker.stop()
        finally:
            if self._owns_store:
                await self.store.close()

    def _setup_worker_routes(self):
        """Set up worker-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": f"Rules worker for {self.service_name}",
                "version": "1.0.0",
                "actions": self.worker.actions.names(),
                "conditions": self.worker.conditions.names()
            }

        @self.app.get("/work")
        async def list_work():
            """Tracked work and whether each rule is enabled."""
            return self.worker.status()["work"]

    async def _check_dependencies(self) -> Dict[str, str]:
        task = self.worker.initialized
        if task is None or not task.done():
            worker = "starting"
        elif task.cancelled() or self.worker.initialization_error is not None:
            worker = "error"
        else:
            worker = "ok"
        return {"worker": worker}


def create_app(
    service_name: str,
    actions: Optional[Iterable[Action]] = None,
    conditions: Optional[Iterable[Condition]] = None,
    store: Optional[DocumentStore] = None
) -> Any:
    """Create the FastAPI application of a rules worker service."""
    service = RulesWorkerService(service_name, actions=actions, conditions=conditions, store=store)
    return service.app
