"""
Rules worker: exposes a service's actions and conditions to the rules
engine and runs the work the engine compiles for them.
"""

import asyncio
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from shared.logging import get_logger
from shared.errors import ConfigurationError, UnknownActionError
from shared.metrics import MetricsCollector
from .feed.list_watch import ListWatch
from .handlers.models import Action, Condition
from .handlers.registry import HandlerRegistry
from .store.protocol import DocumentStore
from .store.trees import rules_tree, service_rules_tree
from .work.models import CompiledWork
from .work.runner import WorkRunner

ACTIONS_PATH = "actions"
CONDITIONS_PATH = "conditions"
WORK_PATH = "compiled"


class RulesWorker:
    """
    Registers a service's actions/conditions and runs their compiled work.

    ``start()`` publishes every descriptor under the service and links it in
    the global registry, then watches the service's compiled work. Each
    piece of work gets a WorkRunner bound to its rule. Enable state always
    comes from the rule, so all compiled work is re-read on every start.
    """

    def __init__(
        self,
        name: str,
        store: DocumentStore,
        actions: Optional[Iterable[Action]] = None,
        conditions: Optional[Iterable[Condition]] = None,
        rules_root: str = "/bookmarks/rules",
        services_root: str = "/bookmarks/services",
        metrics: Optional[MetricsCollector] = None
    ):
        actions = list(actions or [])
        conditions = list(conditions or [])
        if not actions and not conditions:
            raise ConfigurationError(
                "This service registered neither actions nor conditions",
                {"service": name}
            )

        self.name = name
        self.store = store
        self.rules_root = rules_root.rstrip('/')
        self.path = f"{services_root.rstrip('/')}/{name}/rules"
        self.metrics = metrics
        self.logger = get_logger("rules.worker").bind(service=name)

        self.actions: HandlerRegistry[Action] = HandlerRegistry("action")
        self.conditions: HandlerRegistry[Condition] = HandlerRegistry("condition")
        for action in actions:
            self.actions.register(self._own(action))
        for condition in conditions:
            self.conditions.register(self._own(condition))

        self.initialized: Optional[asyncio.Task] = None
        self._work_watch: Optional[ListWatch] = None
        self._work: Dict[str, WorkRunner] = {}
        self._stopped = False

    def _own(self, handler: Union[Action, Condition]) -> Union[Action, Condition]:
        if handler.service != self.name:
            raise ConfigurationError(
                f"Handler {handler.name} belongs to service {handler.service}",
                {"service": self.name, "handler": handler.name}
            )
        return handler

    @property
    def work(self) -> Mapping[str, WorkRunner]:
        return MappingProxyType(self._work)

    @property
    def initialization_error(self) -> Optional[BaseException]:
        task = self.initialized
        if task is None or not task.done() or task.cancelled():
            return None
        return task.exception()

    def start(self) -> asyncio.Task:
        """Schedule initialization; await the returned task to wait for it."""
        if self.initialized is None:
            self.initialized = asyncio.get_running_loop().create_task(self._initialize())
        return self.initialized

    async def _initialize(self):
        try:
            for action in self.actions:
                await self._publish(ACTIONS_PATH, action)
            for condition in self.conditions:
                await self._publish(CONDITIONS_PATH, condition)

            if self._stopped:
                return

            # Reload all of our work at startup
            self._work_watch = ListWatch(
                self.store,
                self.name,
                f"{self.path}/{WORK_PATH}",
                on_item=self.add_work,
                resume=False,
                metrics=self.metrics,
                metrics_label=WORK_PATH
            )
            await self._work_watch.start()

        except Exception as e:
            self.logger.error("Rules worker initialization failed", error=str(e))
            if self.metrics:
                self.metrics.record_error(type(e).__name__)
            raise

        self.logger.info(
            "Rules worker initialized",
            actions=self.actions.names(),
            conditions=self.conditions.names(),
            work=len(self._work)
        )

    async def _publish(self, kind: str, handler: Union[Action, Condition]):
        """Publish a descriptor under the service and link it globally."""
        document = handler.describe().to_document()

        result = await self.store.put(
            f"{self.path}/{kind}/{handler.name}",
            document,
            tree=service_rules_tree
        )
        # Keyed by service so names only need to be unique per service
        await self.store.put(
            f"{self.rules_root}/{kind}",
            {f"{self.name}-{handler.name}": {"_id": result.resource_id}},
            tree=rules_tree
        )

        if self.metrics:
            self.metrics.record_descriptor_published(kind)
        self.logger.info("Descriptor published", kind=kind, name=handler.name)

    async def add_work(self, item: Any, work_id: str):
        """Start a runner for newly discovered compiled work."""
        if self._stopped:
            return

        if work_id in self._work:
            # TODO: Handle modified work once the engine defines edit semantics
            self.logger.warning("Ignoring rediscovered work", work_id=work_id)
            return

        self.logger.info("Adding new work", work_id=work_id)
        try:
            work = CompiledWork.model_validate(item)
            action = self.actions.get(work.action)
            if action is None:
                raise UnknownActionError(work.action, {"work_id": work_id})
            runner = WorkRunner(self.store, f"{self.name}-{work_id}", work, action, metrics=self.metrics)
        except Exception as e:
            self._report_work_error(work_id, e)
            raise

        try:
            await runner.init()
        except Exception as e:
            self._report_work_error(work_id, e)
            await self._discard(runner)
            raise

        self._work[work_id] = runner
        if self.metrics:
            self.metrics.set_active_work_units(len(self._work))

    def _report_work_error(self, work_id: str, error: Exception):
        self.logger.error(
            "Error adding work",
            work_id=work_id,
            error=str(error),
            code=getattr(error, "code", type(error).__name__)
        )
        if self.metrics:
            self.metrics.record_error(type(error).__name__)

    async def _discard(self, runner: WorkRunner):
        try:
            await runner.stop()
        except Exception as e:
            # Keep the init failure as the error add_work reports
            self.logger.error("Failed to stop work", work=runner.name, error=str(e))

    async def stop(self):
        """Stop discovering work, then stop every runner. Safe to repeat."""
        if self._stopped:
            return
        self._stopped = True

        if self.initialized is not None and not self.initialized.done():
            await asyncio.wait([self.initialized])

        if self._work_watch is not None:
            await self._work_watch.stop()

        runners = list(self._work.values())
        results = await asyncio.gather(*(runner.stop() for runner in runners), return_exceptions=True)
        self._work.clear()
        if self.metrics:
            self.metrics.set_active_work_units(0)

        errors = [result for result in results if isinstance(result, BaseException)]
        for error in errors:
            self.logger.error("Failed to stop work", error=str(error))

        self.logger.info("Rules worker stopped", runners=len(runners), failures=len(errors))
        if errors:
            raise errors[0]

    def status(self) -> Dict[str, Any]:
        task = self.initialized
        error = self.initialization_error
        return {
            "service": self.name,
            "initialized": task is not None and task.done() and error is None and not task.cancelled(),
            "initialization_error": str(error) if error else None,
            "stopped": self._stopped,
            "actions": self.actions.names(),
            "conditions": self.conditions.names(),
            "work": {work_id: runner.status() for work_id, runner in self._work.items()}
        }
