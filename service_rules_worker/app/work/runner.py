"""
Runner for a single piece of compiled work.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from shared.logging import get_logger, set_work_context, clear_context
from shared.errors import RemoteOperationError, SchemaCompileError, ValidationRejection
from shared.metrics import MetricsCollector
from ..feed.list_watch import ListWatch
from ..handlers.models import Action
from ..store.protocol import Change, DocumentStore
from .models import CompiledWork, Rule, RuleState


def compile_validator(schema: Dict[str, Any]):
    """Compile a JSON Schema into a validator (Draft 7 unless ``$schema`` says otherwise)."""
    validator_class = validator_for(schema, default=Draft7Validator)
    try:
        validator_class.check_schema(schema)
    except SchemaError as e:
        raise SchemaCompileError(e.message, {"schema_path": list(e.path)})
    return validator_class(schema)


class WorkRunner:
    """
    Runs one piece of compiled work, but only while its rule is enabled.

    The rule is watched from construction on. Enabling it opens a resumable
    ListWatch on the work's path that feeds schema-valid items to the
    action's callback; disabling it stops that watch again. Rule changes are
    applied one at a time, in the order they were delivered.

    Must be constructed inside a running event loop.
    """

    def __init__(
        self,
        store: DocumentStore,
        name: str,
        work: CompiledWork,
        action: Action,
        metrics: Optional[MetricsCollector] = None
    ):
        self.store = store
        self.name = name
        self.work = work
        self.action = action
        self.metrics = metrics
        self.logger = get_logger("rules.work.runner").bind(work=name, rule=work.rule_id)

        # Pre-compile schema; a bad schema fails this runner only
        self.validator = compile_validator(work.item_schema)

        self._enabled = False
        self._version: Optional[int] = None
        self._work_watch: Optional[ListWatch] = None
        self._lock = asyncio.Lock()
        self._stopped = False

        self._rule_watch = asyncio.get_running_loop().create_task(
            self.store.watch(work.rule.path, self._on_rule_change)
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def init(self):
        """Wait for the rule watch, then start working if the rule is enabled."""
        await self._rule_watch

        # Authoritative read: the rule may have been enabled before our watch
        rule = Rule.model_validate(await self.store.get(self.work.rule.path))
        state = RuleState.from_rule(rule)
        if state.enabled:
            async with self._lock:
                await self._apply(state)

    async def handle_rule_change(self, change: Mapping[str, Any]):
        """Apply a (partial) rule change."""
        state = RuleState.from_change(change)
        async with self._lock:
            await self._apply(state)

    async def _on_rule_change(self, change: Change):
        # Only top-level merges can carry the enabled flag
        if change.type != "merge" or change.path not in ("", "/"):
            return
        await self.handle_rule_change(change.body)

    async def _apply(self, state: RuleState):
        if self._stopped or state.enabled is None:
            return

        if state.version is not None and self._version is not None and state.version < self._version:
            self.logger.debug("Ignoring stale rule change", version=state.version, current=self._version)
            return
        if state.version is not None:
            self._version = state.version

        # Replayed or duplicate notification
        if state.enabled == self._enabled:
            return

        self.logger.info("Work enabled" if state.enabled else "Work disabled", version=state.version)
        if state.enabled:
            await self._open_work_watch()
        else:
            await self._close_work_watch()

        if self.metrics:
            self.metrics.record_transition(state.enabled)

    async def _open_work_watch(self):
        watch = ListWatch(
            self.store,
            self.name,
            self.work.path,
            on_item=self._run_item,
            resume=True,
            assert_item=self._assert_item,
            metrics=self.metrics,
            metrics_label=self.action.name
        )
        await watch.start()
        self._work_watch = watch
        self._enabled = True

    async def _close_work_watch(self):
        watch = self._work_watch
        if watch is not None:
            await watch.stop()
        self._work_watch = None
        self._enabled = False

    def _assert_item(self, item: Any):
        errors = list(self.validator.iter_errors(item))
        if errors:
            raise ValidationRejection(
                f"Item does not match schema of work {self.name}",
                {"errors": [error.message for error in errors]}
            )

    async def _run_item(self, item: Any, item_id: str):
        set_work_context(work_id=self.name, item_id=item_id)
        try:
            self.logger.debug("Running action", action=self.action.name, item_id=item_id)
            if self.metrics:
                with self.metrics.time_operation("rules_handler_duration_seconds", action=self.action.name):
                    await self.action.callback(item, dict(self.work.options))
            else:
                await self.action.callback(item, dict(self.work.options))
        finally:
            clear_context()

    async def stop(self):
        """Stop the item watch (if any) and the rule watch. Safe to repeat."""
        async with self._lock:
            if self._stopped:
                return
            self._stopped = True

            try:
                await self._close_work_watch()
            finally:
                await self._cancel_rule_watch()

        self.logger.info("Work stopped")

    async def _cancel_rule_watch(self):
        try:
            handle = await self._rule_watch
        except RemoteOperationError as e:
            self.logger.debug("Rule watch was never opened", error=str(e))
            return
        await self.store.unwatch(handle)

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "rule": self.work.rule_id,
            "action": self.action.name,
            "path": self.work.path,
            "enabled": self._enabled,
            "stopped": self._stopped
        }
