"""
Rules Worker package.

Lets a service declare the actions and conditions it implements, publish
them to the rules engine, and run the work the engine compiles from
user-configured rules, but only while the corresponding rule is enabled.

- app.worker: RulesWorker, descriptor publishing and work discovery
- app.work: WorkRunner and the compiled-work/rule models
- app.handlers: Action/Condition definitions and the handler registry
- app.schema: Schema templates with inputs, parameter schema compiler
- app.feed: ListWatch change feed over store collections
- app.store: Document store contract and OADA client
- app.main: FastAPI service wrapper with health/metrics/work routes

Design notes:
- Module import must not perform network calls; all IO happens in
  start()/stop() or the service lifecycle hooks.
- Use the shared/ utilities for logging, metrics, config, and errors.
"""

from .handlers.models import Action, Condition
from .schema.template import Placeholder, SchemaInputs, render_schema
from .worker import RulesWorker

__all__ = ["Action", "Condition", "Placeholder", "RulesWorker", "SchemaInputs", "render_schema"]
