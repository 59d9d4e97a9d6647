"""
Handler package.

Defines the Action and Condition handler definitions a service passes to
the worker, the Descriptor model published for each of them, and the
HandlerRegistry that keeps them by name.
"""

from .models import Action, Condition, Descriptor
from .registry import HandlerRegistry

__all__ = ["Action", "Condition", "Descriptor", "HandlerRegistry"]
