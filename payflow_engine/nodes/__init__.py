"""
Node handlers for the workflow engine.
"""

from .base import TRIGGER_NODE_TYPES, NodeHandler, NodeRun, is_trigger_node
from .factory import NodeHandlerFactory, create_default_factory, get_node_handler_factory

__all__ = [
    "TRIGGER_NODE_TYPES",
    "NodeHandler",
    "NodeRun",
    "is_trigger_node",
    "NodeHandlerFactory",
    "create_default_factory",
    "get_node_handler_factory",
]
