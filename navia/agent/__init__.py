from .actions import ActionExecutor
from .lifecycle import RunLifecycleManager
from .loop import DecisionLoop

__all__ = ["ActionExecutor", "DecisionLoop", "RunLifecycleManager"]
