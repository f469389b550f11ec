from tools.dispatcher import FailureKind, ToolDispatcher, ToolResponse, ToolSpec
from tools.registry import build_dispatcher, register_tools

__all__ = ["FailureKind", "ToolDispatcher", "ToolResponse", "ToolSpec", "build_dispatcher", "register_tools"]
