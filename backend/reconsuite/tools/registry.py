"""
Tool registry.

Tools register themselves with the :meth:`ToolRegistry.register` class
decorator when :mod:`reconsuite.tools` is imported.  The executor resolves a
scan's tool name here exactly once to decide between the built-in and the
external execution path.
"""

from __future__ import annotations

from typing import Optional, Type

from reconsuite.tools.base import BaseTool, ExternalTool, ToolKind


class ToolRegistry:
    """Catalogue of every available tool, keyed by ``name``.

    Example::

        @ToolRegistry.register
        class DigTool(ExternalTool):
            name = "dig"
            ...
    """

    _tools: dict[str, Type[BaseTool]] = {}

    @classmethod
    def register(cls, tool_class: Type[BaseTool]) -> Type[BaseTool]:
        """Class decorator adding *tool_class* under its ``name``.

        Registering a second class with the same name replaces the first.
        """
        cls._tools[tool_class.name] = tool_class
        return tool_class

    @classmethod
    def unregister(cls, name: str) -> None:
        cls._tools.pop(name, None)

    @classmethod
    def get(cls, name: str) -> Optional[BaseTool]:
        """Return a fresh instance of the tool called *name*, or ``None``."""
        tool_class = cls._tools.get(name)
        return tool_class() if tool_class is not None else None

    @classmethod
    def is_builtin(cls, name: str) -> bool:
        tool_class = cls._tools.get(name)
        return tool_class is not None and tool_class.kind is ToolKind.BUILTIN

    @classmethod
    def names(cls) -> list[str]:
        return sorted(cls._tools)

    @classmethod
    def all(cls) -> list[BaseTool]:
        return [cls._tools[name]() for name in sorted(cls._tools)]

    @classmethod
    def external(cls) -> list[ExternalTool]:
        return [tool for tool in cls.all() if isinstance(tool, ExternalTool)]
