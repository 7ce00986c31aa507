"""
Base interfaces for every scan tool.

A tool is either **external** (an executable spawned through the
:class:`~reconsuite.engine.runner.ToolRunner`) or **built-in** (an async
probe executed in-process).  Both variants share :class:`BaseTool` and are
told apart by their ``kind``, which the executor uses for routing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Mapping

from reconsuite.core.security import TargetValidationError, validate_target, validate_url
from reconsuite.engine.parsers import Finding
from reconsuite.engine.runner import ToolSpec


class ToolKind(Enum):
    """How a tool is executed."""

    BUILTIN = "builtin"
    EXTERNAL = "external"


class ToolCategory(str, Enum):
    """UI grouping of tools; also the default ``scan_type`` of a scan.

    Attributes:
        PASSIVE: No direct contact with the target, or only public sources.
        ACTIVE:  Sends traffic to the target's network services.
        WEB:     Talks HTTP(S) to the target's web server.
    """

    PASSIVE = "passive"
    ACTIVE = "active"
    WEB = "web"


class ToolSpecError(ValueError):
    """Raised when a tool invocation cannot be built from the scan's input."""


class ProbeError(RuntimeError):
    """Raised by a built-in probe for an expected failure (unreachable host ...)."""


class BaseTool(ABC):
    """Attributes shared by every tool.

    Attributes:
        name:     Unique identifier used in the registry, the API, and scans.
        label:    Human-readable name.
        category: :class:`ToolCategory` of the tool.
        kind:     :class:`ToolKind`; set by the two concrete base classes.
    """

    name: str = "base"
    label: str = ""
    category: ToolCategory = ToolCategory.PASSIVE
    kind: ToolKind

    @staticmethod
    def param(parameters: Mapping[str, object], key: str, default: str = "") -> str:
        """Return ``parameters[key]`` as a stripped string, or *default* when blank."""
        value = parameters.get(key)
        if value is None:
            return default
        text = str(value).strip()
        return text or default


class ExternalTool(BaseTool):
    """A tool backed by an executable on ``PATH``.

    Subclasses set ``binary`` and ``timeout`` and implement
    :meth:`build_args`.

    Attributes:
        binary:      Executable name.
        timeout:     Wall-clock limit in seconds.
        target_kind: ``"host"`` (IP/CIDR/hostname) or ``"url"``.
        parser:      Parser key for the captured stdout; defaults to ``name``.
        version_arg: Argument printing the version, ``""`` if none exists.
    """

    kind = ToolKind.EXTERNAL
    binary: str = ""
    timeout: float = 30.0
    target_kind: str = "host"
    parser: str = ""
    version_arg: str = "--version"

    @property
    def parser_key(self) -> str:
        return self.parser or self.name

    @abstractmethod
    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        """Return the argument list for an already-validated *target*.

        Raises:
            ToolSpecError: If a parameter is missing or invalid.
        """

    def build_spec(self, target: str, parameters: Mapping[str, object]) -> ToolSpec:
        """Validate the input and build the immutable :class:`ToolSpec`.

        Raises:
            ToolSpecError: If the target or any parameter is invalid.
        """
        try:
            if self.target_kind == "url":
                target = validate_url(target)
            else:
                target = validate_target(target)
        except TargetValidationError as exc:
            raise ToolSpecError(str(exc)) from exc

        args = self.build_args(target, parameters)
        return ToolSpec(name=self.name, binary=self.binary, args=tuple(args), timeout=self.timeout)


class BuiltinTool(BaseTool):
    """A tool implemented as an in-process async probe.

    Attributes:
        timeout:  Upper bound for one probe run, in seconds.
        announce: Progress line emitted before probing; ``{target}`` is
                  substituted.  Empty for no line.
    """

    kind = ToolKind.BUILTIN
    timeout: float = 60.0
    announce: str = ""

    @abstractmethod
    async def probe(self, target: str, parameters: Mapping[str, object]) -> list[Finding]:
        """Run the probe against *target*.

        Raises:
            ProbeError: For expected failures; the message is shown to the user.
        """
