"""
Installation detection for external tools.

Looks every registered external tool's binary up on ``PATH`` and, when
found, records the first line of its version output.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from typing import Optional

from reconsuite.tools.base import ExternalTool
from reconsuite.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

_VERSION_TIMEOUT_SECONDS: float = 5.0
_MAX_VERSION_CHARS: int = 100


@dataclass
class ToolStatus:
    """Installation state of one external tool."""

    name: str
    label: str
    binary: str
    installed: bool
    path: Optional[str] = None
    version: Optional[str] = None


def first_version_line(output: str) -> str:
    """First non-empty line of *output*, capped at 100 characters."""
    text = output.strip()[:_MAX_VERSION_CHARS]
    return text.split("\n", 1)[0].strip()


async def _read_version(path: str, version_arg: str) -> Optional[str]:
    try:
        process = await asyncio.create_subprocess_exec(
            path,
            version_arg,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as exc:
        logger.debug("Cannot run %s %s: %s", path, version_arg, exc)
        return None

    try:
        output, _ = await asyncio.wait_for(process.communicate(), timeout=_VERSION_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return None

    if process.returncode != 0:
        return None
    return first_version_line(output.decode("utf-8", errors="replace")) or None


async def detect_tool(tool: ExternalTool) -> ToolStatus:
    path = shutil.which(tool.binary)
    status = ToolStatus(
        name=tool.name,
        label=tool.label,
        binary=tool.binary,
        installed=path is not None,
        path=path,
    )
    if path is not None and tool.version_arg:
        status.version = await _read_version(path, tool.version_arg)
    return status


async def detect_all() -> list[ToolStatus]:
    """Detect every registered external tool concurrently."""
    return list(await asyncio.gather(*(detect_tool(tool) for tool in ToolRegistry.external())))
