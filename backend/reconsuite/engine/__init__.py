"""ReconSuite execution engine - runner, broadcast hub, and parsers."""

from reconsuite.engine.broadcast import BroadcastHub, Observer
from reconsuite.engine.parsers import Finding, parse_output
from reconsuite.engine.runner import OutputLine, ToolResult, ToolRunner, ToolSpec

__all__ = [
    "BroadcastHub",
    "Observer",
    "Finding",
    "parse_output",
    "OutputLine",
    "ToolResult",
    "ToolRunner",
    "ToolSpec",
]
