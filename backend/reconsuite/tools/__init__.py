"""
Scan tool catalogue -- import all tools for auto-registration.

Importing this package loads every concrete tool class and, through the
:meth:`ToolRegistry.register <reconsuite.tools.registry.ToolRegistry.register>`
decorator, registers it in the central tool registry.  The executor and the
API only need ``import reconsuite.tools`` to have the full catalogue.
"""

from reconsuite.tools.base import (
    BaseTool,
    BuiltinTool,
    ExternalTool,
    ProbeError,
    ToolCategory,
    ToolKind,
    ToolSpecError,
)
from reconsuite.tools.registry import ToolRegistry

# External command-line tools
from reconsuite.tools.external import (
    CurlTool,
    DigTool,
    DnsReconTool,
    GobusterTool,
    NetcatTool,
    NmapTool,
    SnmpWalkTool,
    TheHarvesterTool,
    TracerouteTool,
    WhatWebTool,
    WhoisTool,
)

# Built-in probes
from reconsuite.tools.osint import GoogleDorkingTool, OsintAggregatorTool
from reconsuite.tools.ssl_check import SSLCheckTool
from reconsuite.tools.web_probes import MetadataExtractTool, RobotsSitemapTool

__all__: list[str] = [
    "BaseTool",
    "BuiltinTool",
    "ExternalTool",
    "ProbeError",
    "ToolCategory",
    "ToolKind",
    "ToolRegistry",
    "ToolSpecError",
    # External tools
    "CurlTool",
    "DigTool",
    "DnsReconTool",
    "GobusterTool",
    "NetcatTool",
    "NmapTool",
    "SnmpWalkTool",
    "TheHarvesterTool",
    "TracerouteTool",
    "WhatWebTool",
    "WhoisTool",
    # Built-in probes
    "GoogleDorkingTool",
    "OsintAggregatorTool",
    "SSLCheckTool",
    "MetadataExtractTool",
    "RobotsSitemapTool",
]
