"""
ReconSuite ORM models package.

Re-exports every model class so that consumers can import directly from
``reconsuite.models`` instead of reaching into individual submodules::

    from reconsuite.models import Project, Scan, ScanStatus, Result
"""

from reconsuite.models.project import Project
from reconsuite.models.scan import Scan, ScanStatus
from reconsuite.models.result import Result

__all__: list[str] = [
    "Project",
    "Scan",
    "ScanStatus",
    "Result",
]
