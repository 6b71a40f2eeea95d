"""
parcelspine.packages - materialization, reductions, throttling and the
refresh manager.
"""

from parcelspine.packages.manager import PACKAGE_PAGE_MARKERS, REFRESH_OPERATION, PackageStatusManager
from parcelspine.packages.materializer import PackageMaterializer, validate_patch
from parcelspine.packages.summary import PRIORITY_LEAD_DAYS, PackageSummary, apply_priority, summarize
from parcelspine.packages.throttle import ThrottleGovernor, ThrottleWindows

__all__ = [
    "PACKAGE_PAGE_MARKERS",
    "REFRESH_OPERATION",
    "PackageStatusManager",
    "PackageMaterializer",
    "validate_patch",
    "PRIORITY_LEAD_DAYS",
    "PackageSummary",
    "apply_priority",
    "summarize",
    "ThrottleGovernor",
    "ThrottleWindows",
]
