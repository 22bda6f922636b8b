# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - config.py: Runtime remote configuration
# - dispatch.py: Jobs, employees, schedules, profiles, locations
# - inspections.py: Cleaning inspections, templates, inspection employees
# - backup.py: Dispatch backup export and import
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import config
from . import dispatch
from . import inspections
from . import backup

__all__ = [
    "health",
    "config",
    "dispatch",
    "inspections",
    "backup",
]
