"""Web framework hooks."""

from recordmap.hooks.maintenance import (
    MaintenanceStatus,
    check_maintenance,
    install_maintenance_guard,
)

__all__ = ["MaintenanceStatus", "check_maintenance", "install_maintenance_guard"]
