"""
Audit trail writer.

Records are added to the caller's session and committed with the change
they describe.
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pulserelay.models import AuditLog

RESOURCE_LOCATION = "location"

ACTION_SETTINGS_UPDATED = "location_settings_updated"
ACTION_DATA_CLEARED = "location_data_cleared"


def record_audit(
    db: AsyncSession,
    user_id: str,
    action: str,
    details: dict,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    resource_type: str = RESOURCE_LOCATION,
) -> AuditLog:
    """Stage an audit record in the current transaction."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        details={**details, "ip": ip, "userAgent": user_agent},
        ip_address=ip,
        user_agent=user_agent,
    )
    db.add(entry)
    return entry
