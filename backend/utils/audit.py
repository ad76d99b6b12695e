from database import database
from models import AuditLog, AuditAction
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

logger = logging.getLogger(__name__)

def calculate_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """Calculate the differences between before and after states.

    Returns a dict with:
    - added: fields that exist in after but not in before
    - removed: fields that exist in before but not in after
    - changed: fields that exist in both but have different values

    Nested dicts (limits, features, bundle_settings) are compared field by
    field and reported with dotted paths, e.g. "limits.maxBundles".
    """
    if not before and not after:
        return {}

    if not before:
        return {"added": after, "removed": {}, "changed": {}}

    if not after:
        return {"added": {}, "removed": before, "changed": {}}

    diff = {"added": {}, "removed": {}, "changed": {}}
    _diff_into(diff, before, after, prefix="")

    # Remove empty categories
    return {k: v for k, v in diff.items() if v}

def _diff_into(diff: Dict[str, Dict], before: Dict[str, Any], after: Dict[str, Any], prefix: str) -> None:
    all_keys = set(before.keys()) | set(after.keys())

    for key in all_keys:
        path = f"{prefix}{key}"
        before_val = before.get(key)
        after_val = after.get(key)

        if key not in before:
            diff["added"][path] = after_val
        elif key not in after:
            diff["removed"][path] = before_val
        elif isinstance(before_val, dict) and isinstance(after_val, dict):
            _diff_into(diff, before_val, after_val, prefix=f"{path}.")
        elif before_val != after_val:
            diff["changed"][path] = {
                "from": before_val,
                "to": after_val
            }

async def create_audit_log(
    action: AuditAction,
    actor_role: Optional[str] = None,
    actor_id: Optional[str] = None,
    store_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    auto_diff: bool = True
) -> str:
    """Create an audit log entry with optional automatic diff calculation.

    Args:
        action: The audit action type
        actor_role: Role of the admin performing the action
        actor_id: ID of the admin performing the action
        store_id: ID of the affected store
        resource_type: Type of resource being modified ('plan' or 'store')
        resource_id: Plan key or store ID
        before_state: State before the change
        after_state: State after the change
        metadata: Additional metadata
        ip_address: IP address of the request
        auto_diff: If True, automatically calculate and store diff
    """
    try:
        db = database.get_db()

        # Calculate diff if both states provided and auto_diff is enabled
        diff = None
        if auto_diff and before_state and after_state:
            diff = calculate_diff(before_state, after_state)

        # Merge diff into metadata
        enriched_metadata = metadata.copy() if metadata else {}
        if diff:
            enriched_metadata["diff"] = diff
            enriched_metadata["changes_count"] = (
                len(diff.get("added", {})) +
                len(diff.get("removed", {})) +
                len(diff.get("changed", {}))
            )

        audit_log = AuditLog(
            action=action,
            actor_role=actor_role,
            actor_id=actor_id,
            store_id=store_id,
            resource_type=resource_type,
            resource_id=resource_id,
            before_state=before_state,
            after_state=after_state,
            metadata=enriched_metadata if enriched_metadata else None,
            ip_address=ip_address
        )

        doc = audit_log.model_dump()
        doc["action"] = audit_log.action.value
        doc["timestamp"] = doc["timestamp"].isoformat() if isinstance(doc["timestamp"], datetime) else doc["timestamp"]

        await db.audit_logs.insert_one(doc)
        logger.info(f"Audit log created: {action.value}" + (f" with {enriched_metadata.get('changes_count', 0)} changes" if diff else ""))
        return audit_log.audit_id
    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        # Never fail the main operation due to audit log failure
        return ""

async def get_audit_logs_for_resource(
    resource_type: str,
    resource_id: str,
    limit: int = 50
) -> List[Dict[str, Any]]:
    """Get audit logs for a specific plan or store."""
    try:
        db = database.get_db()
        cursor = db.audit_logs.find(
            {"resource_type": resource_type, "resource_id": resource_id},
            {"_id": 0}
        ).sort("timestamp", -1).limit(limit)

        return await cursor.to_list(length=limit)
    except Exception as e:
        logger.error(f"Failed to get audit logs for resource: {e}")
        return []
