from apps.audit.models import AuditLog


def record_audit(*, actor, action, entity_type, entity_id, payload=None, branch=None):
    """Append an audit row. Anonymous or system actors are stored as NULL."""
    if actor is not None and not getattr(actor, "is_authenticated", False):
        actor = None
    return AuditLog.objects.create(
        actor=actor,
        branch=branch,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        payload=payload or {},
    )