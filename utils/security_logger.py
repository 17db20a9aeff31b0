"""
Security logging utilities for RENDIX
Logs security-relevant events for audit purposes
"""

import logging
from datetime import datetime

from flask import current_app, has_app_context, has_request_context, request
from flask_login import current_user


security_logger = logging.getLogger('security')


def get_request_context():
    """Get current request context for logging"""
    if not has_request_context():
        return {}
    return {
        'ip': request.remote_addr,
        'user_agent': request.user_agent.string if request.user_agent else None,
        'endpoint': request.endpoint,
        'method': request.method,
    }


def _current_identity():
    if not has_request_context():
        return None, 'anonymous'
    if current_user and current_user.is_authenticated:
        return current_user.id, current_user.email
    return None, 'anonymous'


def log_security_event(event_type, message, **extra_data):
    """
    Log a security event

    Args:
        event_type: Type of security event (e.g., 'login', 'logout', 'permission_denied')
        message: Human-readable message
        **extra_data: Additional data to log
    """
    user_id, user_email = _current_identity()

    log_data = {
        'timestamp': datetime.utcnow().isoformat(),
        'event_type': event_type,
        'message': message,
        'user_id': user_id,
        'user_email': user_email,
        'context': get_request_context(),
        **extra_data
    }

    security_logger.warning(f"[SECURITY] {event_type}: {message}", extra={'security_event': log_data})
    if has_app_context():
        current_app.logger.info(f"[SECURITY] {event_type}: {message}")


def log_login_attempt(email, success, reason=None):
    """Log a login attempt"""
    log_security_event(
        'login_attempt',
        f"Login attempt for {email}: {'SUCCESS' if success else 'FAILED'}",
        email=email,
        success=success,
        reason=reason
    )


def log_logout(email):
    """Log a logout event"""
    log_security_event(
        'logout',
        f"User {email} logged out",
        email=email
    )


def log_registration(email):
    log_security_event('registration', f"User {email} registered", email=email)


def log_permission_denied(resource, action, reason=None):
    """Log a permission denied event"""
    log_security_event(
        'permission_denied',
        f"Permission denied for {action} on {resource}",
        resource=resource,
        action=action,
        reason=reason
    )


def log_member_change(organization_id, member_user_id, action, old_role=None, new_role=None):
    """
    Log a membership change (add, role change, removal)

    Args:
        organization_id: Organization affected
        member_user_id: User whose membership changed
        action: 'add', 'role_change' or 'remove'
    """
    log_security_event(
        'member_change',
        f"Member {member_user_id} {action} in organization {organization_id}",
        organization_id=organization_id,
        member_user_id=member_user_id,
        action=action,
        old_role=str(old_role) if old_role else None,
        new_role=str(new_role) if new_role else None,
    )


def log_organization_change(user_id, old_org_id, new_org_id):
    """Log a user active organization change"""
    log_security_event(
        'organization_change',
        f"User {user_id} organization changed from {old_org_id} to {new_org_id}",
        user_id=user_id,
        old_org_id=old_org_id,
        new_org_id=new_org_id
    )


def log_data_deletion(table, record_id, organization_id=None):
    """Log data deletion"""
    log_security_event(
        'data_deletion',
        f"DELETE on {table} record {record_id}",
        table=table,
        record_id=record_id,
        organization_id=organization_id,
    )
