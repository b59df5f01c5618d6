"""T-SQL text helpers shared by the SQL Server adapter."""

from __future__ import annotations

from sqlops.core.models import Permission, PermissionState


def quote_name(identifier: str) -> str:
    """Bracket-quote an identifier: `my]db` -> `[my]]db]`."""
    return "[" + identifier.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Return a Unicode string literal: `it's` -> `N'it''s'`."""
    return "N'" + value.replace("'", "''") + "'"


def permission_target(permission: Permission) -> str:
    """Return the ` ON <securable>` clause, or empty for server/database class."""
    return f" ON {permission.securable}" if permission.securable else ""


def grant_statement(permission: Permission, principal: str) -> str:
    """Build the GRANT / GRANT WITH GRANT OPTION / DENY statement for a permission."""
    target = permission_target(permission)
    who = quote_name(principal)
    if permission.state == PermissionState.DENY:
        return f"DENY {permission.name}{target} TO {who};"
    if permission.state == PermissionState.GRANT_WITH_GRANT:
        return f"GRANT {permission.name}{target} TO {who} WITH GRANT OPTION;"
    return f"GRANT {permission.name}{target} TO {who};"


def revoke_statement(permission: Permission, principal: str) -> str:
    """Build the REVOKE statement; CASCADE is required for grantable permissions."""
    target = permission_target(permission)
    cascade = " CASCADE" if permission.state == PermissionState.GRANT_WITH_GRANT else ""
    return f"REVOKE {permission.name}{target} FROM {quote_name(principal)}{cascade};"
