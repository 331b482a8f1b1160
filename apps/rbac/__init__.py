"""
RBAC (Role-Based Access Control) application.

Provides multi-city access control with:
- Global user identity and session tokens
- Global roles (profiles) and per-city roles (memberships)
- A single authorization gate with machine-readable deny reasons
- City-access middleware and DRF permission classes
- Audit logging of privileged mutations
"""
