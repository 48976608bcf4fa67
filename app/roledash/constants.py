"""
Central constants for the RoleDash application.
"""
from __future__ import annotations

# Activity action tags
ACTION_LOGIN = "login"
ACTION_LOGOUT = "logout"
ACTION_REGISTER = "register"
ACTION_SETTINGS_UPDATE = "settings_update"
ACTION_PROFILE_UPDATE = "profile_update"
ACTION_PASSWORD_CHANGE = "password_change"
ACTION_ANALYTICS_REFRESH = "analytics_refresh"

# Stripped from request bodies before they are stored in activity details
SENSITIVE_BODY_FIELDS = frozenset({"password", "token", "current_password", "new_password"})

# Stripped from response payloads before they are stored in activity details
SENSITIVE_RESPONSE_FIELDS = frozenset({"token"})

THEMES = frozenset({"light", "dark", "auto"})

MIN_PASSWORD_LENGTH = 6
