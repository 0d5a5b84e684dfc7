from .dependencies import (
    SettingsDep,
    get_app_settings,
    get_current_principal,
    require_admin,
    require_authenticated,
    require_editor,
    require_roles,
)

__all__ = [
    "SettingsDep",
    "get_app_settings",
    "get_current_principal",
    "require_admin",
    "require_authenticated",
    "require_editor",
    "require_roles",
]
