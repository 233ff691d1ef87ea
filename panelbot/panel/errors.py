from __future__ import annotations


class PanelError(Exception):
    """Base error for panel-related failures."""


class PanelConnectionError(PanelError):
    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class PanelAuthError(PanelError):
    def __init__(self, message: str = "Authentication failed", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PanelTimeoutError(PanelError):
    def __init__(self, message: str = "Request timed out", timeout: float | None = None) -> None:
        super().__init__(message)
        self.timeout = timeout


class TenantNotConfiguredError(PanelError):
    def __init__(self, guild_id: str) -> None:
        super().__init__("Panel is not configured for this server. Use /setup to connect.")
        self.guild_id = guild_id


class ServerNotFoundError(PanelError):
    def __init__(self, server_id: str) -> None:
        super().__init__(f'Server with ID "{server_id}" not found')
        self.server_id = server_id


class ServerActionError(PanelError):
    def __init__(self, action: str, server_id: str, message: str | None = None) -> None:
        super().__init__(message or f'Failed to {action} server "{server_id}"')
        self.action = action
        self.server_id = server_id


class EncryptionError(Exception):
    pass


class DecryptionError(EncryptionError):
    pass


class ConfigurationError(Exception):
    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


USER_MESSAGES = {
    "connection": "Unable to connect to the panel. Please check if the panel is online.",
    "auth": "Authentication failed. Please run `/setup` again to reconnect.",
    "timeout": "The request timed out. Please try again.",
    "not_configured": "Panel is not configured. Use `/setup` to connect your DiscoPanel instance.",
    "server_not_found": "Server not found. It may have been removed from the panel.",
    "encryption": "Failed to process secure data. Please run `/setup` again.",
    "unknown": "An unexpected error occurred. Please try again later.",
}


def parse_error_message(error: Exception) -> str:
    """
    Map raw exceptions into a one-line summary for logs.
    """
    t = type(error).__name__
    if isinstance(error, PanelTimeoutError):
        return f"⏱️ Timeout: {error} ({error.timeout}s)" if error.timeout else f"⏱️ Timeout: {error}"
    if isinstance(error, PanelAuthError):
        return f"❌ Authentication Error: {error}"
    if isinstance(error, PanelConnectionError):
        return f"❌ Connection Error: {error}"
    if isinstance(error, ServerNotFoundError):
        return f"❌ Not Found: {error}"
    return f"❌ {t}: {str(error).split(chr(10))[0][:100]}"


def format_user_friendly_error(error: Exception) -> str:
    """
    Short, safe error message suitable for end users.
    """
    if isinstance(error, TenantNotConfiguredError):
        return USER_MESSAGES["not_configured"]
    if isinstance(error, PanelAuthError):
        return USER_MESSAGES["auth"]
    if isinstance(error, PanelTimeoutError):
        return USER_MESSAGES["timeout"]
    if isinstance(error, PanelConnectionError):
        return USER_MESSAGES["connection"]
    if isinstance(error, ServerNotFoundError):
        return USER_MESSAGES["server_not_found"]
    if isinstance(error, ServerActionError):
        return str(error)
    if isinstance(error, ConfigurationError):
        return f"Configuration error: {error}"
    if isinstance(error, EncryptionError):
        return USER_MESSAGES["encryption"]
    return USER_MESSAGES["unknown"]
