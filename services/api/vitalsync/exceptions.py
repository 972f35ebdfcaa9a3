"""Error taxonomy for the WHOOP sync subsystem."""


class VitalSyncError(Exception):
    """Base class for all sync subsystem errors."""


class ConfigurationError(VitalSyncError):
    """Missing or malformed configuration. Fatal at startup."""


class TokenExchangeError(VitalSyncError):
    """The provider rejected an authorization code."""

    def __init__(self, body: str) -> None:
        super().__init__(f"Token exchange failed: {body}")
        self.body = body


class TokenRefreshError(VitalSyncError):
    """The provider rejected a refresh grant. The connection must be re-authorised."""

    def __init__(self, body: str) -> None:
        super().__init__(f"Token refresh failed: {body}")
        self.body = body


class RequestError(VitalSyncError):
    """Non-2xx response from the provider API after at most one refresh retry."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"WHOOP API error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class IntegrityError(VitalSyncError):
    """Encrypted token failed authentication (corrupt data or rotated key)."""


class NoConnectionError(VitalSyncError):
    """No stored provider credentials for the user."""

    def __init__(self, user_id) -> None:
        super().__init__("No WHOOP connection found")
        self.user_id = user_id


class SignatureError(VitalSyncError):
    """Webhook signature missing or invalid."""


class SyncInProgressError(VitalSyncError):
    """Another sync pass currently holds the per-user lock."""

    def __init__(self, user_id) -> None:
        super().__init__("A sync is already in progress")
        self.user_id = user_id
