"""Exception taxonomy shared by the services and routers."""


class ToasterError(Exception):
    """Base class for all application errors"""


class ConfigurationError(ToasterError):
    """No client identity is available in either mode."""


class MissingTokenError(ToasterError):
    """No stored or environment-supplied token and no prior authorization."""


class NotInitializedError(ToasterError):
    """Credentials were requested before ``initialize()`` completed."""


class AuthorizationStateError(ToasterError):
    """The OAuth state nonce is missing, stale, or does not match."""


class UpstreamError(ToasterError):
    """An upstream token endpoint answered with an error, or not at all."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TokenExchangeError(UpstreamError):
    """The provider (or proxy) rejected an authorization-code exchange."""


class TokenRefreshError(UpstreamError):
    """The provider (or proxy) rejected a token refresh, or none was possible."""


class ListenerStartError(ToasterError):
    """An ingestion listener could not connect or subscribe."""

    def __init__(self, listener: str, message: str) -> None:
        super().__init__(f"{listener}: {message}")
        self.listener = listener
