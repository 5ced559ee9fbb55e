"""ailogin exception hierarchy.

All ailogin-specific exceptions inherit from AILoginError, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class AILoginError(Exception):
    """Base exception for all ailogin errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize ailogin exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, flow_id, status_code, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class StorageError(AILoginError):
    """Token store could not be written.

    Read failures never raise (the store falls back to empty);
    write failures surface through this error.
    """

    def __init__(self, message: str, path: str | None = None, **context: Any) -> None:
        """Initialize storage error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        path : str, optional
            The storage location involved.
        **context : Any
            Additional context.
        """
        super().__init__(message, path=path, **context)
        self.path = path


class AuthenticationError(AILoginError):
    """Base exception for all authentication failures.

    Raised when an authorization flow, token exchange, refresh,
    or profile lookup fails.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider id (e.g., "anthropic", "openai").
        flow_id : str, optional
            The unique identifier of the auth flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, **context)
        self.provider = provider
        self.flow_id = flow_id


class UnknownProviderError(AuthenticationError):
    """No provider is registered under the requested id."""


class UnsupportedOperationError(AuthenticationError):
    """The provider does not implement the requested capability."""


class PortBindError(AuthenticationError):
    """The callback listener could not bind a local port."""

    def __init__(
        self,
        message: str,
        port: int | None = None,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize port bind error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        port : int, optional
            The port that could not be bound.
        provider : str, optional
            The provider id.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, port=port, **context)
        self.port = port


class BrowserLaunchError(AuthenticationError):
    """The system browser could not be opened."""


class AuthFlowTimeout(AuthenticationError):
    """Authentication flow timed out.

    Raised when no OAuth2 callback arrives within the
    configured window.
    """

    def __init__(
        self,
        message: str,
        timeout: float,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize timeout error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        timeout : float
            The timeout value in seconds.
        provider : str, optional
            The provider id.
        flow_id : str, optional
            The unique identifier of the auth flow.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, timeout=timeout, **context)
        self.timeout = timeout


class InvalidStateError(AuthenticationError):
    """The callback ``state`` did not match the one sent (possible CSRF)."""


class NoAuthorizationCodeError(AuthenticationError):
    """The callback carried neither an error nor an authorization code."""


class ProviderDeniedAuthorization(AuthenticationError):
    """The provider redirected back with an ``error`` parameter.

    The message is the provider's ``error`` value, followed by its
    ``error_description`` when one was sent.
    """

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        provider: str | None = None,
        flow_id: str | None = None,
    ) -> None:
        """Initialize provider denial.

        Parameters
        ----------
        error : str
            The ``error`` query parameter.
        error_description : str, optional
            The ``error_description`` query parameter.
        provider : str, optional
            The provider id.
        flow_id : str, optional
            The unique identifier of the auth flow.
        """
        message = f"{error}: {error_description}" if error_description else error
        super().__init__(message, provider=provider, flow_id=flow_id)
        self.error = error
        self.error_description = error_description


class TokenError(AuthenticationError):
    """Base exception for token-related failures."""


class TokenExchangeError(TokenError):
    """Authorization code exchange failed.

    Carries the HTTP status and response body when the token
    endpoint answered; both are None for transport failures.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize exchange error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status_code : int, optional
            HTTP status returned by the token endpoint.
        body : str, optional
            Response body returned by the token endpoint.
        provider : str, optional
            The provider id.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, status_code=status_code, **context)
        self.status_code = status_code
        self.body = body


class InvalidAuthorizationCodeError(TokenExchangeError):
    """The token endpoint rejected the authorization code (HTTP 401)."""


class TokenRefreshError(TokenError):
    """Token refresh failed.

    Raised when attempting to refresh an expired access token
    using a refresh token fails.
    """


class ProfileFetchError(AuthenticationError):
    """The provider profile endpoint could not be read."""
