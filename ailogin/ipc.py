"""IPC command surface for OAuth connections.

Exposes ``oauth:list``, ``oauth:connect`` and ``oauth:disconnect`` to a
host application's message bus. Handlers take the raw request payload,
validate it with pydantic, and return camelCase dicts. Access tokens
are never exposed over IPC.
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .models import ConnectResult, DisconnectResult, ProviderRequest


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .auth.manager import OAuthManager

    IpcHandler = Callable[[Any], Awaitable[dict[str, Any]]]


logger = logging.getLogger("ailogin.ipc")

CHANNEL_LIST = "oauth:list"
CHANNEL_CONNECT = "oauth:connect"
CHANNEL_DISCONNECT = "oauth:disconnect"


def _parse_request(payload: Any) -> ProviderRequest | str:
    """Validate a ``{"providerId": ...}`` payload; returns an error string on failure."""
    try:
        return ProviderRequest.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Rejected IPC request %r: %s", payload, exc)
        return "Invalid request: providerId is required"


def register_oauth_handlers(
    register: Callable[[str, IpcHandler], Any],
    manager: OAuthManager,
) -> dict[str, IpcHandler]:
    """Register the OAuth handlers on a host message bus.

    Parameters
    ----------
    register : callable
        ``register(channel, handler)`` provided by the host.
    manager : OAuthManager
        The manager the handlers delegate to.

    Returns
    -------
    dict[str, callable]
        The registered handlers keyed by channel.
    """

    async def handle_list(payload: Any = None) -> dict[str, Any]:  # noqa: ARG001
        result = await manager.list()
        return result.to_wire()

    async def handle_connect(payload: Any = None) -> dict[str, Any]:
        request = _parse_request(payload)
        if isinstance(request, str):
            return ConnectResult(success=False, error=request).to_wire()
        result = await manager.connect(request.provider_id)
        return result.to_wire()

    async def handle_disconnect(payload: Any = None) -> dict[str, Any]:
        request = _parse_request(payload)
        if isinstance(request, str):
            return DisconnectResult(success=False, error=request).to_wire()
        result = await manager.disconnect(request.provider_id)
        return result.to_wire()

    handlers: dict[str, IpcHandler] = {
        CHANNEL_LIST: handle_list,
        CHANNEL_CONNECT: handle_connect,
        CHANNEL_DISCONNECT: handle_disconnect,
    }
    for channel, handler in handlers.items():
        register(channel, handler)
    return handlers
