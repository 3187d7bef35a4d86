"""Credential-header strategies for gateway HTTP calls.

Gateway deployments disagree on how the API key is presented and do not
advertise which convention they accept. Requests try each strategy in order
and keep the first response that is not an authentication rejection.
"""

import logging
from dataclasses import dataclass

import httpx

from app.infrastructure.gateway.base import GatewayError

logger = logging.getLogger(__name__)

AUTH_REJECTED_STATUSES = frozenset({401})


@dataclass(frozen=True)
class AuthStrategy:
    """One way of presenting an API key."""

    name: str
    header: str
    template: str = "{key}"

    def headers(self, api_key: str) -> dict[str, str]:
        return {self.header: self.template.format(key=api_key)}


X_API_KEY = AuthStrategy("x-api-key", "X-Api-Key")
BEARER = AuthStrategy("bearer", "Authorization", "Bearer {key}")
RAW_AUTHORIZATION = AuthStrategy("raw-authorization", "Authorization")
APIKEY_HEADER = AuthStrategy("apikey", "apikey")

DEFAULT_AUTH_STRATEGIES = (X_API_KEY, BEARER, RAW_AUTHORIZATION, APIKEY_HEADER)


async def request_with_auth_fallback(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    api_key: str | None,
    strategies: tuple[AuthStrategy, ...] = DEFAULT_AUTH_STRATEGIES,
    **kwargs,
) -> httpx.Response:
    """Send a request, cycling credential conventions until one is accepted.

    Args:
        client: HTTP client to send with
        method: HTTP method
        url: Absolute URL
        api_key: Gateway API key; without one a single unauthenticated request is sent
        strategies: Strategies to try, in order
        **kwargs: Passed through to client.request

    Returns:
        The first response that is not an auth rejection, or the last rejection

    Raises:
        GatewayError: If every attempt failed at the transport level
    """
    if not api_key:
        try:
            return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {url} failed: {e}") from e

    extra_headers = kwargs.pop("headers", None) or {}
    last_response: httpx.Response | None = None
    last_error: httpx.HTTPError | None = None

    for strategy in strategies:
        headers = {**extra_headers, **strategy.headers(api_key)}
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.debug("Gateway request failed", extra={"auth_strategy": strategy.name, "error": str(e)})
            last_error = e
            continue

        if response.status_code not in AUTH_REJECTED_STATUSES:
            return response

        logger.debug("Gateway rejected credentials", extra={"auth_strategy": strategy.name, "url": url})
        last_response = response

    if last_response is not None:
        return last_response
    raise GatewayError(f"{method} {url} failed: {last_error}") from last_error
