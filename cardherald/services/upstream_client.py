"""
Upstream pipeline client.

Posts a chat query to a pipeline run endpoint and returns whatever it
answers. The envelope is untrusted and arbitrarily shaped; interpreting
it is the response extractor's job.
"""

import logging
from typing import Any

import httpx

from cardherald.config import settings
from cardherald.models.failure import UpstreamError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"


def build_payload(
    user_id: str,
    display_name: str,
    query_text: str,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Request body of the pipeline run API."""
    return {
        "output_type": "chat",
        "input_type": "chat",
        "input_value": query_text,
        "metadata": {"userId": user_id, "username": display_name, **(metadata or {})},
    }


class UpstreamClient:
    """
    Async client for the pipeline run API.

    One instance is shared for the process lifetime so connections are
    reused. Close it with aclose().
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = settings.langflow_api_key if api_key is None else api_key
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds or settings.upstream_http_timeout_seconds
        )

    async def call(
        self,
        user_id: str,
        display_name: str,
        query_text: str,
        endpoint_url: str,
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        """
        Run a query against one pipeline endpoint.

        Args:
            user_id: Requesting user, forwarded in metadata
            display_name: Requesting user's display name, forwarded in metadata
            query_text: The chat input
            endpoint_url: Pipeline run URL
            metadata: Extra metadata merged into the request (e.g. a result limit)

        Returns:
            Parsed JSON body, or the raw text when the body is not JSON

        Raises:
            UpstreamError: If the endpoint answers with a non-2xx status
            httpx.HTTPError: If the request cannot be completed
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers[API_KEY_HEADER] = self.api_key

        response = await self._client.post(
            endpoint_url,
            json=build_payload(user_id, display_name, query_text, metadata),
            headers=headers,
        )

        if not response.is_success:
            logger.warning(
                "upstream_error",
                extra={
                    "status": response.status_code,
                    "body": response.text[:500],
                    "endpoint": endpoint_url,
                },
            )
            raise UpstreamError(status=response.status_code, body=response.text)

        try:
            return response.json()
        except ValueError:
            logger.info("upstream_non_json_body", extra={"endpoint": endpoint_url})
            return response.text

    async def aclose(self) -> None:
        await self._client.aclose()
