"""Async HTTP client for the Kinto records API."""

import logging
from typing import Optional

import httpx

from notesync.exceptions import RecordConflictError, RemoteError, UnauthorizedError

logger = logging.getLogger(__name__)


class KintoHTTPClient:
    """Client for the Kinto HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            base_url: Kinto server URL, including the version prefix (e.g. .../v1)
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            transport: Optional httpx transport (used to fake the server in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_ssl = verify_ssl

        self.client = httpx.AsyncClient(
            timeout=timeout,
            verify=verify_ssl,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def records_url(self, bucket: str, collection: str) -> str:
        return f"{self.base_url}/buckets/{bucket}/collections/{collection}/records"

    async def server_info(self, headers: Optional[dict] = None) -> dict:
        """Fetch server capabilities and settings.

        Raises:
            RemoteError: Request failed
        """
        response = await self._request("GET", f"{self.base_url}/", headers=headers)
        return response.json()

    async def list_records(
        self,
        bucket: str,
        collection: str,
        since: Optional[int] = None,
        headers: Optional[dict] = None,
    ) -> tuple[list[dict], Optional[int]]:
        """List records, most recently modified first.

        Args:
            bucket: Bucket name
            collection: Collection name
            since: Only return records modified after this timestamp
            headers: Extra request headers (e.g. Authorization)

        Returns:
            Tuple of (records, collection timestamp from the ETag header)

        Raises:
            UnauthorizedError: Token rejected
            RemoteError: Request failed
        """
        query = f"_since={since}&" if since is not None else ""
        url = f"{self.records_url(bucket, collection)}?{query}_sort=-last_modified"

        response = await self._request("GET", url, headers=headers)
        records = response.json().get("data", [])
        etag = response.headers.get("ETag")
        timestamp = int(etag.strip('"')) if etag and etag.strip('"').isdigit() else None

        logger.debug(f"Listed {len(records)} records from {bucket}/{collection}")
        return records, timestamp

    async def put_record(
        self,
        bucket: str,
        collection: str,
        record: dict,
        if_match: Optional[int] = None,
        headers: Optional[dict] = None,
    ) -> dict:
        """Create or replace a record.

        Args:
            bucket: Bucket name
            collection: Collection name
            record: Record body (must carry an "id")
            if_match: Expected remote last_modified; None means the record must be new
            headers: Extra request headers

        Returns:
            The stored record as returned by the server

        Raises:
            RecordConflictError: The remote record changed since if_match
            UnauthorizedError: Token rejected
            RemoteError: Request failed
        """
        request_headers = dict(headers or {})
        if if_match is not None:
            request_headers["If-Match"] = f'"{if_match}"'
        else:
            request_headers["If-None-Match"] = "*"

        response = await self._request(
            "PUT",
            f"{self.records_url(bucket, collection)}/{record['id']}",
            headers=request_headers,
            json={"data": record},
        )
        return response.json().get("data", {})

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = f"{method} {url} failed with HTTP {status}"
            if status == 401:
                raise UnauthorizedError(message, status, e.response) from e
            if status == 412:
                raise RecordConflictError(message, status, e.response) from e
            logger.error(message)
            raise RemoteError(message, status, e.response) from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise RemoteError(f"{method} {url} failed: {e}") from e

    async def close(self):
        """Close the client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
