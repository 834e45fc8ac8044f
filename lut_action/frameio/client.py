"""Frame.io asset store client.

Only the calls the LUT pipeline needs: read an asset, resolve its original
download URL, create an upload target, stack versions and comment.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from lut_action.errors import RemoteStoreError

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "video/quicktime"


class Asset(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    type: str = "file"
    file_size: Optional[int] = None
    media_type: Optional[str] = None
    parent_id: Optional[str] = None
    project_id: Optional[str] = None


class ChunkTarget(BaseModel):
    url: str
    size: int


class UploadPlan(BaseModel):
    file_id: str
    chunks: List[ChunkTarget] = Field(default_factory=list)
    media_type: str = DEFAULT_MEDIA_TYPE


class AssetStore(ABC):
    """Abstract interface to the remote asset store."""

    @abstractmethod
    async def get_asset(self, account_id: str, asset_id: str) -> Asset:
        ...

    @abstractmethod
    async def get_original_download_url(self, account_id: str, asset_id: str) -> str:
        ...

    @abstractmethod
    async def create_file(self, account_id: str, folder_id: str, name: str, file_size: int) -> UploadPlan:
        ...

    @abstractmethod
    async def create_version_stack(
        self, account_id: str, folder_id: str, original_id: str, new_id: str
    ) -> Optional[str]:
        """Stack ``new_id`` on top of ``original_id``. Returns the stack id if reported."""
        ...

    @abstractmethod
    async def post_comment(self, account_id: str, asset_id: str, text: str) -> None:
        ...

    async def close(self) -> None:
        pass


def _unwrap(body: Any) -> Dict[str, Any]:
    """V4 responses wrap the payload in ``data``."""
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body if isinstance(body, dict) else {}


class FrameioClient(AssetStore):
    """AssetStore over the Frame.io V4 REST API with a pre-issued bearer token."""

    def __init__(
        self,
        access_token: Optional[str],
        base_url: str = "https://api.frame.io/v4",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        else:
            logger.warning("No Frame.io access token configured; store calls will be rejected")
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"{method} {path} failed: {exc}") from exc

        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.status_code >= 400:
            raise RemoteStoreError(
                f"{method} {path} failed: {response.status_code} {response.reason_phrase}",
                status=response.status_code,
                details={"body": response.text[:500]},
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError(
                f"{method} {path} returned invalid JSON", status=response.status_code
            ) from exc

    async def get_asset(self, account_id: str, asset_id: str) -> Asset:
        body = await self._request("GET", f"/accounts/{account_id}/files/{asset_id}")
        data = _unwrap(body)
        if "file_size" not in data and "filesize" in data:
            data["file_size"] = data["filesize"]
        try:
            return Asset.model_validate(data)
        except ValueError as exc:
            raise RemoteStoreError(f"Unexpected asset payload for {asset_id}: {exc}") from exc

    async def get_original_download_url(self, account_id: str, asset_id: str) -> str:
        body = await self._request(
            "GET",
            f"/accounts/{account_id}/files/{asset_id}",
            params={"include": "media_links.original"},
        )
        original = (_unwrap(body).get("media_links") or {}).get("original") or {}
        url = original.get("download_url") if isinstance(original, dict) else None
        if not url:
            raise RemoteStoreError(f"No original media link for asset {asset_id}", status=404)
        return url

    async def create_file(self, account_id: str, folder_id: str, name: str, file_size: int) -> UploadPlan:
        body = await self._request(
            "POST",
            f"/accounts/{account_id}/folders/{folder_id}/files/local_upload",
            json={"data": {"name": name, "file_size": file_size}},
        )
        data = _unwrap(body)
        urls = data.get("upload_urls") or []
        if not data.get("id") or not urls:
            raise RemoteStoreError(f"No upload URLs returned for {name}")
        plan = UploadPlan(
            file_id=data["id"],
            chunks=[ChunkTarget(url=u["url"], size=int(u["size"])) for u in urls],
            media_type=data.get("media_type") or data.get("filetype") or DEFAULT_MEDIA_TYPE,
        )
        logger.info("Created file %s in folder %s (%d chunk(s))", plan.file_id, folder_id, len(plan.chunks))
        return plan

    async def create_version_stack(
        self, account_id: str, folder_id: str, original_id: str, new_id: str
    ) -> Optional[str]:
        body = await self._request(
            "POST",
            f"/accounts/{account_id}/folders/{folder_id}/version_stacks",
            json={"data": {"file_ids": [original_id, new_id]}},
            headers={"api-version": "experimental"},
        )
        stack_id = _unwrap(body).get("id")
        logger.info("Created version stack %s for %s -> %s", stack_id, original_id, new_id)
        return stack_id

    async def post_comment(self, account_id: str, asset_id: str, text: str) -> None:
        await self._request(
            "POST",
            f"/accounts/{account_id}/files/{asset_id}/comments",
            json={"data": {"text": text, "timestamp": None, "page": None}},
        )
        logger.info("Posted comment on %s", asset_id)
