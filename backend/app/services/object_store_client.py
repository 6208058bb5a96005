import logging
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Union

import requests

from ..errors import NotFoundError, RemoteError
from .authorized_client import AuthorizedClient
from .token_cache import SERVICE_COS, TokenCache

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> str:
    for child in element:
        if _local_name(child.tag) == name:
            return child.text or ""
    return ""


def parse_list_response(xml_body: Union[str, bytes]) -> List[Dict]:
    """Turn a ListBucketResult XML document into plain dictionaries."""
    root = ET.fromstring(xml_body)
    files = []
    for element in root.iter():
        if _local_name(element.tag) != "Contents":
            continue
        size = _child_text(element, "Size")
        files.append({
            "name": _child_text(element, "Key"),
            "size": int(size) if size else 0,
            "modified_at": _child_text(element, "LastModified"),
            "etag": _child_text(element, "ETag"),
        })
    return files


class ObjectStoreClient(AuthorizedClient):
    """
    Client for an IBM Cloud Object Storage bucket.

    Attributes
    ----------
    endpoint : str
        Base URL of the COS endpoint.
    bucket : str
        Bucket holding both the solver inputs and its results.
    service_instance_id : str
        Value of the ``ibm-service-instance-id`` header.
    """

    service = SERVICE_COS

    def __init__(
        self,
        token_cache: TokenCache,
        endpoint: str,
        bucket: str,
        service_instance_id: str,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ) -> None:
        super().__init__(token_cache, session=session, timeout=timeout)
        self.endpoint = endpoint.rstrip("/")
        self.bucket = bucket
        self.service_instance_id = service_instance_id

    def _default_headers(self) -> Dict[str, str]:
        return {"ibm-service-instance-id": self.service_instance_id}

    def file_url(self, name: str) -> str:
        return f"{self.endpoint}/{self.bucket}/{name}"

    def upload(self, name: str, data: Union[str, bytes], content_type: str = "text/csv") -> Dict:
        """Store *data* under *name* and return its name, size, etag and URL."""
        body = data.encode("utf-8") if isinstance(data, str) else data
        url = self.file_url(name)
        response = self._send("PUT", url, headers={"Content-Type": content_type}, data=body)
        if not self._is_success(response):
            logger.error(f"Upload of '{name}' failed with HTTP {response.status_code}")
            raise RemoteError(f"Error uploading '{name}': {response.text}", response.status_code)

        logger.info(f"Uploaded '{name}' ({len(body)} bytes) to bucket '{self.bucket}'")
        return {
            "name": name,
            "size": len(body),
            "etag": response.headers.get("ETag"),
            "url": url,
        }

    def download(self, name: str) -> bytes:
        response = self._send("GET", self.file_url(name))
        if response.status_code == 404:
            raise NotFoundError(f"File '{name}' not found in bucket '{self.bucket}'")
        if not self._is_success(response):
            logger.error(f"Download of '{name}' failed with HTTP {response.status_code}")
            raise RemoteError(f"Error downloading '{name}': {response.text}", response.status_code)
        return response.content

    def exists(self, name: str) -> bool:
        """HEAD check; any failure, including auth errors, counts as absent."""
        try:
            response = self._send("HEAD", self.file_url(name))
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Existence check for '{name}' failed: {exc}")
            return False
        return self._is_success(response)

    def list(self, prefix: str = "") -> List[Dict]:
        params = {"prefix": prefix} if prefix else None
        response = self._send("GET", f"{self.endpoint}/{self.bucket}", params=params)
        if not self._is_success(response):
            logger.error(f"Listing bucket '{self.bucket}' failed with HTTP {response.status_code}")
            raise RemoteError(f"Error listing files: {response.text}", response.status_code)
        try:
            return parse_list_response(response.content)
        except ET.ParseError as exc:
            raise RemoteError(f"Unreadable bucket listing: {exc}") from exc
