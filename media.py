"""
Image hosting on Cloudinary

Uploads and deletions go through Cloudinary's signed REST API. Stored image
URLs look like https://res.cloudinary.com/<cloud>/image/upload/v1712/blogify/abc.jpg
and the public id used for deletion is parsed back out of them.
"""
import hashlib
import logging
import re
import time
from typing import Any, Dict, Optional

import requests

from errors import MediaError

logger = logging.getLogger(__name__)

PUBLIC_ID_PATTERN = re.compile(r"/upload/(?:v\d+/)?(?P<public_id>[^?#]+)\.[^./?#]+$")


def extract_public_id(url: Optional[str]) -> Optional[str]:
    """Return the public id in ``.../upload/[v<version>/]<public_id>.<ext>``, else None."""
    if not url:
        return None
    match = PUBLIC_ID_PATTERN.search(url)
    return match.group("public_id") if match else None


class MediaHost:
    API_BASE = "https://api.cloudinary.com/v1_1"

    def __init__(
        self,
        cloud_name: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
        *,
        folder: str = "blogify",
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "MediaHost":
        return cls(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
            folder=settings.cloudinary_folder,
        )

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def sign(self, params: Dict[str, Any]) -> str:
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1((to_sign + self.api_secret).encode("utf-8")).hexdigest()

    def upload(self, data: bytes, filename: str) -> str:
        """Upload image bytes and return the durable https URL"""
        params = {"folder": self.folder, "timestamp": int(time.time())}
        body = self._post(
            "image/upload",
            params,
            files={"file": (filename or "upload", data)},
        )
        url = body.get("secure_url")
        if not url:
            raise MediaError("Image upload failed")
        logger.info("Uploaded image %s", body.get("public_id"))
        return url

    def delete(self, public_id: str) -> bool:
        params = {"public_id": public_id, "timestamp": int(time.time())}
        body = self._post("image/destroy", params)
        return body.get("result") == "ok"

    def delete_url(self, url: Optional[str]) -> bool:
        public_id = extract_public_id(url)
        if public_id is None:
            return False
        return self.delete(public_id)

    def _post(self, path: str, params: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        if not self.configured:
            raise MediaError("Media host is not configured")
        data = {**params, "api_key": self.api_key, "signature": self.sign(params)}
        try:
            response = self.session.post(
                f"{self.API_BASE}/{self.cloud_name}/{path}",
                data=data,
                timeout=self.timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            logger.error("Media host call %s failed: %s", path, exc)
            raise MediaError("Media host request failed") from exc
