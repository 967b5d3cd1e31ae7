"""
Async HTTP client for the portfolio API.

Reads are public; writes carry the bearer token obtained from ``login``.
Every call catches its own failure, logs it, records a :class:`Notice` for the
user and returns a safe default: an empty list for reads, ``None`` or
``False`` for writes. Nothing is retried.

Requests use httpx's default timeout; the API itself sets none.
"""

import json
import logging
import mimetypes
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import httpx

from collection import DATA_TYPE, display_title
from entities import EntitySpec, get_spec

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"

ImageInput = Union[str, Path, Tuple[str, bytes]]


@dataclass(frozen=True)
class Notice:
    """A failure worth showing to the user."""

    kind: str  # network | auth | validation | not_found | server | file
    action: str
    message: str


def classify(exc: Exception) -> str:
    if isinstance(exc, OSError):
        return "file"
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        if code in (401, 403):
            return "auth"
        if code == 404:
            return "not_found"
        if code in (400, 422):
            return "validation"
        return "server"
    if isinstance(exc, ValueError):
        # Response body was not JSON
        return "server"
    return "network"


def _error_message(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            detail = exc.response.json().get("detail")
        except ValueError:
            detail = None
        if isinstance(detail, list):
            detail = "; ".join(f"{'.'.join(str(p) for p in d.get('loc', [])[1:])}: {d.get('msg')}" for d in detail)
        return f"{exc.response.status_code} {detail or exc.response.reason_phrase}"
    return str(exc) or exc.__class__.__name__


def encode_fields(fields: Mapping[str, Any]) -> Dict[str, str]:
    """Form-encode submitted fields; lists go as a JSON array string."""
    data = {}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            data[key] = json.dumps(list(value))
        else:
            data[key] = str(value)
    return data


def download_name(item: Mapping[str, Any], data_type: str, content_type: Optional[str] = None) -> str:
    """File name for a downloaded image: ``<title-slug>-<type>.<ext>``.

    The extension is the subtype of the served content type, ``png`` when unknown.
    """
    slug = re.sub(r"[\s/\\]+", "-", display_title(item, data_type)).lower()
    media = (content_type or "").split(";")[0].strip()
    ext = media.split("/", 1)[1] if "/" in media else ""
    return f"{slug}-{data_type}.{ext or 'png'}"


def _image_part(image: ImageInput) -> Tuple[str, bytes, str]:
    if isinstance(image, tuple):
        filename, content = image
    else:
        path = Path(image)
        filename, content = path.name, path.read_bytes()
    mime = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return filename, content, mime


class PortfolioClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        on_error: Optional[Callable[[Notice], None]] = None,
    ):
        self.base_url = base_url or os.getenv("PORTFOLIO_API_URL", DEFAULT_BASE_URL)
        self.token = token or os.getenv("PORTFOLIO_TOKEN")
        self._http = http or httpx.AsyncClient(base_url=self.base_url)
        self._owns_http = http is None
        self.on_error = on_error
        self.notices: List[Notice] = []

    async def __aenter__(self) -> "PortfolioClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)
        if self.on_error is not None:
            self.on_error(notice)

    def report(self, action: str, exc: Exception) -> Notice:
        """Log a caught failure and surface it as a notice."""
        notice = Notice(kind=classify(exc), action=action, message=_error_message(exc))
        logger.error("Error %s: %s", action, notice.message)
        self.notify(notice)
        return notice

    def drain_notices(self) -> List[Notice]:
        notices, self.notices = self.notices, []
        return notices

    # Auth

    async def login(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """Exchange credentials for a token, kept on the client for later writes."""
        try:
            resp = await self._http.post("/users/login", json={"email": email, "password": password})
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self.report("logging in", e)
            return None
        self.token = data.get("token")
        return data

    # Reads

    async def list_collection(self, entity: Union[str, EntitySpec]) -> List[Dict[str, Any]]:
        """Whole collection, newest first. Raises on failure."""
        spec = get_spec(entity)
        resp = await self._http.get(spec.path)
        resp.raise_for_status()
        return resp.json() or []

    async def fetch_all(self, entity: Union[str, EntitySpec]) -> List[Dict[str, Any]]:
        spec = get_spec(entity)
        try:
            return await self.list_collection(spec)
        except (httpx.HTTPError, ValueError) as e:
            self.report(f"fetching {spec.path.strip('/')}", e)
            return []

    # Writes

    async def _send(self, method: str, url: str, fields: Mapping[str, Any], image: Optional[ImageInput]) -> httpx.Response:
        files = {"image": _image_part(image)} if image is not None else None
        resp = await self._http.request(
            method,
            url,
            data=encode_fields(fields),
            files=files,
            headers=self._auth_headers(),
        )
        resp.raise_for_status()
        return resp

    async def create(self, entity, fields: Mapping[str, Any], image: Optional[ImageInput] = None) -> Optional[Dict[str, Any]]:
        spec = get_spec(entity)
        try:
            resp = await self._send("POST", spec.path, fields, image)
            return resp.json()
        except (httpx.HTTPError, OSError, ValueError) as e:
            self.report(f"creating {spec.data_type}", e)
            return None

    async def update(self, entity, id: str, fields: Mapping[str, Any], image: Optional[ImageInput] = None) -> Optional[Dict[str, Any]]:
        spec = get_spec(entity)
        try:
            resp = await self._send("PUT", f"{spec.path}/{id}", fields, image)
            return resp.json()
        except (httpx.HTTPError, OSError, ValueError) as e:
            self.report(f"updating {spec.data_type} {id}", e)
            return None

    async def delete(self, entity, id: str) -> bool:
        spec = get_spec(entity)
        try:
            resp = await self._http.delete(f"{spec.path}/{id}", headers=self._auth_headers())
            resp.raise_for_status()
        except httpx.HTTPError as e:
            self.report(f"deleting {spec.data_type} {id}", e)
            return False
        return True

    # Images

    async def download_image(self, item: Mapping[str, Any], dest: Union[str, Path] = ".", entity=None) -> Optional[Path]:
        """Save a record's image into ``dest`` and return the written path."""
        data_type = get_spec(entity or item.get(DATA_TYPE)).data_type
        action = f"downloading {data_type} {item.get('id')} image"
        if not item.get("image"):
            logger.warning("Not %s: record has no image", action)
            self.notify(Notice(kind="not_found", action=action, message="Record has no image"))
            return None
        try:
            resp = await self._http.get(item["image"])
            resp.raise_for_status()
            target = Path(dest) / download_name(item, data_type, resp.headers.get("content-type"))
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(resp.content)
        except (httpx.HTTPError, OSError) as e:
            self.report(action, e)
            return None
        logger.info("Saved %s image to %s", data_type, target)
        return target

    async def stats(self) -> Dict[str, Any]:
        try:
            resp = await self._http.get("/stats")
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self.report("fetching stats", e)
            return {}
