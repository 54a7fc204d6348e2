# storefront/services/download_client.py
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote

import requests
from requests import RequestException

from storefront.domain.errors import ContactRequiredError, DownloadError
from storefront.utils.logging import get_logger
from storefront.utils.retry import http_retry
from storefront.utils.settings import STORE_API_URL, HTTP_TIMEOUT_SECONDS

logger = get_logger(__name__)

# RFC 5987: filename*=UTF-8''na%C3%AFve.pdf
_EXTENDED_RE = re.compile(r"filename\*\s*=\s*([\w!#$%&+^`{}~-]*)'[^']*'([^;\s]+)", re.IGNORECASE)
_QUOTED_RE = re.compile(r'filename\s*=\s*"((?:[^"\\]|\\.)*)"', re.IGNORECASE)
_BARE_RE = re.compile(r"filename\s*=\s*([^;\s\"]+)", re.IGNORECASE)

#mimetypes tables differ between platforms, pin the types we actually sell
_KNOWN_EXTENSIONS = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/zip": ".zip",
    "text/plain": ".txt",
}
UNKNOWN_EXTENSION = ".bin"
GENERIC_NAME = "download"


def filename_from_disposition(header: str | None) -> str | None:
    if not header:
        return None

    match = _EXTENDED_RE.search(header)
    if match:
        charset = match.group(1) or "utf-8"
        try:
            return unquote(match.group(2), encoding=charset, errors="strict")
        except (LookupError, UnicodeDecodeError):
            logger.warning(f"Cannot decode filename* in {header!r}, trying plain filename")

    match = _QUOTED_RE.search(header)
    if match:
        return re.sub(r"\\(.)", r"\1", match.group(1))

    match = _BARE_RE.search(header)
    if match:
        return match.group(1)
    return None


def extension_for(content_type: str | None) -> str | None:
    mime = (content_type or "").split(";")[0].strip().lower()
    if not mime or mime == "application/octet-stream":
        return None
    return _KNOWN_EXTENSIONS.get(mime) or mimetypes.guess_extension(mime)


def _safe_name(name: str) -> str:
    # header values are untrusted, keep only the last path segment
    name = name.replace("\\", "/").split("/")[-1].strip().strip(".")
    return name


def filename_from_headers(
    content_disposition: str | None,
    content_type: str | None,
    fallback: str | None = None,
) -> str:
    """
    Name to save a downloaded file under.

    Prefers the server's Content-Disposition name, then `fallback`, then a
    generic name. A name without an extension gets one from the MIME type;
    when even that is unknown the file is saved as .bin rather than with no
    extension at all.
    """
    name = _safe_name(filename_from_disposition(content_disposition) or "")
    if not name and fallback:
        name = _safe_name(fallback)
    if not name:
        name = GENERIC_NAME

    if Path(name).suffix:
        return name

    ext = extension_for(content_type)
    if ext is None:
        logger.warning(f"No extension for {name!r} ({content_type!r}), saving as {UNKNOWN_EXTENSION}")
        ext = UNKNOWN_EXTENSION
    return name + ext


@dataclass
class DownloadedFile:
    filename: str
    content: bytes
    content_type: str

    def save(self, directory: str | Path) -> Path:
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / self.filename
        path.write_bytes(self.content)
        logger.info(f"Saved {len(self.content)} bytes to {path}")
        return path


class DownloadClient:
    def __init__(self, base_url: str | None = None, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.base_url = (base_url or STORE_API_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def _get(self, item_id: str, email: str) -> requests.Response:
        url = f"{self.base_url}/templates/{item_id}/download"
        logger.info(f"DownloadClient GET {url}")
        return requests.get(url, params={"email": email}, timeout=self.timeout)

    def download(self, item_id: str, email: str, fallback_name: str | None = None) -> DownloadedFile:
        try:
            resp = self._get(item_id, email.strip().lower())
        except RequestException as e:
            logger.error(f"Download of {item_id} failed: {e}")
            raise DownloadError("Failed to download template. Please try again.") from e

        content_type = resp.headers.get("Content-Type", "")

        if not resp.ok:
            try:
                message = resp.json().get("error") or "Download failed"
            except ValueError:
                message = "Download failed"
            logger.error(f"Download of {item_id} rejected ({resp.status_code}): {message}")
            raise DownloadError(message)

        #JSON instead of a file: the item is a custom service
        if "application/json" in content_type.lower():
            try:
                message = resp.json().get("message") or "Please contact us."
            except ValueError:
                message = "Please contact us."
            logger.info(f"Item {item_id} requires contact instead of download")
            raise ContactRequiredError(message)

        filename = filename_from_headers(
            resp.headers.get("Content-Disposition"),
            content_type,
            fallback_name,
        )
        return DownloadedFile(filename=filename, content=resp.content, content_type=content_type)
