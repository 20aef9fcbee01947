"""
File storage abstraction.

Provides a simple interface for storing and retrieving card assets.
Currently uses local filesystem served under /media, can be extended to S3
or other backends.
"""
import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional

import requests

from settings import settings

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/heic": ".heic",
    "image/heif": ".heif",
}


class FileStorage:
    """
    Local file storage implementation.

    Files are organized as:
    - media/templates/            - Uploaded template backgrounds
    - media/projects/{id}/photos/ - Participant photos
    - media/projects/{id}/cards/  - Generated cards

    Every stored file is addressed by its public URL
    (PUBLIC_MEDIA_BASE_URL + relative path); `read` accepts those URLs back.
    """

    def __init__(
        self,
        media_root: Optional[str] = None,
        public_base_url: Optional[str] = None,
        download_timeout: float = settings.FONT_DOWNLOAD_TIMEOUT,
    ):
        self.media_root = Path(media_root or settings.MEDIA_ROOT)
        self.media_root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url if public_base_url is not None else settings.PUBLIC_MEDIA_BASE_URL).rstrip("/")
        self.download_timeout = download_timeout

    def url_for(self, relative_path: str) -> str:
        return f"{self.public_base_url}/{relative_path}"

    def relative_path_for(self, url_or_path: str) -> Optional[str]:
        """Relative media path for a public URL or relative path; None for foreign URLs."""
        prefix = f"{self.public_base_url}/"
        if url_or_path.startswith(prefix):
            return url_or_path[len(prefix):]
        if url_or_path.startswith(("http://", "https://")):
            return None
        return url_or_path.lstrip("/")

    def get_absolute_path(self, relative_path: str) -> Path:
        """Convert a relative path to absolute, refusing paths outside the media root."""
        root = self.media_root.resolve()
        path = (root / relative_path).resolve()
        if root != path and root not in path.parents:
            raise ValueError(f"path escapes media root: {relative_path}")
        return path

    def upload(self, data: bytes, content_type: str, folder: str) -> str:
        """
        Store bytes under `folder` with a generated name.

        Args:
            data: File contents
            content_type: MIME type, used to pick the file extension
            folder: Relative folder inside the media root

        Returns:
            Public URL of the stored file
        """
        ext = _EXTENSIONS.get((content_type or "").split(";")[0].strip().lower(), ".bin")
        relative = f"{folder.strip('/')}/{uuid.uuid4()}{ext}"
        path = self.get_absolute_path(relative)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".part")
        tmp.write_bytes(data)
        tmp.replace(path)
        return self.url_for(relative)

    def read(self, url_or_path: str) -> bytes:
        """
        Load the bytes behind a public URL or relative path.

        Raises:
            FileNotFoundError: If a local file is missing
            requests.RequestException: If a remote URL cannot be fetched
        """
        relative = self.relative_path_for(url_or_path)
        if relative is None:
            resp = requests.get(url_or_path, timeout=self.download_timeout)
            resp.raise_for_status()
            return resp.content
        return self.get_absolute_path(relative).read_bytes()

    def file_exists(self, url_or_path: str) -> bool:
        relative = self.relative_path_for(url_or_path)
        return relative is not None and self.get_absolute_path(relative).exists()

    def delete_file(self, url_or_path: str) -> bool:
        """Delete a file. Returns True if deleted."""
        relative = self.relative_path_for(url_or_path)
        if relative is None:
            return False
        path = self.get_absolute_path(relative)
        if path.exists():
            path.unlink()
            return True
        return False

    def delete_project_files(self, project_id: str) -> bool:
        """Delete all photos and cards for a project."""
        project_dir = self.get_absolute_path(f"projects/{project_id}")
        if project_dir.exists():
            shutil.rmtree(project_dir)
            return True
        return False


def project_photos_folder(project_id: str) -> str:
    return f"projects/{project_id}/photos"


def project_cards_folder(project_id: str) -> str:
    return f"projects/{project_id}/cards"


TEMPLATES_FOLDER = "templates"
