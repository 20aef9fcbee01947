import pytest

from storage.file_storage import FileStorage, project_cards_folder


class DummyResponse:
    def __init__(self, content):
        self.content = content

    def raise_for_status(self):
        return None


def test_upload_returns_public_url_and_reads_back(tmp_path):
    storage = FileStorage(media_root=str(tmp_path), public_base_url="https://cdn.example.com/media/")
    url = storage.upload(b"png-bytes", "image/png", project_cards_folder("p1"))
    assert url.startswith("https://cdn.example.com/media/projects/p1/cards/")
    assert url.endswith(".png")
    assert storage.read(url) == b"png-bytes"
    assert storage.file_exists(url)
    assert storage.delete_file(url)
    assert not storage.file_exists(url)


def test_foreign_urls_are_downloaded(tmp_path, monkeypatch):
    storage = FileStorage(media_root=str(tmp_path), public_base_url="/media")
    monkeypatch.setattr(
        "storage.file_storage.requests.get",
        lambda url, timeout=None: DummyResponse(b"remote"),
    )
    assert storage.read("https://elsewhere.example.com/bg.png") == b"remote"


def test_paths_cannot_escape_media_root(tmp_path):
    storage = FileStorage(media_root=str(tmp_path / "media"), public_base_url="/media")
    with pytest.raises(ValueError):
        storage.read("/media/../secret.txt")


def test_delete_project_files(tmp_path):
    storage = FileStorage(media_root=str(tmp_path), public_base_url="/media")
    url = storage.upload(b"x", "image/jpeg", "projects/p2/photos")
    assert url.endswith(".jpg")
    assert storage.delete_project_files("p2")
    assert not storage.file_exists(url)
    assert not storage.delete_project_files("p2")
