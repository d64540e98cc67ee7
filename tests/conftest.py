"""Fixtures communes : catalogue SQLite factice et annotateur sans exiftool."""

import sqlite3
from pathlib import Path

import pytest

from photostream_backup.catalog import CATALOG_FILENAME, STATE_SUBDIR


def build_catalog(cache_root: Path, albums: dict) -> Path:
    """Créer un catalogue ``Model.sqlite`` sous ``cache_root``.

    ``albums`` : ``{nom: (guid, [(guid_élément, photoDate), ...])}``
    """
    state_dir = cache_root / STATE_SUBDIR / "1234567890"
    state_dir.mkdir(parents=True, exist_ok=True)
    db_path = state_dir / CATALOG_FILENAME

    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE Albums (GUID TEXT PRIMARY KEY, name TEXT)")
    conn.execute("CREATE TABLE AssetCollections (GUID TEXT PRIMARY KEY, photoDate REAL, albumGUID TEXT)")
    for name, (album_guid, assets) in albums.items():
        conn.execute("INSERT INTO Albums (GUID, name) VALUES (?, ?)", (album_guid, name))
        for asset_guid, photo_date in assets:
            conn.execute(
                "INSERT INTO AssetCollections (GUID, photoDate, albumGUID) VALUES (?, ?, ?)",
                (asset_guid, photo_date, album_guid),
            )
    conn.commit()
    conn.close()
    return db_path


def add_source_file(cache_root: Path, album_guid: str, asset_guid: str, name: str, data: bytes = b"data") -> Path:
    folder = cache_root / "assets" / album_guid / asset_guid
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / name
    path.write_bytes(data)
    return path


class FakeAnnotator:
    """Annotateur en mémoire : formats détectés par nom, tags stockés par chemin."""

    attribution_tag = "XMP-dc:Identifier"
    album_tag = "XMP-xmpDM:Album"

    def __init__(self, detected=None, fail_on=()):
        self.detected = detected or {}
        self.fail_on = set(fail_on)
        self.tags = {}
        self.detect_calls = []

    def detect_extension(self, media_path):
        self.detect_calls.append(Path(media_path).name)
        return self.detected.get(Path(media_path).name)

    def read_tag(self, media_path, tag):
        return self.tags.get(Path(media_path), {}).get(tag)

    def annotate(self, media_path, attribution, album):
        if Path(media_path).name in self.fail_on:
            raise RuntimeError(f"Échec de la commande exiftool pour {media_path}: bad")
        current = self.tags.setdefault(Path(media_path), {})
        written = [self.attribution_tag]
        current[self.attribution_tag] = attribution
        if current.get(self.album_tag) != album:
            current[self.album_tag] = album
            written.append(self.album_tag)
        return written


@pytest.fixture
def cache_root(tmp_path):
    root = tmp_path / "cache"
    root.mkdir()
    return root


@pytest.fixture
def fake_annotator():
    return FakeAnnotator()
