"""Tests pour le lecteur de catalogue."""

import sqlite3
from datetime import datetime, timezone

import pytest

from conftest import build_catalog
from photostream_backup.catalog import (
    AssetRecord,
    CatalogReader,
    CatalogUnavailableError,
    CollectionNotFoundError,
    find_catalog_file,
)


def test_find_catalog_file(cache_root):
    """Le catalogue est pris dans l'unique sous-dossier du dossier d'état."""
    db_path = build_catalog(cache_root, {})
    assert find_catalog_file(cache_root) == db_path


def test_find_catalog_file_missing_state_dir(cache_root):
    with pytest.raises(CatalogUnavailableError):
        find_catalog_file(cache_root)


def test_find_catalog_file_without_database(cache_root):
    (cache_root / "coremediastream-state" / "abc").mkdir(parents=True)
    with pytest.raises(CatalogUnavailableError):
        find_catalog_file(cache_root)


def test_list_collections_and_assets(cache_root):
    build_catalog(cache_root, {
        "Trip": ("ALBUM-1", [("AAAA-BBBB", 100), ("CCCC-DDDD", None)]),
        "Family": ("ALBUM-2", [("EEEE-FFFF", 3600.7)]),
    })
    with CatalogReader(cache_root=cache_root) as reader:
        assert reader.list_collections() == ["Trip", "Family"]
        assert reader.resolve_collection_id("Family") == "ALBUM-2"
        assert reader.list_assets("Trip") == [
            AssetRecord("AAAA-BBBB", 100),
            AssetRecord("CCCC-DDDD", None),
        ]
        assert reader.list_assets("Family") == [AssetRecord("EEEE-FFFF", 3600)]
        assert [c.id for c in reader.list_collection_records()] == ["ALBUM-1", "ALBUM-2"]


def test_resolve_collection_id_not_found(cache_root):
    build_catalog(cache_root, {"Trip": ("ALBUM-1", [])})
    reader = CatalogReader(cache_root=cache_root)
    with pytest.raises(CollectionNotFoundError) as excinfo:
        reader.resolve_collection_id("trip")
    assert excinfo.value.name == "trip"
    reader.close()


def test_names_are_not_interpolated(cache_root):
    """Un nom contenant des guillemets ne casse pas la requête."""
    build_catalog(cache_root, {'Say "hi"': ("ALBUM-1", [("AAAA", 1)])})
    with CatalogReader(cache_root=cache_root) as reader:
        assert reader.resolve_collection_id('Say "hi"') == "ALBUM-1"
        assert reader.list_assets('Say "hi"') == [AssetRecord("AAAA", 1)]


def test_connection_is_read_only_and_cached(cache_root):
    build_catalog(cache_root, {"Trip": ("ALBUM-1", [])})
    with CatalogReader(cache_root=cache_root) as reader:
        conn = reader.connection
        assert reader.connection is conn
        with pytest.raises(sqlite3.OperationalError):
            conn.execute("INSERT INTO Albums (GUID, name) VALUES ('x', 'y')")


def test_unreadable_catalog(tmp_path):
    bogus = tmp_path / "Model.sqlite"
    bogus.write_bytes(b"not a database at all, really not")
    reader = CatalogReader(catalog_path=bogus)
    with pytest.raises(CatalogUnavailableError):
        reader.list_collections()


def test_capture_time():
    """0 et absence correspondent tous deux au 1er janvier 2001."""
    epoch = datetime(2001, 1, 1, tzinfo=timezone.utc)
    assert AssetRecord("a", 0).capture_time == epoch
    assert AssetRecord("a", None).capture_time == epoch
    assert AssetRecord("a", 100).capture_time == datetime(2001, 1, 1, 0, 1, 40, tzinfo=timezone.utc)
