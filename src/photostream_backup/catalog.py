"""Lecture du catalogue SQLite des flux de photos partagés."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

STATE_SUBDIR = "coremediastream-state"
CATALOG_FILENAME = "Model.sqlite"

# Les dates du catalogue sont des secondes depuis le 1er janvier 2001 (UTC)
EPOCH_BASE = datetime(2001, 1, 1, tzinfo=timezone.utc)


class CatalogError(RuntimeError):
    """Erreur de base du lecteur de catalogue."""


class CatalogUnavailableError(CatalogError):
    """Catalogue introuvable ou illisible (fatal pour l'exécution)."""


class CollectionNotFoundError(CatalogError):
    """Aucun flux ne porte exactement le nom demandé."""

    def __init__(self, name: str):
        super().__init__(f"Flux introuvable dans le catalogue : {name!r}")
        self.name = name


@dataclass(frozen=True)
class Collection:
    """Un flux partagé (album) du catalogue."""
    name: str
    id: str


@dataclass(frozen=True)
class AssetRecord:
    """Une photo ou vidéo logique d'un flux, pouvant regrouper plusieurs fichiers."""
    id: str
    capture_time_raw: Optional[int] = None

    @property
    def capture_time(self) -> datetime:
        """Date de prise de vue (UTC), la base d'époque si inconnue."""
        return capture_time_from_raw(self.capture_time_raw)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AssetRecord":
        return cls(id=str(row["uuid"]), capture_time_raw=_coerce_raw_time(row["date"]))


def capture_time_from_raw(raw: Optional[int]) -> datetime:
    if raw is None:
        return EPOCH_BASE
    return EPOCH_BASE + timedelta(seconds=int(raw))


def _coerce_raw_time(value) -> Optional[int]:
    """Les dates peuvent être stockées en entier, réel ou texte."""
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning("Date de prise de vue illisible ignorée : %r", value)
        return None


def find_catalog_file(cache_root: Path) -> Path:
    """Localiser ``Model.sqlite`` sous ``<cache_root>/coremediastream-state/<dossier>/``.

    Le dossier d'état ne contient normalement qu'un seul sous-dossier ;
    en cas de pluralité, le dernier dans l'ordre alphabétique est retenu.
    """
    share_dir = Path(cache_root) / STATE_SUBDIR
    if not share_dir.is_dir():
        raise CatalogUnavailableError(f"Dossier d'état introuvable : {share_dir}")

    subdirs = sorted(entry for entry in share_dir.iterdir() if entry.is_dir())
    if not subdirs:
        raise CatalogUnavailableError(f"Aucun sous-dossier de catalogue dans {share_dir}")
    if len(subdirs) > 1:
        logger.warning("Plusieurs dossiers de catalogue trouvés, utilisation de %s", subdirs[-1].name)

    catalog_path = subdirs[-1] / CATALOG_FILENAME
    if not catalog_path.is_file():
        raise CatalogUnavailableError(f"Catalogue introuvable : {catalog_path}")
    return catalog_path


class CatalogReader:
    """Accès en lecture seule au catalogue des flux partagés.

    La connexion est ouverte à la première requête puis conservée jusqu'à
    ``close()``. Toutes les requêtes sont paramétrées.
    """

    def __init__(self, catalog_path: Optional[Path] = None, cache_root: Optional[Path] = None):
        if catalog_path is None and cache_root is None:
            raise ValueError("catalog_path ou cache_root est requis")
        self._catalog_path = Path(catalog_path) if catalog_path is not None else None
        self._cache_root = Path(cache_root) if cache_root is not None else None
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def catalog_path(self) -> Path:
        if self._catalog_path is None:
            self._catalog_path = find_catalog_file(self._cache_root)
        return self._catalog_path

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            path = self.catalog_path
            if not path.is_file():
                raise CatalogUnavailableError(f"Catalogue introuvable : {path}")
            try:
                conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
                conn.row_factory = sqlite3.Row
                conn.execute("SELECT name FROM sqlite_master WHERE type='table' LIMIT 1").fetchone()
            except sqlite3.Error as exc:
                raise CatalogUnavailableError(f"Catalogue illisible {path} : {exc}") from exc
            logger.debug("Catalogue ouvert en lecture seule : %s", path)
            self._conn = conn
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "CatalogReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            return self.connection.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise CatalogUnavailableError(f"Requête catalogue en échec : {exc}") from exc

    def list_collections(self) -> List[str]:
        """Noms des flux partagés, dans l'ordre du catalogue."""
        return [row["name"] for row in self._query("SELECT name FROM Albums")]

    def list_collection_records(self) -> List[Collection]:
        rows = self._query("SELECT GUID AS uuid, name FROM Albums")
        return [Collection(name=row["name"], id=str(row["uuid"])) for row in rows]

    def resolve_collection_id(self, collection_name: str) -> str:
        rows = self._query("SELECT GUID AS uuid FROM Albums WHERE name = ?", (collection_name,))
        if not rows:
            raise CollectionNotFoundError(collection_name)
        return str(rows[0]["uuid"])

    def list_assets(self, collection_name: str) -> List[AssetRecord]:
        """Éléments d'un flux, dans l'ordre natif du catalogue."""
        rows = self._query(
            """SELECT ac.GUID AS uuid, ac.photoDate AS date
                 FROM AssetCollections AS ac
                 JOIN Albums AS a ON a.GUID = ac.albumGUID
                WHERE a.name = ?""",
            (collection_name,),
        )
        return [AssetRecord.from_row(row) for row in rows]
