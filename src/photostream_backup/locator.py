"""Localisation des fichiers source d'un élément dans le cache local."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

THUMBNAIL_MARKER = "thumbnail"
# Vignette produite par le format « Live Photo », jamais sauvegardée
LIVE_PHOTO_THUMBNAIL_MARKER = ".5.jpg"


@dataclass(frozen=True)
class SourceFile:
    """Fichier physique appartenant à un élément du catalogue."""
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


def is_thumbnail(path: Path) -> bool:
    # Seul le nom compte : les dossiers parents sont des GUID, et la racine du
    # cache peut elle-même contenir « thumbnail »
    return THUMBNAIL_MARKER in path.name


def is_live_photo_thumbnail(path: Path) -> bool:
    return LIVE_PHOTO_THUMBNAIL_MARKER in path.name


class AssetLocator:
    """Résout les fichiers source sous ``<cache_root>/assets/<flux>/<élément>/``."""

    def __init__(self, cache_root: Path, skip_live_photo_thumbnails: bool = True):
        self.cache_root = Path(cache_root)
        self.skip_live_photo_thumbnails = skip_live_photo_thumbnails

    def asset_directory(self, collection_id: str, asset_id: str) -> Path:
        return self.cache_root / "assets" / collection_id / asset_id

    def _candidate_files(self, collection_id: str, asset_id: str) -> List[Path]:
        folder = self.asset_directory(collection_id, asset_id)
        if not folder.is_dir():
            return []
        return sorted(
            path for path in folder.glob("*")
            if not path.name.startswith(".") and not path.is_dir() and not is_thumbnail(path)
        )

    def locate_source_files(self, collection_id: str, asset_id: str) -> List[SourceFile]:
        """Fichiers à sauvegarder pour un élément (liste triée, éventuellement vide)."""
        files = []
        for path in self._candidate_files(collection_id, asset_id):
            if is_live_photo_thumbnail(path):
                if self.skip_live_photo_thumbnails:
                    logger.debug("⚠️ Vignette vidéo Live Photo ignorée : %s", path)
                    continue
                logger.warning("⚠️ Vignette vidéo Live Photo conservée : %s", path)
            files.append(SourceFile(path))

        if not files:
            logger.debug("Aucun fichier trouvé dans %s", self.asset_directory(collection_id, asset_id))
        return files
