"""Réconciliation et nommage des fichiers de destination.

Pour chaque couple (élément du catalogue, fichier source), le résolveur
décide s'il faut ignorer le fichier (déjà sauvegardé) ou le copier, et
calcule alors le chemin final :

``<racine>/<préfixe><flux>/<horodatage>-<uuid>-<nom>``

Deux destinations sont consultées : la racine principale (correspondance
exacte du chemin) et une racine secondaire facultative (correspondance
approximative sur l'uuid et le nom, quelle que soit l'extension ou
l'horodatage).
"""

from __future__ import annotations

import enum
import glob
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol

from .catalog import AssetRecord, capture_time_from_raw
from .exif_annotator import canonical_extension
from .locator import SourceFile

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class FormatDetector(Protocol):
    def detect_extension(self, media_path: Path) -> Optional[str]:
        ...


def format_timestamp(capture_time_raw: Optional[int]) -> str:
    """``YYYYMMDD_HHMMSS`` pour un décalage en secondes depuis le 1er janvier 2001."""
    return capture_time_from_raw(capture_time_raw).strftime(TIMESTAMP_FORMAT)


def normalize_uuid(asset_id: str) -> str:
    return asset_id.replace("-", "").lower()


def canonical_base_name(filename: str) -> str:
    """Nom en minuscules, avec ``.jpeg`` ramené à ``.jpg``."""
    base = filename.lower()
    stem, dot, ext = base.rpartition(".")
    if dot and stem and ext == "jpeg":
        return f"{stem}.jpg"
    return base


def replace_extension(base_name: str, extension: str) -> str:
    stem, dot, _ = base_name.rpartition(".")
    if not dot or not stem:
        stem = base_name
    return f"{stem}{extension}"


def split_extension(base_name: str) -> tuple[str, str]:
    stem, dot, ext = base_name.rpartition(".")
    if not dot or not stem:
        return base_name, ""
    return stem, f".{ext}"


@dataclass(frozen=True)
class NamingScheme:
    """Convention de nommage des fichiers sauvegardés."""
    name: str
    separator: str
    normalize: bool

    def identifier(self, asset: AssetRecord) -> str:
        return normalize_uuid(asset.id) if self.normalize else asset.id

    def base_name(self, source_name: str) -> str:
        return canonical_base_name(source_name) if self.normalize else source_name

    def filename(self, timestamp: str, identifier: str, base_name: str) -> str:
        return self.separator.join((timestamp, identifier, base_name))

    def fuzzy_fragment(self, identifier: str, stem: str) -> str:
        return f"{self.separator}{identifier}{self.separator}{stem}"


NAMING_SCHEMES = {
    "uuid": NamingScheme("uuid", "-", True),
    "classic": NamingScheme("classic", "_", False),
}


@dataclass(frozen=True)
class DestinationCandidate:
    path: Path
    filename_base: str
    timestamp: str

    @property
    def folder(self) -> Path:
        return self.path.parent


class Decision(enum.Enum):
    SKIPPED_EXACT = "skipped_exact"
    SKIPPED_FUZZY = "skipped_fuzzy"
    SKIPPED_EXACT_AFTER_CORRECTION = "skipped_exact_after_correction"
    COPY = "copy"


@dataclass(frozen=True)
class Resolution:
    decision: Decision
    candidate: DestinationCandidate
    identifier: str
    corrected_from: Optional[str] = None
    fuzzy_matches: tuple = ()

    @property
    def should_copy(self) -> bool:
        return self.decision is Decision.COPY

    @property
    def attribution(self) -> str:
        """Valeur du tag d'attribution : ``<uuid>-<nom>``."""
        return f"{self.identifier}-{self.candidate.filename_base}"


class DestinationResolver:
    """Décide, fichier par fichier, entre « déjà présent » et « à copier »."""

    def __init__(
        self,
        primary_root: Path,
        secondary_root: Optional[Path] = None,
        folder_prefix: str = "_photostream ",
        naming_scheme: str = "uuid",
        detector: Optional[FormatDetector] = None,
    ):
        self.primary_root = Path(primary_root)
        self.secondary_root = Path(secondary_root) if secondary_root else None
        self.folder_prefix = folder_prefix
        try:
            self.scheme = NAMING_SCHEMES[naming_scheme]
        except KeyError:
            raise ValueError(f"Schéma de nommage inconnu : {naming_scheme!r}") from None
        self.detector = detector

    def collection_folder_name(self, collection_name: str) -> str:
        return f"{self.folder_prefix}{collection_name}"

    def collection_folder(self, collection_name: str) -> Path:
        return self.primary_root / self.collection_folder_name(collection_name)

    def build_candidate(self, collection_name: str, asset: AssetRecord, base_name: str) -> DestinationCandidate:
        timestamp = format_timestamp(asset.capture_time_raw)
        filename = self.scheme.filename(timestamp, self.scheme.identifier(asset), base_name)
        return DestinationCandidate(
            path=self.collection_folder(collection_name) / filename,
            filename_base=base_name,
            timestamp=timestamp,
        )

    def exists_exactly(self, candidate: DestinationCandidate) -> bool:
        # Dossier absent : rien à vérifier fichier par fichier
        if not candidate.folder.is_dir():
            return False
        return candidate.path.is_file()

    def secondary_folders(self, collection_name: str) -> List[Path]:
        if self.secondary_root is None or not self.secondary_root.is_dir():
            return []
        pattern = glob.escape(self.collection_folder_name(collection_name)) + "*"
        return sorted(p for p in self.secondary_root.glob(pattern) if p.is_dir())

    def find_fuzzy_matches(self, collection_name: str, asset: AssetRecord, base_name: str) -> List[Path]:
        """Fichiers de la racine secondaire contenant ``-<uuid>-<nom sans extension>``."""
        stem, _ = split_extension(base_name)
        fragment = self.scheme.fuzzy_fragment(self.scheme.identifier(asset), stem)
        pattern = "*" + glob.escape(fragment) + "*"
        matches = []
        for folder in self.secondary_folders(collection_name):
            matches.extend(p for p in folder.rglob(pattern) if p.is_file())
        return sorted(matches)

    def resolve(self, collection_name: str, asset: AssetRecord, source: SourceFile) -> Resolution:
        identifier = self.scheme.identifier(asset)
        base_name = self.scheme.base_name(source.name)
        candidate = self.build_candidate(collection_name, asset, base_name)

        if self.exists_exactly(candidate):
            logger.debug("  (existe) %s", candidate.path)
            return Resolution(Decision.SKIPPED_EXACT, candidate, identifier)

        if self.secondary_root is not None:
            matches = self.find_fuzzy_matches(collection_name, asset, base_name)
            if matches:
                logger.debug("  (existe, secondaire) %s", matches[0])
                return Resolution(Decision.SKIPPED_FUZZY, candidate, identifier, fuzzy_matches=tuple(matches))

        corrected_from = None
        detected = self.detector.detect_extension(source.path) if self.detector else None
        if detected:
            _, current_ext = split_extension(base_name)
            if canonical_extension(detected) != canonical_extension(current_ext):
                corrected_from = base_name
                base_name = replace_extension(base_name, canonical_extension(detected))
                candidate = self.build_candidate(collection_name, asset, base_name)
                logger.debug("  🔧 Extension corrigée : %s → %s", corrected_from, base_name)

                if self.exists_exactly(candidate):
                    logger.debug("  (existe) %s", candidate.path)
                    return Resolution(Decision.SKIPPED_EXACT_AFTER_CORRECTION, candidate, identifier,
                                      corrected_from=corrected_from)

        logger.debug("  -> %s", candidate.path)
        return Resolution(Decision.COPY, candidate, identifier, corrected_from=corrected_from)
