"""Orchestration de la sauvegarde : flux → éléments → fichiers."""

from __future__ import annotations

from pathlib import Path
import logging
from datetime import datetime
from typing import Optional, Sequence, Set

from .catalog import AssetRecord, CatalogReader, CollectionNotFoundError
from .config_loader import BackupConfig
from .copier import CopyError, CopyStatus, copy_if_changed, set_modification_time, touch_stamp
from .exif_annotator import MetadataAnnotator
from .locator import AssetLocator, SourceFile
from .resolver import Decision, DestinationResolver, Resolution
from .statistics import BackupStats, CollectionReport, SummaryLevel

logger = logging.getLogger(__name__)


def count_files(folder: Path) -> int:
    if not folder.is_dir():
        return 0
    return sum(1 for path in folder.rglob("*") if path.is_file())


class BackupExecutor:
    """Boucle principale de sauvegarde.

    Les erreurs par élément ou par fichier (fichiers source absents, copie
    ou annotation en échec, collision de chemin) sont comptées et
    n'interrompent jamais la boucle.
    """

    def __init__(
        self,
        catalog: CatalogReader,
        locator: AssetLocator,
        resolver: DestinationResolver,
        annotator: Optional[MetadataAnnotator] = None,
        use_rsync: bool = False,
        eager_folder_creation: bool = False,
    ):
        self.catalog = catalog
        self.locator = locator
        self.resolver = resolver
        self.annotator = annotator
        self.use_rsync = use_rsync
        self.eager_folder_creation = eager_folder_creation
        self.stats = BackupStats()
        self._claimed_paths: Set[Path] = set()

    def run(self, collection_names: Sequence[str]) -> BackupStats:
        """Sauvegarder chaque flux demandé et retourner les statistiques."""
        self.stats = BackupStats()
        self._claimed_paths = set()
        self.stats.start_processing()

        for name in collection_names:
            try:
                report = self.backup_collection(name)
            except CollectionNotFoundError as exc:
                if len(collection_names) == 1:
                    raise
                logger.error("❌ %s", exc)
                self.stats.missing_collections.append(name)
                self.stats.errors_by_type["collection_not_found"] = \
                    self.stats.errors_by_type.get("collection_not_found", 0) + 1
                self.stats.collections.append(CollectionReport(name=name, not_found=True))
                continue
            self.stats.collections.append(report)

        self.stats.end_processing()
        return self.stats

    def backup_collection(self, name: str) -> CollectionReport:
        collection_id = self.catalog.resolve_collection_id(name)
        assets = self.catalog.list_assets(name)
        report = CollectionReport(name=name, expected_assets=len(assets))

        folder = self.resolver.collection_folder(name)
        if self.eager_folder_creation:
            folder.mkdir(parents=True, exist_ok=True)

        logger.info("Sauvegarde du flux '%s', %d images", name, len(assets))

        # Chaque dossier contient 1 ou 2 fichiers : image, vidéo, ou les deux (Live Photo)
        for asset in assets:
            files = self.locator.locate_source_files(collection_id, asset.id)
            if not files:
                folder_path = self.locator.asset_directory(collection_id, asset.id)
                logger.debug("  ERREUR, aucun fichier trouvé dans : %s", folder_path)
                report.missing_sources += 1
                self.stats.add_failure(folder_path, "source_files_missing", "aucun fichier source")
                continue

            for source in files:
                report.processed_files += 1
                logger.debug("%d. %s", report.processed_files, source.path)
                self._backup_file(name, asset, source, report)

        self._log_collection_summary(report)
        return report

    def _backup_file(self, name: str, asset: AssetRecord, source: SourceFile, report: CollectionReport) -> None:
        resolution = self.resolver.resolve(name, asset, source)

        if resolution.corrected_from:
            report.extensions_corrected += 1
            self.stats.add_fixed_extension(resolution.corrected_from, resolution.candidate.filename_base)

        if resolution.decision is Decision.SKIPPED_FUZZY:
            report.skipped_fuzzy += 1
            return

        # Un chemin final ne peut être revendiqué qu'une fois par exécution
        dest = resolution.candidate.path
        if dest in self._claimed_paths:
            logger.error("❌ Collision : %s est déjà attribué, %s non sauvegardé", dest.name, source.path)
            report.collisions += 1
            self.stats.add_failure(source.path, "destination_collision", f"collision sur {dest.name}")
            return
        self._claimed_paths.add(dest)

        if resolution.decision is Decision.SKIPPED_EXACT:
            report.skipped_exact += 1
            return
        if resolution.decision is Decision.SKIPPED_EXACT_AFTER_CORRECTION:
            report.skipped_after_correction += 1
            return

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            status = copy_if_changed(source.path, dest, use_rsync=self.use_rsync)
        except (CopyError, OSError) as exc:
            logger.warning("❌ Échec de la copie de %s : %s", source.path.name, exc)
            report.copy_failures += 1
            self.stats.add_failure(source.path, "copy_failure", str(exc))
            return

        if status is CopyStatus.UNCHANGED:
            report.unchanged += 1
            logger.debug("  (inchangé) %s", dest.name)
        else:
            report.copied += 1
            logger.debug("  ✅ copié : %s", dest.name)

        self._annotate(name, resolution, dest, report)

        when = asset.capture_time
        try:
            set_modification_time(dest, when)
            logger.debug("  🕒 %s → %s", dest.name, touch_stamp(when))
        except OSError as exc:
            logger.warning("Impossible de dater %s : %s", dest.name, exc)

    def _annotate(self, name: str, resolution: Resolution, dest: Path, report: CollectionReport) -> None:
        if self.annotator is None:
            return
        album = self.resolver.collection_folder_name(name)
        try:
            written = self.annotator.annotate(dest, resolution.attribution, album)
            logger.debug("  🏷️  tags écrits : %s", ", ".join(written))
        except RuntimeError as exc:
            logger.warning("Échec de l'annotation de %s : %s", dest.name, exc)
            report.annotation_failures += 1
            self.stats.add_failure(dest, "metadata_write_error", str(exc))

    def count_files_on_disk(self, name: str) -> int:
        total = count_files(self.resolver.collection_folder(name))
        for folder in self.resolver.secondary_folders(name):
            total += count_files(folder)
        return total

    def _log_collection_summary(self, report: CollectionReport) -> None:
        level = report.evaluate(self.count_files_on_disk(report.name))
        line = report.summary_line()
        if level is SummaryLevel.COMPLETE:
            logger.info("  ✅ %s", line)
        elif level is SummaryLevel.WARNING:
            logger.warning("  ⚠️ %s", line)
        else:
            logger.error("  ❌ %s", line)


def build_executor(
    catalog: CatalogReader,
    primary_root: Path,
    secondary_root: Optional[Path] = None,
    config: Optional[BackupConfig] = None,
    annotator: Optional[MetadataAnnotator] = None,
) -> BackupExecutor:
    """Assembler les collaborateurs à partir de la configuration."""
    config = config or BackupConfig()
    if annotator is None:
        annotator = MetadataAnnotator(
            attribution_tag=config.attribution_tag,
            album_tag=config.album_tag,
            timeout=config.exiftool_timeout,
        )
    resolver = DestinationResolver(
        primary_root,
        secondary_root,
        folder_prefix=config.folder_prefix,
        naming_scheme=config.naming_scheme,
        detector=annotator,
    )
    locator = AssetLocator(config.cache_root_path,
                           skip_live_photo_thumbnails=config.skip_live_photo_thumbnails)
    return BackupExecutor(
        catalog,
        locator,
        resolver,
        annotator=annotator,
        use_rsync=config.use_rsync,
        eager_folder_creation=config.eager_folder_creation,
    )


def run_backup(
    collections: Sequence[str],
    primary_root: Path,
    secondary_root: Optional[Path] = None,
    verbose: bool = False,
    config: Optional[BackupConfig] = None,
    catalog: Optional[CatalogReader] = None,
    annotator: Optional[MetadataAnnotator] = None,
) -> BackupStats:
    """Sauvegarder ``collections`` vers ``primary_root``.

    Args:
        collections: Noms des flux à sauvegarder
        primary_root: Racine de destination principale
        secondary_root: Racine d'archive secondaire (déduplication approximative)
        verbose: Afficher chaque décision fichier par fichier (niveau DEBUG)
        config: Configuration chargée (valeurs par défaut si None)
        catalog: Lecteur de catalogue (ouvert depuis ``config.cache_root`` si None)
        annotator: Accès aux métadonnées (exiftool si None)
    """
    config = config or BackupConfig()
    if verbose:
        logging.getLogger("photostream_backup").setLevel(logging.DEBUG)

    owns_catalog = catalog is None
    if catalog is None:
        catalog = CatalogReader(cache_root=config.cache_root_path)

    try:
        executor = build_executor(catalog, Path(primary_root), secondary_root, config, annotator)
        stats = executor.run(list(collections))
    finally:
        if owns_catalog:
            catalog.close()

    stats.print_console_summary()

    if config.write_report:
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        stats.save_detailed_report(Path(primary_root) / "logs" / f"backup_log_{timestamp}.json")
    return stats
