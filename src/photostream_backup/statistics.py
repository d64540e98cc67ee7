"""Module de gestion des statistiques et rapport de synthèse."""

from __future__ import annotations

import enum
import logging
from datetime import datetime
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Dict, Optional
import json

logger = logging.getLogger(__name__)


class SummaryLevel(enum.Enum):
    COMPLETE = "complete"
    WARNING = "warning"
    ERROR = "error"


def reconcile_counts(processed: int, expected: int, on_disk: int) -> SummaryLevel:
    """Niveau de synthèse d'un flux à partir des trois compteurs.

    - tout concorde → complete
    - traités == attendus mais le disque diffère → warning
    - traités != attendus mais le disque retombe sur les attendus → warning
    - sinon → error
    """
    if processed == expected:
        return SummaryLevel.COMPLETE if on_disk == processed else SummaryLevel.WARNING
    if on_disk == expected:
        return SummaryLevel.WARNING
    return SummaryLevel.ERROR


@dataclass
class CollectionReport:
    """Compteurs d'un flux pour une exécution."""

    name: str
    expected_assets: int = 0
    processed_files: int = 0

    copied: int = 0
    unchanged: int = 0
    skipped_exact: int = 0
    skipped_fuzzy: int = 0
    skipped_after_correction: int = 0
    extensions_corrected: int = 0

    missing_sources: int = 0
    copy_failures: int = 0
    annotation_failures: int = 0
    collisions: int = 0

    files_on_disk: int = 0
    level: Optional[SummaryLevel] = None
    not_found: bool = False

    @property
    def errors(self) -> int:
        return self.missing_sources + self.copy_failures + self.annotation_failures + self.collisions

    @property
    def skipped(self) -> int:
        return self.skipped_exact + self.skipped_fuzzy + self.skipped_after_correction

    def evaluate(self, files_on_disk: int) -> SummaryLevel:
        self.files_on_disk = files_on_disk
        self.level = reconcile_counts(self.processed_files, self.expected_assets, files_on_disk)
        return self.level

    def summary_line(self) -> str:
        details = (f"{self.files_on_disk} fichiers dans le dossier, "
                   f"{self.errors} erreurs signalées")
        if self.level is SummaryLevel.COMPLETE:
            return f"terminé : {self.processed_files} sur {self.expected_assets} au total"
        if self.level is SummaryLevel.WARNING and self.processed_files == self.expected_assets:
            return (f"terminé : {self.processed_files} sur {self.expected_assets} au total "
                    f"(écart de comptage, {self.files_on_disk} fichiers dans le dossier)")
        return f"traités {self.processed_files} sur {self.expected_assets} au total ({details})"

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["level"] = self.level.value if self.level else None
        return data


@dataclass
class BackupStats:
    """Statistiques d'une exécution complète."""

    collections: List[CollectionReport] = field(default_factory=list)

    # Listes de détails pour le rapport détaillé
    failed_files: List[str] = field(default_factory=list)
    fixed_extensions: List[str] = field(default_factory=list)
    missing_collections: List[str] = field(default_factory=list)

    # Erreurs par catégorie
    errors_by_type: Dict[str, int] = field(default_factory=dict)

    # Timing
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def start_processing(self) -> None:
        """Marquer le début du traitement."""
        self.start_time = datetime.now()

    def end_processing(self) -> None:
        """Marquer la fin du traitement."""
        self.end_time = datetime.now()

    @property
    def duration(self) -> Optional[float]:
        """Durée du traitement en secondes."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def total_copied(self) -> int:
        return sum(report.copied for report in self.collections)

    @property
    def total_skipped(self) -> int:
        return sum(report.skipped for report in self.collections)

    @property
    def total_errors(self) -> int:
        return sum(report.errors for report in self.collections)

    @property
    def has_errors(self) -> bool:
        return bool(self.missing_collections) or any(
            report.level is SummaryLevel.ERROR for report in self.collections
        )

    def add_failure(self, path: Path, error_type: str, error_msg: str) -> None:
        """Ajouter un fichier (ou élément) en échec."""
        self.failed_files.append(f"{Path(path).name}: {error_msg}")
        self.errors_by_type[error_type] = self.errors_by_type.get(error_type, 0) + 1

    def add_fixed_extension(self, old_name: str, new_name: str) -> None:
        """Ajouter une correction d'extension."""
        self.fixed_extensions.append(f"{old_name} → {new_name}")

    def print_console_summary(self) -> None:
        """Afficher un résumé concis dans la console."""
        print("\n" + "="*60)
        print("📊 RÉSUMÉ DE LA SAUVEGARDE")
        print("="*60)

        for report in self.collections:
            if report.not_found:
                print(f"❌ {report.name} : flux introuvable")
                continue
            icon = {"complete": "✅", "warning": "⚠️ ", "error": "❌"}.get(
                report.level.value if report.level else "", "•")
            print(f"{icon} {report.name} : {report.summary_line()}")

        print(f"📥 Fichiers copiés : {self.total_copied}")
        print(f"⏭️  Fichiers déjà présents : {self.total_skipped}")

        if self.fixed_extensions:
            print(f"🔧 Extensions corrigées : {len(self.fixed_extensions)}")

        if self.total_errors > 0:
            print(f"❌ Erreurs : {self.total_errors}")

        if self.duration:
            print(f"⏱️  Durée : {self.duration:.1f}s")

        if self.errors_by_type:
            print(f"\n🔍 Types d'erreurs principales :")
            for error_type, count in sorted(self.errors_by_type.items(), key=lambda x: x[1], reverse=True)[:3]:
                print(f"   • {error_type}: {count}")

        print("="*60)

    def save_detailed_report(self, log_file: Path) -> None:
        """Sauvegarder un rapport détaillé dans un fichier spécifique à cette exécution."""
        report = {
            "execution_timestamp": datetime.now().isoformat(),
            "summary": {
                "total_copied": self.total_copied,
                "total_skipped": self.total_skipped,
                "total_errors": self.total_errors,
                "has_errors": self.has_errors,
                "duration_seconds": self.duration,
            },
            "collections": [c.to_dict() for c in self.collections],
            "details": {
                "failed_files": self.failed_files,
                "fixed_extensions": self.fixed_extensions,
                "missing_collections": self.missing_collections,
                "errors_by_type": self.errors_by_type,
            },
        }

        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(log_file, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False)
            logger.info(f"📄 Rapport détaillé sauvegardé : {log_file}")
        except OSError as e:
            logger.error(f"Erreur lors de la sauvegarde du rapport : {e}")
