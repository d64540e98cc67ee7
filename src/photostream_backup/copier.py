"""Copie « seulement si absent ou modifié » et horodatage des fichiers copiés."""

from __future__ import annotations

import enum
import filecmp
import logging
import os
import shutil
import subprocess
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

TOUCH_FORMAT = "%Y%m%d%H%M.%S"


class CopyError(RuntimeError):
    """Échec de la copie d'un fichier (non fatal pour l'exécution)."""


class CopyStatus(enum.Enum):
    COPIED = "copied"
    UNCHANGED = "unchanged"


def check_rsync_available() -> bool:
    """Vérifier la présence de rsync sur le système."""
    try:
        result = subprocess.run(["rsync", "--version"], capture_output=True, text=True, timeout=5)
        return result.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return False


def _copy_with_rsync(source: Path, dest: Path) -> CopyStatus:
    cmd = ["rsync", "--update", "--times", "--itemize-changes", str(source), str(dest)]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=300)
    except (subprocess.TimeoutExpired, OSError) as exc:
        raise CopyError(f"rsync en échec pour {source}: {exc}") from exc

    if result.returncode != 0:
        raise CopyError(f"rsync en échec pour {source} (code {result.returncode}): {result.stderr.strip()}")

    changes = [line for line in result.stdout.splitlines() if line.strip()]
    for change in changes:
        logger.debug("    rsync : %s", change)
    return CopyStatus.COPIED if changes else CopyStatus.UNCHANGED


def _copy_with_shutil(source: Path, dest: Path) -> CopyStatus:
    try:
        if dest.is_file() and filecmp.cmp(source, dest, shallow=False):
            return CopyStatus.UNCHANGED
        shutil.copy2(source, dest)
    except (OSError, shutil.Error) as exc:
        raise CopyError(f"Copie en échec {source} → {dest}: {exc}") from exc
    return CopyStatus.COPIED


def copy_if_changed(source: Path, dest: Path, use_rsync: bool = False) -> CopyStatus:
    """Copier ``source`` vers ``dest`` si la destination est absente ou différente.

    Raises:
        CopyError: source illisible, destination non inscriptible, rsync en échec
    """
    source, dest = Path(source), Path(dest)
    if not source.is_file():
        raise CopyError(f"Fichier source introuvable : {source}")
    if use_rsync:
        return _copy_with_rsync(source, dest)
    return _copy_with_shutil(source, dest)


def touch_stamp(when: datetime) -> str:
    """Horodatage au format ``touch -t`` (``YYYYMMDDHHMM.SS``)."""
    return when.strftime(TOUCH_FORMAT)


def set_modification_time(path: Path, when: datetime) -> None:
    timestamp = when.timestamp()
    os.utime(path, (timestamp, timestamp))
