"""Interface en ligne de commande."""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path

from .catalog import CatalogError, CatalogReader
from .config_loader import ConfigLoader, ConfigurationError
from .copier import check_rsync_available
from .processor import run_backup


def _split_streams(value: str) -> list[str]:
    return [name.strip() for name in value.split(",") if name.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photostream-backup",
        description="Sauvegarder les flux de photos partagés vers un dossier de destination",
    )
    parser.add_argument(
        "-s", "--streams", type=_split_streams,
        help="Nom d'un ou plusieurs flux séparés par des virgules, 'all' pour tous (défaut : tous)"
    )
    parser.add_argument(
        "-d", "--destination",
        help="Dossier de destination des images (ex. ~/Dropbox)"
    )
    parser.add_argument(
        "-a", "--alternate",
        help="Dossier d'archive secondaire consulté pour éviter les doublons"
    )
    parser.add_argument(
        "--cache-root",
        help="Racine du cache local des flux partagés"
    )
    parser.add_argument(
        "--config-dir", type=Path,
        help="Dossier contenant backup_config.json et .env"
    )
    parser.add_argument(
        "--list-streams", action="store_true",
        help="Lister les flux disponibles (avec leur identifiant en mode -v) puis quitter"
    )
    parser.add_argument(
        "--rsync", action="store_true",
        help="Copier avec rsync --update plutôt qu'avec shutil"
    )
    parser.add_argument(
        "--no-report", action="store_true",
        help="Ne pas écrire le rapport JSON détaillé"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Activer les logs détaillés (niveau DEBUG)"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configuration du logging avec le niveau approprié
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s"
    )

    try:
        config = ConfigLoader(args.config_dir).load_config()
    except (ConfigurationError, OSError) as exc:
        logging.error("Configuration invalide : %s", exc)
        sys.exit(1)

    if args.destination:
        config.destination = args.destination
    if args.alternate:
        config.alternate = args.alternate
    if args.cache_root:
        config.cache_root = args.cache_root
    if args.rsync:
        config.use_rsync = True
    if args.no_report:
        config.write_report = False

    catalog = CatalogReader(cache_root=config.cache_root_path)
    try:
        if args.list_streams:
            for collection in catalog.list_collection_records():
                print(f"{collection.name}\t{collection.id}" if args.verbose else collection.name)
            return

        try:
            destination = config.require_destination()
        except ConfigurationError as exc:
            logging.error("%s", exc)
            parser.print_usage(sys.stderr)
            sys.exit(1)

        # Vérifier que exiftool est disponible avant tout traitement
        if shutil.which("exiftool") is None:
            logging.error("exiftool introuvable. Veuillez l'installer pour utiliser ce script.")
            sys.exit(1)

        streams = args.streams
        if not streams:
            streams = catalog.list_collections()
            logging.info("Aucun flux sélectionné, sauvegarde de tous les flux :\n  %s", "\n  ".join(streams))
        elif streams == ["all"]:
            streams = catalog.list_collections()

        if config.use_rsync and not check_rsync_available():
            logging.warning("rsync introuvable, copie avec shutil")
            config.use_rsync = False

        destination.mkdir(parents=True, exist_ok=True)
        run_backup(
            streams,
            destination,
            config.alternate_path(),
            verbose=args.verbose,
            config=config,
            catalog=catalog,
        )
    except CatalogError as exc:
        logging.error("❌ %s", exc)
        sys.exit(1)
    finally:
        catalog.close()


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
