"""
Chargeur de configuration pour la sauvegarde des flux de photos partagés.
Permet de charger la configuration depuis JSON, .env et l'environnement.
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Any, Optional, get_args
import logging

logger = logging.getLogger(__name__)

DEFAULT_CACHE_ROOT = (
    "~/Library/Containers/com.apple.cloudphotosd/Data/Library/Application Support/"
    "com.apple.cloudphotosd/services/com.apple.photo.icloud.sharedstreams"
)

NAMING_SCHEMES = ("uuid", "classic")

ENV_PREFIX = "PSB_"


class ConfigurationError(ValueError):
    """Configuration invalide ou incomplète (fatale, avant tout traitement)."""


@dataclass
class BackupConfig:
    """Configuration effective d'une exécution"""
    cache_root: str = DEFAULT_CACHE_ROOT
    destination: Optional[str] = None
    alternate: Optional[str] = None
    folder_prefix: str = "_photostream "
    naming_scheme: str = "uuid"
    attribution_tag: str = "XMP-dc:Identifier"
    album_tag: str = "XMP-xmpDM:Album"
    use_rsync: bool = False
    skip_live_photo_thumbnails: bool = True
    eager_folder_creation: bool = False
    write_report: bool = True
    exiftool_timeout: int = 30

    @property
    def cache_root_path(self) -> Path:
        return Path(self.cache_root).expanduser()

    def validate(self) -> None:
        """Vérifie la cohérence des valeurs chargées."""
        if self.naming_scheme not in NAMING_SCHEMES:
            raise ConfigurationError(
                f"Schéma de nommage inconnu : {self.naming_scheme!r} "
                f"(valeurs possibles : {', '.join(NAMING_SCHEMES)})"
            )
        if self.exiftool_timeout <= 0:
            raise ConfigurationError("exiftool_timeout doit être strictement positif")

    def require_destination(self) -> Path:
        """Retourne la destination principale ou lève ConfigurationError."""
        if not self.destination:
            raise ConfigurationError(
                "Option obligatoire manquante : destination (-d/--destination)"
            )
        return Path(self.destination).expanduser()

    def alternate_path(self) -> Optional[Path]:
        if not self.alternate:
            return None
        return Path(self.alternate).expanduser()


class ConfigLoader:
    """Chargeur de configuration flexible"""

    def __init__(self, config_dir: Path = None, environ: Dict[str, str] = None):
        if config_dir is None:
            project_root = Path(__file__).parent.parent.parent
            config_dir = project_root / "config"
        self.config_dir = Path(config_dir)
        self.environ = os.environ if environ is None else environ
        self.config: Dict[str, Any] = {}

    def load_config(self, json_file: str = "backup_config.json", env_file: str = ".env") -> BackupConfig:
        """Charge la configuration depuis JSON, .env puis l'environnement"""

        # 1. Valeurs par défaut
        self.config = self._get_default_config()

        # 2. Fichier JSON
        json_path = self.config_dir / json_file
        if json_path.exists():
            try:
                with open(json_path, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Fichier de configuration illisible {json_path} : {exc}") from exc
            if not isinstance(loaded, dict):
                raise ConfigurationError(f"Le fichier {json_path} doit contenir un objet JSON")
            for key, value in loaded.items():
                self._set_value(key, value, source=str(json_path))
            logger.info(f"Configuration JSON chargée depuis {json_path}")
        else:
            logger.debug(f"Fichier de configuration JSON non trouvé : {json_path}")

        # 3. Overrides depuis .env
        env_path = self.config_dir / env_file
        if env_path.exists():
            self._load_env_overrides(env_path)
            logger.info(f"Overrides .env chargés depuis {env_path}")

        # 4. Variables d'environnement
        self._load_env_variables()

        backup_config = BackupConfig(**self.config)
        backup_config.validate()
        return backup_config

    def _load_env_overrides(self, env_path: Path):
        """Charge les overrides depuis un fichier .env"""
        with open(env_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    self._apply_env_override(key.strip(), value.strip().strip('"').strip("'"))

    def _load_env_variables(self):
        """Charge les variables d'environnement système"""
        for key, value in self.environ.items():
            if key.startswith(ENV_PREFIX):
                self._apply_env_override(key, value)

    def _apply_env_override(self, key: str, value: str):
        """Applique un override PSB_* depuis .env ou l'environnement"""
        if not key.startswith(ENV_PREFIX):
            logger.debug(f"Clé ignorée (préfixe {ENV_PREFIX} attendu) : {key}")
            return

        self._set_value(key[len(ENV_PREFIX):].lower(), value, source=key)

    def _set_value(self, key: str, value: Any, source: str):
        if key not in self.config:
            logger.warning(f"Option de configuration inconnue ignorée : {key} ({source})")
            return
        self.config[key] = _coerce(key, value, source)

    def _get_default_config(self) -> Dict[str, Any]:
        """Configuration par défaut si aucun fichier n'est trouvé"""
        defaults = BackupConfig()
        return {f.name: getattr(defaults, f.name) for f in fields(BackupConfig)}


_FIELD_TYPES = {f.name: f.type for f in fields(BackupConfig)}


def _coerce(key: str, value: Any, source: str) -> Any:
    """Convertit ``value`` selon le type déclaré du champ ``key``."""
    field_type = _FIELD_TYPES[key]

    # Optional[...] : None accepté, sinon type interne
    if type(None) in get_args(field_type):
        if value is None:
            return None
        field_type = next(arg for arg in get_args(field_type) if arg is not type(None))

    if field_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ('true', 'false'):
            return value.lower() == 'true'
        raise ConfigurationError(f"{key} ({source}) : booléen attendu (true/false), reçu {value!r}")

    if field_type is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass
        raise ConfigurationError(f"{key} ({source}) : entier attendu, reçu {value!r}")

    if not isinstance(value, str):
        raise ConfigurationError(f"{key} ({source}) : texte attendu, reçu {value!r}")
    return value
