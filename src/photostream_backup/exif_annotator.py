# Fichier : src/photostream_backup/exif_annotator.py

import subprocess
import logging
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# Formats dont l'extension usuelle diffère de celle renvoyée par exiftool
_CANONICAL_EXTENSIONS = {
    ".jpeg": ".jpg",
    ".jpe": ".jpg",
    ".tiff": ".tif",
}


def canonical_extension(ext: str) -> str:
    """Normaliser une extension : minuscules, point initial, ``.jpeg`` → ``.jpg``."""
    ext = ext.strip().lower()
    if not ext:
        return ext
    if not ext.startswith("."):
        ext = "." + ext
    return _CANONICAL_EXTENSIONS.get(ext, ext)


def sniff_extension(file_path: Path) -> Optional[str]:
    """Détecter le format réel d'un fichier par ses octets magiques.

    Retourne:
        L'extension correcte (avec point) ou ``None`` si la détection échoue
    """
    try:
        with open(file_path, "rb") as f:
            header = f.read(16)
    except OSError:
        return None

    if header.startswith(b'\xff\xd8\xff'):
        return ".jpg"
    elif header.startswith(b'\x89PNG\r\n\x1a\n'):
        return ".png"
    elif header.startswith(b'GIF8'):
        return ".gif"
    elif header.startswith(b'RIFF') and b'WEBP' in header:
        return ".webp"
    elif header[4:8] == b'ftyp':
        brand = header[8:12]
        if brand in (b'heic', b'heix', b'mif1', b'msf1'):
            return ".heic"
        elif brand == b'qt  ':
            return ".mov"
        elif brand in (b'isom', b'iso2', b'mp41', b'mp42', b'avc1'):
            return ".mp4"
    return None


class MetadataAnnotator:
    """Accès aux métadonnées d'un fichier via exiftool.

    Trois opérations seulement : détecter le format réel, lire un tag,
    écrire des tags. Les échecs d'écriture lèvent ``RuntimeError``.
    """

    def __init__(
        self,
        attribution_tag: str = "XMP-dc:Identifier",
        album_tag: str = "XMP-xmpDM:Album",
        exiftool: str = "exiftool",
        timeout: int = 30,
    ):
        self.attribution_tag = attribution_tag
        self.album_tag = album_tag
        self.exiftool = exiftool
        self.timeout = timeout

    def _run(self, args: List[str], media_path: Path) -> str:
        """Exécute une commande exiftool avec gestion d'erreurs et retourne stdout."""
        cmd = [self.exiftool, "-charset", "filename=utf8"]
        cmd.extend(args)
        cmd.append(str(media_path))

        logger.debug(f"Commande exiftool : {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True,
                                    timeout=self.timeout, encoding='utf-8')
        except subprocess.CalledProcessError as e:
            out = (e.stdout or "")
            err = (e.stderr or "")
            logger.debug("Erreur exiftool pour %s: code %s\nstdout: %s\nstderr: %s",
                         media_path, e.returncode, out, err)
            raise RuntimeError(f"Échec de la commande exiftool pour {media_path}: {err or out}") from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeError(f"Timeout exiftool pour {media_path}") from e
        except FileNotFoundError as e:
            raise RuntimeError(f"exiftool introuvable ({self.exiftool})") from e

        if result.stderr and result.stderr.strip():
            logger.warning(f"exiftool stderr: {result.stderr.strip()}")
        return result.stdout or ""

    def detect_extension(self, media_path: Path) -> Optional[str]:
        """Extension correspondant au format encodé du fichier (``.jpg``, ``.heic``...)."""
        try:
            value = self._run(["-s3", "-FileTypeExtension"], media_path).strip()
        except RuntimeError as exc:
            logger.debug("Détection exiftool impossible pour %s (%s), repli sur les octets magiques",
                         media_path.name, exc)
            value = ""

        if value:
            return canonical_extension(value)
        return sniff_extension(media_path)

    def read_tag(self, media_path: Path, tag: str) -> Optional[str]:
        value = self._run(["-s3", f"-{tag}"], media_path).strip()
        return value or None

    def write_tags(self, media_path: Path, tags: Dict[str, str]) -> None:
        if not tags:
            return
        args = ["-overwrite_original", "-charset", "utf8"]
        args.extend(f"-{tag}={value}" for tag, value in tags.items())
        self._run(args, media_path)

    def annotate(self, media_path: Path, attribution: str, album: str) -> List[str]:
        """Écrire l'identifiant d'origine et l'album ; l'album n'est réécrit que s'il diffère.

        Returns:
            Liste des tags effectivement écrits
        """
        tags = {self.attribution_tag: attribution}
        current_album = self.read_tag(media_path, self.album_tag)
        if current_album != album:
            tags[self.album_tag] = album
        else:
            logger.debug("Album déjà renseigné pour %s", media_path.name)
        self.write_tags(media_path, tags)
        return list(tags)
