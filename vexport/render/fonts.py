"""Font resolution for caption rendering.

Maps a (family, bold) pair to a local TrueType file the subtitle renderer and
the text measurer can both load. Families are downloaded once into an on-disk
cache shared by every export in the process:

1. Cache hit (files at or under ``font_min_bytes`` are treated as corrupt,
   typically an HTML error page, and re-downloaded)
2. Static file from the font repository's raw-file host
3. CSS discovery API, queried with legacy client identities that are served
   plain .ttf files instead of WOFF2/EOT containers
4. Bold falls back to regular
5. Platform system font

Usage:
    from vexport.render.fonts import get_font_resolver

    path = get_font_resolver().resolve("Poppins", bold=True)
"""

import logging
import os
import re
import sys
import tempfile
from functools import lru_cache
from pathlib import Path
from urllib.parse import quote

import httpx

from vexport.config import Settings, get_settings
from vexport.exceptions import FontResolutionError

logger = logging.getLogger(__name__)


RAW_FONTS_BASE = "https://raw.githubusercontent.com/google/fonts/main"

# Static TTF per family. A bold of None means the repository only ships a
# variable font, which renders at the default axis weight, so bold requests go
# straight to the CSS API (it serves weight-specific static instances).
FONT_TTF_URLS: dict[str, dict[str, str | None]] = {
    "Inter": {"regular": f"{RAW_FONTS_BASE}/ofl/inter/Inter%5Bopsz%2Cwght%5D.ttf", "bold": None},
    "Roboto": {"regular": f"{RAW_FONTS_BASE}/ofl/roboto/Roboto%5Bwdth%2Cwght%5D.ttf", "bold": None},
    "Open Sans": {"regular": f"{RAW_FONTS_BASE}/ofl/opensans/OpenSans%5Bwdth%2Cwght%5D.ttf", "bold": None},
    "Montserrat": {"regular": f"{RAW_FONTS_BASE}/ofl/montserrat/Montserrat%5Bwght%5D.ttf", "bold": None},
    "Lato": {
        "regular": f"{RAW_FONTS_BASE}/ofl/lato/Lato-Regular.ttf",
        "bold": f"{RAW_FONTS_BASE}/ofl/lato/Lato-Bold.ttf",
    },
    "Poppins": {
        "regular": f"{RAW_FONTS_BASE}/ofl/poppins/Poppins-Regular.ttf",
        "bold": f"{RAW_FONTS_BASE}/ofl/poppins/Poppins-Bold.ttf",
    },
    "Raleway": {"regular": f"{RAW_FONTS_BASE}/ofl/raleway/Raleway%5Bwght%5D.ttf", "bold": None},
    "Oswald": {"regular": f"{RAW_FONTS_BASE}/ofl/oswald/Oswald%5Bwght%5D.ttf", "bold": None},
    "Nunito": {"regular": f"{RAW_FONTS_BASE}/ofl/nunito/Nunito%5Bwght%5D.ttf", "bold": None},
    "Playfair Display": {
        "regular": f"{RAW_FONTS_BASE}/ofl/playfairdisplay/PlayfairDisplay%5Bwght%5D.ttf",
        "bold": None,
    },
    "Ubuntu": {
        "regular": f"{RAW_FONTS_BASE}/ufl/ubuntu/Ubuntu-Regular.ttf",
        "bold": f"{RAW_FONTS_BASE}/ufl/ubuntu/Ubuntu-Bold.ttf",
    },
    # Single-weight display faces: bold is the same file
    "Bebas Neue": {
        "regular": f"{RAW_FONTS_BASE}/ofl/bebasneue/BebasNeue-Regular.ttf",
        "bold": f"{RAW_FONTS_BASE}/ofl/bebasneue/BebasNeue-Regular.ttf",
    },
    "Anton": {
        "regular": f"{RAW_FONTS_BASE}/ofl/anton/Anton-Regular.ttf",
        "bold": f"{RAW_FONTS_BASE}/ofl/anton/Anton-Regular.ttf",
    },
    "Dancing Script": {
        "regular": f"{RAW_FONTS_BASE}/ofl/dancingscript/DancingScript%5Bwght%5D.ttf",
        "bold": None,
    },
    "Pacifico": {
        "regular": f"{RAW_FONTS_BASE}/ofl/pacifico/Pacifico-Regular.ttf",
        "bold": f"{RAW_FONTS_BASE}/ofl/pacifico/Pacifico-Regular.ttf",
    },
    "Merriweather": {
        "regular": f"{RAW_FONTS_BASE}/ofl/merriweather/Merriweather%5Bopsz%2Cwdth%2Cwght%5D.ttf",
        "bold": None,
    },
    "Quicksand": {"regular": f"{RAW_FONTS_BASE}/ofl/quicksand/Quicksand%5Bwght%5D.ttf", "bold": None},
}

# Old mobile browsers are served format('truetype'). Modern agents get WOFF2
# and IE gets EOT, neither of which FreeType/libass can load.
CSS_USER_AGENTS = [
    "Mozilla/5.0 (Linux; U; Android 2.2; en-us; Nexus One Build/FRF91) AppleWebKit/533.1 "
    "(KHTML, like Gecko) Version/4.0 Mobile Safari/533.1",
    "BlackBerry9700/5.0.0.862 Profile/MIDP-2.1 Configuration/CLDC-1.1 VendorID/167",
]

CSS_API_TEMPLATES = [
    "https://fonts.googleapis.com/css2?family={family}:wght@{weight}&display=swap",
    "https://fonts.googleapis.com/css?family={family}:{weight}",
]

FONT_URL_RE = re.compile(r"""url\(["']?(https?:[^"')]+\.(?:ttf|otf))["']?\)""", re.IGNORECASE)

SYSTEM_FONT_CANDIDATES: dict[str, dict[str, list[str]]] = {
    "win32": {
        "regular": ["C:/Windows/Fonts/arial.ttf"],
        "bold": ["C:/Windows/Fonts/arialbd.ttf"],
    },
    "darwin": {
        "regular": [
            "/System/Library/Fonts/Supplemental/Arial.ttf",
            "/Library/Fonts/Arial.ttf",
            "/System/Library/Fonts/Helvetica.ttc",
        ],
        "bold": [
            "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
            "/Library/Fonts/Arial Bold.ttf",
            "/System/Library/Fonts/Helvetica.ttc",
        ],
    },
    "linux": {
        "regular": [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
            "/usr/share/fonts/dejavu/DejaVuSans.ttf",
        ],
        "bold": [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
            "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
            "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
        ],
    },
}


def font_weight(bold: bool) -> int:
    return 700 if bold else 400


def cache_file_name(family: str, weight: int) -> str:
    """``"Open Sans", 700`` -> ``open_sans_700.ttf``."""
    safe_name = re.sub(r"\s+", "_", family).lower()
    return f"{safe_name}_{weight}.ttf"


class FontResolver:
    """Resolves font families to local files, downloading into a shared cache.

    ``resolve()`` never raises; ``download()`` raises FontResolutionError when
    every network tier failed.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.Client | None = None,
        cache_dir: str | Path | None = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None
        self._cache_dir = Path(cache_dir) if cache_dir else self.settings.font_cache_path

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                follow_redirects=True,
                timeout=self.settings.font_download_timeout_s,
                headers={"Accept-Encoding": "identity"},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    @property
    def fonts_dir(self) -> Path:
        """Cache directory, created on first use."""
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        return self._cache_dir

    def cache_path(self, family: str, bold: bool) -> Path:
        return self.fonts_dir / cache_file_name(family, font_weight(bold))

    # =========================================================================
    # Public API
    # =========================================================================

    def system_font_path(self, bold: bool) -> str:
        """Platform fallback font. Always returns a path, even if it is missing."""
        override = self.settings.system_font_bold if bold else self.settings.system_font_regular
        if override:
            return override

        platform_key = sys.platform if sys.platform in SYSTEM_FONT_CANDIDATES else "linux"
        candidates = SYSTEM_FONT_CANDIDATES[platform_key]["bold" if bold else "regular"]
        for font_path in candidates:
            if os.path.exists(font_path):
                return font_path
        logger.warning(f"[FONTS] No system font found for bold={bold}, using {candidates[0]}")
        return candidates[0]

    def resolve(self, family: str | None, bold: bool = False) -> str:
        """Return a local font path for ``family``; never raises."""
        if not family:
            return self.system_font_path(bold)

        try:
            return self.download(family, bold)
        except (FontResolutionError, OSError) as e:
            logger.error(f"[FONTS] Failed to get \"{family}\" bold={bold}: {e}")

        # Bold variant might not exist
        if bold:
            try:
                return self.download(family, False)
            except (FontResolutionError, OSError) as e:
                logger.warning(f"[FONTS] Regular fallback for \"{family}\" also failed: {e}")

        logger.warning(f"[FONTS] Falling back to system font for \"{family}\"")
        return self.system_font_path(bold)

    def download(self, family: str, bold: bool = False) -> str:
        """Return the cached file for (family, weight), downloading it if needed.

        Raises:
            FontResolutionError: If neither the static table nor the CSS API
                produced a usable file
        """
        weight = font_weight(bold)
        font_path = self.cache_path(family, bold)

        if self._is_valid_cache(font_path):
            logger.info(f"[FONTS] Cache hit: {font_path}")
            return str(font_path)

        entry = FONT_TTF_URLS.get(family)
        static_url = entry["bold" if bold else "regular"] if entry else None
        if static_url:
            logger.info(f"[FONTS] Downloading {family} {weight} from font repository: {static_url}")
            if self._download_file(static_url, font_path):
                return str(font_path)
            logger.warning(f"[FONTS] Static download failed for \"{family}\", trying CSS API")
        else:
            logger.info(f"[FONTS] No static URL for \"{family}\" bold={bold}, using CSS API")

        for user_agent in CSS_USER_AGENTS:
            for template in CSS_API_TEMPLATES:
                css_url = template.format(family=quote(family, safe=""), weight=weight)
                file_url = self._find_font_url(css_url, user_agent)
                if file_url is None:
                    continue
                logger.info(f"[FONTS] CSS API: downloading {family} {weight} from {file_url}")
                if self._download_file(file_url, font_path):
                    return str(font_path)

        raise FontResolutionError(family, weight)

    def prefetch(self, family: str) -> dict[int, str | None]:
        """Download both weights ahead of an export; failures are only logged."""
        results: dict[int, str | None] = {}
        for bold in (False, True):
            try:
                results[font_weight(bold)] = self.download(family, bold)
            except (FontResolutionError, OSError) as e:
                logger.warning(f"[FONTS] Prefetch failed: {e}")
                results[font_weight(bold)] = None
        return results

    # =========================================================================
    # Network tiers
    # =========================================================================

    def _is_valid_cache(self, font_path: Path) -> bool:
        try:
            size = font_path.stat().st_size
        except OSError:
            return False
        if size > self.settings.font_min_bytes:
            return True

        logger.warning(f"[FONTS] Cached file too small ({size} bytes), re-downloading: {font_path}")
        try:
            font_path.unlink()
        except OSError:
            pass
        return False

    def _find_font_url(self, css_url: str, user_agent: str) -> str | None:
        try:
            response = self.client.get(css_url, headers={"User-Agent": user_agent})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[FONTS] CSS API fetch failed ({css_url}): {e}")
            return None

        match = FONT_URL_RE.search(response.text)
        if not match:
            logger.warning(
                f"[FONTS] No TTF/OTF in CSS response UA=\"{user_agent[:24]}...\" url={css_url}"
            )
            return None
        return match.group(1).strip()

    def _download_file(self, url: str, font_path: Path) -> bool:
        """Download ``url`` into ``font_path``; False if it failed or looks bogus.

        The body goes to a temp sibling first and is renamed into place, so a
        concurrent reader sees either nothing or the complete file.
        """
        try:
            response = self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[FONTS] Download failed ({url}): {e}")
            return False

        content = response.content
        if len(content) <= self.settings.font_min_bytes:
            logger.warning(f"[FONTS] Download too small ({len(content)} bytes): {url}")
            return False

        fd, tmp_path = tempfile.mkstemp(dir=self.fonts_dir, prefix=f".{font_path.stem}_", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_path, font_path)
        except OSError as e:
            logger.warning(f"[FONTS] Could not write {font_path}: {e}")
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            return False

        logger.info(f"[FONTS] Saved to: {font_path} ({len(content)} bytes)")
        return True


@lru_cache
def get_font_resolver() -> FontResolver:
    """Process-wide resolver sharing one cache and one HTTP client."""
    return FontResolver()
