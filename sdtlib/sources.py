"""APT repository source rewriting."""

import re
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from .base import BaseOrchestrator
from .config import SdtConfig
from .errors import ApplyError, ValidationError
from .files import ensure_file, read_file
from .mirrors import candidates_for
from .packages import SUPPORTED_DISTROS

# A URL pattern ends where the path component ends
_END = r"(?![\w.-])"

OFFICIAL_PATTERNS = {
    "ubuntu": [r"https?://(?:[a-z0-9-]+\.)*archive\.ubuntu\.com/ubuntu" + _END],
    "debian": [
        r"https?://deb\.debian\.org/debian" + _END,
        r"https?://ftp\.[a-z0-9.-]+/debian" + _END,
    ],
}

SECURITY_PATTERNS = {
    "debian": [
        r"https?://security\.debian\.org/debian-security" + _END,
        r"https?://deb\.debian\.org/debian-security" + _END,
    ],
}


def validate_mirror_url(distro: str, url: str) -> str:
    """
    Check a mirror URL against the distro's repository layout.

    Returns:
        The URL without a trailing slash

    Raises:
        ValidationError: unsupported distro, missing http(s) scheme, or a path
                         that does not end in /<distro>
    """
    if distro not in SUPPORTED_DISTROS:
        raise ValidationError(f"Unsupported distro for mirror manager: {distro or 'unknown'}")
    url = (url or "").strip()
    if not re.match(r"^https?://[^/\s]+", url) or re.search(r"\s", url):
        raise ValidationError(f"Invalid URL: {url!r} (must start with http:// or https://)")
    path = urlsplit(url).path
    if not re.search(rf"/{distro}/?$", path):
        raise ValidationError(f"For {distro.capitalize()}, mirror URL must end with /{distro}")
    return url.rstrip("/")


def find_source_files(config: SdtConfig) -> List[Path]:
    """
    The source files apt reads: sources.list and the *.list and *.sources
    files directly inside sources.list.d. These are also the paths the apt
    backup site covers, so nothing outside them is ever rewritten.
    """
    found = []
    if config.apt_sources_list.is_file():
        found.append(Path(config.apt_sources_list))
    sources_dir = Path(config.apt_sources_dir)
    if sources_dir.is_dir():
        found.extend(
            sorted(p for p in sources_dir.iterdir() if p.is_file() and p.suffix in (".list", ".sources"))
        )
    return found



# -----------------------------------------------------------------------------
# Current mirror
# -----------------------------------------------------------------------------

def first_deb_uri(text: str) -> Optional[str]:
    """URL of the first one-line `deb http(s)://...` entry."""
    for line in text.splitlines():
        match = re.match(r"^\s*deb\s+(?:\[[^\]]*\]\s+)?(https?://\S+)", line)
        if match:
            return match.group(1)
    return None


def first_uris(text: str) -> Optional[str]:
    """First http(s) URL of a deb822 `URIs:` field."""
    for line in text.splitlines():
        match = re.match(r"^\s*URIs:\s*(https?://\S+)", line)
        if match:
            return match.group(1)
    return None


def current_mirror(config: SdtConfig) -> str:
    """The mirror the host currently points at, or "Unknown"."""
    uri = first_deb_uri(read_file(config.apt_sources_list, errors="replace"))
    if uri:
        return uri
    if config.apt_sources_dir.is_dir():
        for path in sorted(config.apt_sources_dir.glob("*.sources")):
            uri = first_uris(read_file(path, errors="replace"))
            if uri:
                return uri
    return "Unknown"


# -----------------------------------------------------------------------------
# Rewriting
# -----------------------------------------------------------------------------

def _base(url: str, distro: str) -> str:
    """The URL with its /<distro> suffix removed."""
    return re.sub(rf"/{distro}/?$", "", url)


def build_patterns(distro: str, current: Optional[str] = None) -> Tuple[List[str], List[str]]:
    """
    Regexes for (main archive, security archive) references of a distro.

    Covers the official hosts, every catalog mirror, and the mirror
    currently configured so a previous custom choice can be replaced.
    """
    main = list(OFFICIAL_PATTERNS.get(distro, []))
    security = list(SECURITY_PATTERNS.get(distro, []))

    known = [c.url for c in candidates_for(distro)]
    if current and re.search(rf"/{distro}/?$", current):
        known.append(current)
    for url in known:
        url = url.rstrip("/")
        main.append(re.escape(url) + _END)
        if distro in SECURITY_PATTERNS:
            security.append(re.escape(_base(url, distro)) + rf"/{distro}-security" + _END)
    return main, security


def rewrite_sources(text: str, distro: str, url: str, current: Optional[str] = None) -> str:
    """
    Point every recognized archive reference in a sources file at ``url``.

    Security archive references become ``<base>/<distro>-security``. All
    other text is left byte for byte.
    """
    main, security = build_patterns(distro, current)
    if security:
        security_url = f"{_base(url, distro)}/{distro}-security"
        text = re.sub("|".join(security), lambda _: security_url, text)
    if main:
        text = re.sub("|".join(main), lambda _: url, text)
    return text


class MirrorMutator(BaseOrchestrator):
    """Switches the host's APT sources to a chosen mirror."""

    def apply(self, distro: str, url: str) -> List[Path]:
        """
        Rewrite every repository source file to use ``url``.

        Returns:
            The files that were changed

        Raises:
            ValidationError: the URL does not fit the distro
            ApplyError: a source file could not be read or written
        """
        url = validate_mirror_url(distro, url)
        current = current_mirror(self.config)
        changed = []
        for path in find_source_files(self.config):
            try:
                original = read_file(path)
                updated = rewrite_sources(original, distro, url, current)
                if updated != original and ensure_file(path, updated):
                    changed.append(path)
                    self.log_verbose(f"Rewrote {path}")
            except (OSError, UnicodeDecodeError) as e:
                raise ApplyError(f"Cannot rewrite {path}: {e}") from e

        if changed:
            self.record_change(f"Pointed {len(changed)} source file(s) at {url}")
        else:
            self.log_warn("No repository references matched; sources unchanged")
        return changed
