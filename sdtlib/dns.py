"""DNS targets and the mutator that applies them through a resolver backend."""

import ipaddress
import re
import subprocess
from dataclasses import dataclass
from typing import Optional, Tuple

from .base import BaseOrchestrator
from .errors import ApplyError, CommandError, ExternallyManagedError, RollbackError, ValidationError
from .files import ensure_dir, ensure_file, read_file, render_template
from .resolver import ResolverBackend, default_interface
from .services import restart_service

PRESETS = {
    "cloudflare": ("Cloudflare", "1.1.1.1", "1.0.0.1"),
    "google": ("Google", "8.8.8.8", "8.8.4.4"),
    "quad9": ("Quad9", "9.9.9.9", "149.112.112.112"),
    "opendns": ("OpenDNS", "208.67.222.222", "208.67.220.220"),
}


def validate_address(text: str) -> bool:
    """
    True iff text is a complete IPv4 dotted-quad or IPv6 literal.

    Surrounding whitespace, zone ids and CIDR suffixes are rejected.
    """
    if not isinstance(text, str) or text != text.strip() or "%" in text or "/" in text:
        return False
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        return False
    if address.version == 4:
        return re.fullmatch(r"\d{1,3}(\.\d{1,3}){3}", text) is not None
    return True


@dataclass(frozen=True)
class DnsTarget:
    """A validated primary and optional secondary nameserver."""

    primary: str
    secondary: Optional[str] = None

    @classmethod
    def parse(cls, primary: str, secondary: Optional[str] = None) -> "DnsTarget":
        """
        Build a target from operator input.

        Raises:
            ValidationError: either address is malformed
        """
        primary = (primary or "").strip()
        secondary = (secondary or "").strip() or None
        if not validate_address(primary):
            raise ValidationError(f"Invalid primary DNS address: {primary!r}")
        if secondary is not None and not validate_address(secondary):
            raise ValidationError(f"Invalid secondary DNS address: {secondary!r}")
        return cls(primary, secondary)

    @classmethod
    def preset(cls, name: str) -> "DnsTarget":
        key = name.lower()
        if key not in PRESETS:
            raise ValidationError(f"Unknown DNS preset '{name}' (choose from {', '.join(PRESETS)})")
        _, primary, secondary = PRESETS[key]
        return cls(primary, secondary)

    @property
    def addresses(self) -> Tuple[str, ...]:
        if self.secondary:
            return (self.primary, self.secondary)
        return (self.primary,)

    def __str__(self) -> str:
        return ", ".join(self.addresses)


def _resolvectl(*args: str) -> subprocess.CompletedProcess:
    """Run a resolvectl command."""
    cmd = ["resolvectl"] + list(args)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        raise CommandError(cmd) from None
    if result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stderr)
    return result


class DnsMutator(BaseOrchestrator):
    """Writes nameserver settings through the detected resolver backend."""

    def apply(self, backend: ResolverBackend, target: DnsTarget) -> None:
        """
        Apply a DNS target. Re-applying the same target is a no-op on disk.

        Raises:
            ApplyError: a backend command failed or the file is not ours to edit
        """
        if backend == ResolverBackend.MANAGED:
            self._apply_managed(target)
        else:
            self._apply_static(target)

    # -------------------------------------------------------------------------
    # systemd-resolved
    # -------------------------------------------------------------------------

    def render_override(self, target: DnsTarget) -> str:
        return render_template("resolved-dropin.conf.j2", {
            "owner_comment": self.config.owner_comment,
            "addresses": target.addresses,
        })

    def _apply_managed(self, target: DnsTarget) -> None:
        override = self.config.resolved_override
        self.log(f"Writing {override}")
        try:
            ensure_dir(override.parent, mode=0o755)
            if ensure_file(override, self.render_override(target), mode=0o644):
                self.record_change(f"Wrote {override}")
        except OSError as e:
            raise ApplyError(f"Cannot write {override}: {e}") from e

        try:
            restart_service(self.config.resolver_service)
        except CommandError as e:
            raise ApplyError(f"Failed to restart {self.config.resolver_service}: {e}") from e

        iface = default_interface()
        if iface:
            self.log(f"Setting per-link DNS on {iface}")
            try:
                _resolvectl("revert", iface)
            except CommandError as e:
                self.log_verbose(f"No previous per-link override: {e}")
            try:
                _resolvectl("dns", iface, *target.addresses)
            except CommandError as e:
                raise ApplyError(f"Failed to set DNS on {iface}: {e}") from e
        else:
            self.log_verbose("No default route; skipping per-link DNS")

        try:
            _resolvectl("flush-caches")
        except CommandError as e:
            self.log_warn(f"Cache flush failed: {e}")

    # -------------------------------------------------------------------------
    # Plain /etc/resolv.conf
    # -------------------------------------------------------------------------

    def render_resolv_conf(self, target: DnsTarget) -> str:
        return render_template("resolv.conf.j2", {
            "owner_comment": self.config.owner_comment,
            "addresses": target.addresses,
        })

    def foreign_manager(self) -> Optional[str]:
        """Name of the network manager that generated the resolver file, if any."""
        content = read_file(self.config.resolv_conf, errors="replace")
        for marker in self.config.foreign_manager_markers:
            if re.search(re.escape(marker), content, re.IGNORECASE):
                return marker
        return None

    def _apply_static(self, target: DnsTarget) -> None:
        path = self.config.resolv_conf
        manager = self.foreign_manager()
        if manager:
            raise ExternallyManagedError(
                f"{path} appears managed by {manager}; refusing to write it directly"
            )
        self.log(f"Writing {path}")
        try:
            if ensure_file(path, self.render_resolv_conf(target), mode=0o644):
                self.record_change(f"Wrote {path}")
        except (OSError, UnicodeError) as e:
            raise ApplyError(f"Cannot write {path}: {e}") from e

    # -------------------------------------------------------------------------
    # After a restore
    # -------------------------------------------------------------------------

    def after_restore(self, backend: ResolverBackend) -> None:
        """
        Make restored resolver files take effect.

        Raises:
            RollbackError: the resolver daemon could not be restarted
        """
        if backend != ResolverBackend.MANAGED:
            return
        iface = default_interface()
        if iface:
            try:
                _resolvectl("revert", iface)
            except CommandError as e:
                self.log_warn(f"Could not revert per-link DNS on {iface}: {e}")
        try:
            restart_service(self.config.resolver_service)
        except CommandError as e:
            raise RollbackError(f"Failed to restart {self.config.resolver_service}: {e}") from e
