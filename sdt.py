#!/usr/bin/env python3
"""
sdt - Server Dashboard Tool.

Change DNS servers and APT mirrors on a live Debian/Ubuntu host without
risking an unrecoverable system: every change is backed up, applied,
verified, and rolled back automatically if verification fails.

Usage:
    ./sdt.py                          # Interactive menu
    ./sdt.py dashboard                # Show system information
    ./sdt.py dns show                 # Show current DNS servers
    ./sdt.py dns set --preset quad9   # Switch to a DNS preset
    ./sdt.py dns set 1.1.1.1 1.0.0.1  # Switch to custom servers
    ./sdt.py dns restore              # Restore the latest DNS backup
    ./sdt.py mirror rank              # Benchmark mirrors, fastest first
    ./sdt.py mirror set --best        # Switch to the fastest mirror
    ./sdt.py mirror set URL           # Switch to a specific mirror
    ./sdt.py maintain                 # apt update && apt upgrade
"""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

# Add sdtlib to path
sys.path.insert(0, str(Path(__file__).parent))

from sdtlib.base import BaseOrchestrator
from sdtlib.config import SdtConfig, load_config
from sdtlib.dns import PRESETS, DnsTarget
from sdtlib.errors import SdtError, ValidationError
from sdtlib.mirrors import MirrorBenchmark, MirrorMeasurement, candidates_for
from sdtlib.packages import PackageMaintenance, detect_distro
from sdtlib.prompts import confirm, pause, prompt, prompt_timeout
from sdtlib.resolver import current_dns
from sdtlib.sources import current_mirror
from sdtlib.sysinfo import collect
from sdtlib.transaction import MutationOutcome, OutcomeStatus, RollbackCoordinator

SDT_NAME = "SDT - Server Dashboard Tool"


def _heading(title: str) -> None:
    if sys.stdout.isatty():
        print(f"\033[1m\033[36m{title}\033[0m")
    else:
        print(title)


def _clear() -> None:
    if sys.stdout.isatty():
        print("\033[2J\033[H", end="")


class Sdt(BaseOrchestrator):
    """Main dashboard class: wires the mutation engine to the CLI and menu."""

    def __init__(self, config: SdtConfig, dry_run: bool = False, verbose: bool = False):
        super().__init__(config, dry_run=dry_run, verbose=verbose)
        self.coordinator = RollbackCoordinator(config, dry_run=dry_run, verbose=verbose)
        self.benchmark = MirrorBenchmark(config)

    def report(self, outcome: MutationOutcome) -> bool:
        """Print a transaction outcome. Returns True if the change stuck."""
        if outcome.status in (OutcomeStatus.APPLIED_AND_VERIFIED, OutcomeStatus.APPLIED):
            self.log_ok(f"Result: {outcome.describe()}")
        elif outcome.status == OutcomeStatus.ROLLED_BACK:
            self.log_warn(f"Result: {outcome.describe()}")
        else:
            self.log_error(f"Result: {outcome.describe()}")
            if outcome.status == OutcomeStatus.ROLLBACK_FAILED:
                self.log_error("Host configuration may be inconsistent; re-run the change or restore manually.")
        return outcome.status in (OutcomeStatus.APPLIED_AND_VERIFIED, OutcomeStatus.APPLIED)

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    def show_dashboard(self, network: bool = True) -> None:
        """Print system and network information."""
        info = collect(self.config, network=network)
        print(f"=== {SDT_NAME} ===\n")
        _heading("SYSTEM INFORMATION")
        print(f"- OS: {info['os']}")
        print(f"- Hostname: {info['hostname']}")
        print(f"- Kernel: {info['kernel']}")
        print(f"- Uptime: {info['uptime']}")
        print(f"- CPU model: {info['cpu_model']}")
        print(f"- CPU cores: {info['cpu_cores']}")
        print(f"- RAM: {info['ram']}")
        print(f"- Disk: {info['disk']}")
        if network:
            print()
            _heading("NETWORK INFORMATION")
            print(f"- Public IPv4: {info['ipv4']}")
            print(f"- Public IPv6: {info['ipv6']}")
            print(f"- Location (Country, City): {info['location']}")
        print()

    # -------------------------------------------------------------------------
    # DNS
    # -------------------------------------------------------------------------

    def show_dns(self) -> None:
        """Print DNS servers from every representation."""
        report = current_dns(self.config)
        _heading("Current DNS")
        if report["sdt"]:
            print(f"- SDT configured: {' '.join(report['sdt'])}")
        for line in report["links"]:
            print(f"- {line}")
        for address in report["resolv.conf"]:
            print(f"- {address}")
        print()

    def set_dns(self, target: DnsTarget) -> bool:
        """Apply a DNS target as a transaction."""
        return self.report(self.coordinator.change_dns(target))

    def restore_dns(self) -> bool:
        """Restore the latest DNS backup."""
        return self.report(self.coordinator.restore_dns())

    # -------------------------------------------------------------------------
    # Mirrors
    # -------------------------------------------------------------------------

    def _distro(self) -> str:
        distro = detect_distro(self.config)
        if not candidates_for(distro):
            raise ValidationError(f"Unsupported distro for mirror manager: {distro or 'unknown'}")
        return distro

    def rank_mirrors(self) -> List[MirrorMeasurement]:
        """Benchmark the catalog for this distro and print the ranking."""
        distro = self._distro()
        _heading("Current APT mirror: " + current_mirror(self.config))
        self.log("Measuring mirror latency...")
        ranked = self.benchmark.rank(candidates_for(distro))

        _heading("Mirror Ranking (fastest first)")
        print(f"{'#':<4} {'Name':<16} {'URL':<45} {'Method':<18} Stats")
        for i, m in enumerate(ranked, 1):
            print(f"{i:<4} {m.candidate.name:<16} {m.candidate.url:<45} {m.method:<18} {m.detail}")
        return ranked

    def set_mirror(self, url: str) -> bool:
        """Switch to a mirror URL as a transaction."""
        distro = detect_distro(self.config)
        return self.report(self.coordinator.change_mirror(distro, url))

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def maintain(self) -> bool:
        """Update and upgrade system packages."""
        runner = PackageMaintenance(self.config, dry_run=self.dry_run, verbose=self.verbose)
        return runner.maintain()

    # -------------------------------------------------------------------------
    # Interactive menu
    # -------------------------------------------------------------------------

    def _dns_change_menu(self) -> None:
        self.show_dns()
        print("Select DNS preset:")
        keys = list(PRESETS)
        for i, key in enumerate(keys, 1):
            label, primary, secondary = PRESETS[key]
            print(f"{i}) {label} ({primary}, {secondary})")
        print(f"{len(keys) + 1}) Custom")
        choice = prompt(f"Choose [1-{len(keys) + 1}]")

        if choice.isdigit() and 1 <= int(choice) <= len(keys):
            target = DnsTarget.preset(keys[int(choice) - 1])
        elif choice == str(len(keys) + 1):
            primary = prompt("Enter primary DNS (IPv4/IPv6)")
            secondary = prompt("Enter secondary DNS (optional)")
            target = DnsTarget.parse(primary, secondary)
        else:
            raise ValidationError("Invalid option.")
        self.set_dns(target)

    def dns_menu(self) -> None:
        while True:
            _clear()
            _heading("DNS Settings\n")
            self.show_dns()
            print("1) Change DNS Servers")
            print("2) Restore Latest DNS Backup")
            print("3) Back")
            choice = prompt("Choose an option [1-3]")
            try:
                if choice == "1":
                    self._dns_change_menu()
                elif choice == "2":
                    if confirm("Restore the latest DNS backup?", default=True):
                        self.restore_dns()
                elif choice == "3":
                    return
                else:
                    self.log_error("Invalid option.")
                    continue
            except SdtError as e:
                self.log_error(str(e))
            pause()

    def mirror_menu(self) -> None:
        ranked = self.rank_mirrors()
        print("b) Back")
        print("c) Custom mirror URL")
        choice = prompt("Select mirror")

        if choice.lower() == "b":
            self.log("Returning to main menu.")
            return
        if choice.lower() == "c":
            url = prompt("Enter custom mirror URL (e.g. http://mirror.example.com/ubuntu)")
        elif choice.isdigit() and 1 <= int(choice) <= len(ranked):
            url = ranked[int(choice) - 1].candidate.url
        else:
            raise ValidationError("Invalid choice.")
        self.set_mirror(url)

    def menu_loop(self) -> None:
        """Main menu. Redraws after the configured inactivity timeout."""
        while True:
            _clear()
            self.show_dashboard()
            print("1) Update and Upgrade System")
            print("2) DNS Settings")
            print("3) APT Mirror Settings")
            print("4) Exit")
            timeout = self.config.menu_timeout
            try:
                choice = prompt_timeout(f"Choose an option [1-4] (auto-refresh in {timeout:.0f}s): ", timeout)
            except EOFError:
                return
            if choice is None:
                continue

            try:
                if choice == "1":
                    self.maintain()
                elif choice == "2":
                    self.dns_menu()
                    continue
                elif choice == "3":
                    self.mirror_menu()
                elif choice == "4":
                    self.log_ok("Goodbye.")
                    return
                else:
                    self.log_error("Invalid option.")
            except SdtError as e:
                self.log_error(str(e))
            pause()


def require_root() -> None:
    if os.geteuid() != 0:
        raise PermissionError("Run sdt as root (or use --dry-run).")


def main(argv: Optional[List[str]] = None) -> int:
    # Common flags shared by all subcommands
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument(
        "-n", "--dry-run",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Show what would be done without making changes",
    )
    common_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Enable verbose output",
    )
    common_parser.add_argument(
        "-c", "--config",
        type=str,
        default=argparse.SUPPRESS,
        help="Path to config.toml (default: $SDT_CONFIG or /etc/sdt/config.toml)",
    )

    parser = argparse.ArgumentParser(
        description="sdt - safe DNS and APT mirror changes for Linux servers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
        parents=[common_parser],
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("menu", help="Interactive menu (default)", parents=[common_parser])

    dash_parser = subparsers.add_parser("dashboard", help="Show system information", parents=[common_parser])
    dash_parser.add_argument(
        "--no-network",
        action="store_true",
        help="Skip public IP and location lookups",
    )

    # dns command
    dns_parser = subparsers.add_parser("dns", help="DNS settings", parents=[common_parser])
    dns_sub = dns_parser.add_subparsers(dest="action", required=True)
    dns_sub.add_parser("show", help="Show current DNS servers", parents=[common_parser])
    dns_set = dns_sub.add_parser("set", help="Change DNS servers", parents=[common_parser])
    dns_set.add_argument("--preset", choices=sorted(PRESETS), help="Use a well-known resolver")
    dns_set.add_argument("primary", nargs="?", help="Primary DNS address")
    dns_set.add_argument("secondary", nargs="?", help="Secondary DNS address")
    dns_sub.add_parser("restore", help="Restore the latest DNS backup", parents=[common_parser])

    # mirror command
    mirror_parser = subparsers.add_parser("mirror", help="APT mirror settings", parents=[common_parser])
    mirror_sub = mirror_parser.add_subparsers(dest="action", required=True)
    mirror_sub.add_parser("show", help="Show the current mirror", parents=[common_parser])
    mirror_sub.add_parser("rank", help="Benchmark mirrors", parents=[common_parser])
    mirror_set = mirror_sub.add_parser("set", help="Switch mirror", parents=[common_parser])
    mirror_set.add_argument("url", nargs="?", help="Mirror base URL (must end with /ubuntu or /debian)")
    mirror_set.add_argument("--best", action="store_true", help="Benchmark and use the fastest mirror")

    subparsers.add_parser("maintain", help="Update and upgrade system packages", parents=[common_parser])

    args = parser.parse_args(argv)
    command = args.command or "menu"
    dry_run = getattr(args, "dry_run", False)
    verbose = getattr(args, "verbose", False)

    try:
        config = load_config(getattr(args, "config", None))
        app = Sdt(config, dry_run=dry_run, verbose=verbose)

        if command == "dashboard":
            app.show_dashboard(network=not args.no_network)
            return 0

        if command == "dns" and args.action == "show":
            app.show_dns()
            return 0

        if command == "mirror" and args.action == "show":
            print(current_mirror(config))
            return 0

        if command == "mirror" and args.action == "rank":
            app.rank_mirrors()
            return 0

        if not dry_run:
            require_root()

        if command == "menu":
            app.menu_loop()
            return 0

        if command == "maintain":
            ok = app.maintain()

        elif command == "dns" and args.action == "set":
            if args.preset:
                if args.primary:
                    parser.error("give either --preset or addresses, not both")
                target = DnsTarget.preset(args.preset)
            elif args.primary:
                target = DnsTarget.parse(args.primary, args.secondary)
            else:
                parser.error("dns set needs --preset or a primary address")
            ok = app.set_dns(target)

        elif command == "dns" and args.action == "restore":
            ok = app.restore_dns()

        elif command == "mirror" and args.action == "set":
            if args.best == bool(args.url):
                parser.error("mirror set needs exactly one of URL or --best")
            url = args.url or app.rank_mirrors()[0].candidate.url
            ok = app.set_mirror(url)

        else:
            parser.print_help()
            return 1

        if ok:
            app.summarize()
        return 0 if ok else 1

    except KeyboardInterrupt:
        print("\nAborted.")
        return 1
    except (SdtError, PermissionError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
