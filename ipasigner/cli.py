import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme
from rich_argparse import RichHelpFormatter

from ipasigner.arguments import add_device_arguments, add_signing_arguments
from ipasigner.src.constants.cli_constants import (
    __version__,
    get_banner_text,
    APP_DESCRIPTION,
)


class IpaSignerHelpFormatter(RichHelpFormatter):
    """Custom formatter for the ipasigner CLI that enhances the output with rich styling."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=30, width=100)
        self.console = Console(
            theme=Theme(
                {
                    "command": "bold cyan",
                    "argument": "green",
                    "option": "yellow",
                    "version": "blue",
                    "title": "bold magenta",
                }
            )
        )

    def start_section(self, heading):
        heading_text = Text(heading, style="title")
        super().start_section(str(heading_text))


def display_banner():
    """Display a stylish banner for ipasigner."""
    console = Console()
    banner = get_banner_text()

    version_info = Text(f"v{__version__}", style="version")
    tagline = Text(APP_DESCRIPTION, style="italic")

    panel = Panel.fit(
        Text.assemble(banner, "\n", tagline, "\n", version_info),
        border_style="green",
        padding=(1, 2),
    )
    console.print(panel)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ipasigner",
        description=f"ipasigner: {APP_DESCRIPTION}",
        formatter_class=IpaSignerHelpFormatter,
        add_help=True,
    )

    parser.add_argument(
        "--version", action="version", version=f"ipasigner {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command")

    sign_parser = subparsers.add_parser(
        "sign",
        help="Resign an IPA file",
        formatter_class=IpaSignerHelpFormatter,
        description="Resign an IPA file with a certificate and provisioning profile.",
    )
    add_signing_arguments(sign_parser)

    install_parser = subparsers.add_parser(
        "install",
        help="Install a signed IPA on a connected device",
        formatter_class=IpaSignerHelpFormatter,
        description="Install a signed IPA on a connected device with ideviceinstaller.",
    )
    install_parser.add_argument("ipa_path", type=Path, help="Path to the signed IPA")
    add_device_arguments(install_parser)

    profile_parser = subparsers.add_parser(
        "profile",
        help="Show what a provisioning profile authorises",
        formatter_class=IpaSignerHelpFormatter,
        description="Print the team, application identifier and effective bundle ID of a provisioning profile.",
    )
    profile_parser.add_argument("profile_path", type=Path, help="Path to the provisioning profile")

    return parser


def main(argv=None):
    if argv is None and (len(sys.argv) == 1 or "-h" in sys.argv or "--help" in sys.argv):
        display_banner()

    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "sign":
        from ipasigner.commands.sign import run_sign_command

        return run_sign_command(args)
    elif args.command == "install":
        from ipasigner.commands.install import run_install_command

        return run_install_command(args)
    elif args.command == "profile":
        from ipasigner.commands.profile import run_profile_command

        return run_profile_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
