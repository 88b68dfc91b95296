import sys
from typing import Optional

from rich.panel import Panel
from rich.prompt import Prompt

from ipasigner.arguments import create_resign_request
from ipasigner.logger import get_console
from ipasigner.src.core.errors import InstallError
from ipasigner.src.core.installer import DeviceInstaller
from ipasigner.src.core.models import (
    EventKind,
    Failed,
    ProgressEvent,
    Stage,
    describe_result,
)
from ipasigner.src.core.progress import QueuedProgressSink
from ipasigner.src.core.sign_orchestrator import resign_ipa
from ipasigner.src.core.signers import Signer, select_signer
from ipasigner.src.utils.config_loader import SignerSettings, get_settings


def resolve_password(args, settings: SignerSettings) -> str:
    """Password from the command line, then config/env, then an interactive prompt."""
    if args.password is not None:
        return args.password
    if settings.cert_password is not None:
        return settings.cert_password
    if sys.stdin.isatty():
        return Prompt.ask(
            "Certificate password", password=True, default="", show_default=False
        )
    return ""


def print_configuration_summary(console, args, signer: Signer, output_dir) -> None:
    """Print the configuration summary."""
    console.print("\n[bold blue]Signing Configuration:[/]")
    console.print(f"[cyan]Input IPA:[/] {args.ipa_path}")
    console.print(f"[cyan]Certificate:[/] {args.certificate}")
    console.print(f"[cyan]Provisioning profile:[/] {args.profile}")
    console.print(f"[cyan]Output directory:[/] {output_dir or args.ipa_path.parent}")
    console.print(f"[cyan]Signer:[/] {signer.name}")
    if signer.name != "zsign":
        console.print(
            "[yellow]Warning: zsign not found, the app will NOT be validly signed[/]"
        )


def print_result(console, result) -> None:
    if isinstance(result, Failed):
        console.print(
            Panel(
                f"[red]{result.message}[/]\n\nStage: {result.stage}\nError: {result.error}",
                title="Signing Failed",
                border_style="red",
            )
        )
        return

    size_mb = result.size_bytes / 1024 / 1024
    body = (
        f"IPA signed successfully!\n\nLocation: {result.output_path}\n"
        f"Size: {size_mb:.2f} MB\nBundle ID: {result.bundle_id}"
    )
    if result.degraded:
        body += f"\n\n[yellow]{result.reason}[/]"
    for warning in result.warnings:
        body += f"\n[yellow]• {warning}[/]"

    console.print(
        Panel(
            body,
            title="Signed (degraded)" if result.degraded else "Success!",
            border_style="yellow" if result.degraded else "green",
        )
    )


def install_signed_ipa(console, settings: SignerSettings, result, udid: Optional[str]) -> bool:
    installer = DeviceInstaller(settings.ideviceinstaller_path)
    try:
        installer.install(result.output_path, udid)
    except InstallError as e:
        console.print(f"[red]Installation failed:[/] {e.message}")
        console.print(
            "Please use AltStore or another sideloading tool to install the signed IPA."
        )
        return False
    console.print("[green]App installed successfully![/]")
    return True


def main(parsed_args) -> int:
    """Resign the IPA described by the parsed arguments."""
    console = get_console()
    args = parsed_args

    try:
        settings = get_settings()
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1

    allow_degraded = settings.allow_degraded and not args.strict_signing
    signer = select_signer(settings.zsign_path, allow_degraded)
    output_dir = args.output_dir or settings.output_dir

    print_configuration_summary(console, args, signer, output_dir)
    request = create_resign_request(args, resolve_password(args, settings))

    with console.status(Stage.INIT.label) as status:

        def on_progress(event: ProgressEvent) -> None:
            if event.kind == EventKind.PROGRESS:
                status.update(f"[bold green]{event.message}")

        with QueuedProgressSink(on_progress) as progress:
            result = resign_ipa(
                request,
                signer,
                progress=progress,
                workspace_root=settings.workspace_root,
                output_dir=output_dir,
            )

    print_result(console, result)
    console.log(describe_result(result))
    if isinstance(result, Failed):
        return 1

    if args.install and not install_signed_ipa(console, settings, result, args.udid):
        return 1
    return 0


def run_sign_command(args):
    """Entry point for the sign command from CLI"""
    return main(parsed_args=args)
