from rich.table import Table

from ipasigner.logger import get_console
from ipasigner.src.ipa.provisioning_profile_analyser import FALLBACK_BUNDLE_ID, describe_profile


def run_profile_command(args) -> int:
    """Entry point for the profile command from CLI"""
    console = get_console()
    try:
        profile_bytes = args.profile_path.read_bytes()
    except OSError as e:
        console.print(f"[red]Error:[/] Cannot read provisioning profile: {e}")
        return 1

    summary = describe_profile(profile_bytes)

    table = Table(title=f"Provisioning profile: {args.profile_path.name}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Name", summary.name or "-")
    table.add_row("Team ID", summary.team_id or "-")
    table.add_row("Application identifier", summary.app_id or "-")
    table.add_row("Bundle ID", summary.bundle_id)
    table.add_row(
        "Expires",
        f"{summary.expiration} (expired)" if summary.expired else str(summary.expiration or "-"),
    )
    console.print(table)

    if summary.used_fallback:
        console.print(
            "[yellow]No application identifier found; signing would use "
            f"the fallback bundle ID {FALLBACK_BUNDLE_ID}[/]"
        )
    return 0
