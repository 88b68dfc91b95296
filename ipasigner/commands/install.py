from ipasigner.logger import get_console
from ipasigner.src.core.errors import InstallError
from ipasigner.src.core.installer import DeviceInstaller
from ipasigner.src.utils.config_loader import get_settings


def run_install_command(args) -> int:
    """Entry point for the install command from CLI"""
    console = get_console()
    try:
        settings = get_settings()
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1

    installer = DeviceInstaller(settings.ideviceinstaller_path)
    try:
        result = installer.install(args.ipa_path, args.udid)
    except InstallError as e:
        console.print(f"[red]Installation failed:[/] {e.message}")
        return 1

    console.print(f"[green]App installed successfully![/] {result}")
    return 0
