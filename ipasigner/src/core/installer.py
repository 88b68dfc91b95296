import shutil
import subprocess
from pathlib import Path
from typing import Optional

from ipasigner.logger import get_console
from ipasigner.src.core.errors import InstallError


class DeviceInstaller:
    """Pushes a signed IPA onto a connected device with ideviceinstaller"""

    def __init__(self, tool_path: str = "ideviceinstaller"):
        self.tool_path = tool_path
        self.console = get_console()

    def install(self, archive_path: Path, udid: Optional[str] = None) -> str:
        archive_path = Path(archive_path)
        if not archive_path.is_file():
            raise InstallError(f"IPA file not found: {archive_path}")

        tool = shutil.which(self.tool_path)
        if not tool:
            raise InstallError(
                f"{self.tool_path} not found. Install libimobiledevice "
                "(macOS: brew install ideviceinstaller) or use AltStore "
                "or a similar sideloading tool."
            )

        cmd = [tool]
        if udid:
            cmd += ["-u", udid]
        cmd += ["install", str(archive_path)]

        self.console.log(f"[blue]Installing {archive_path.name} on device[/]")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise InstallError(f"Could not run {tool}: {e}") from e

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise InstallError(
                f"{self.tool_path} failed (exit {result.returncode}): {detail}"
            )

        output = (result.stdout or "").strip()
        self.console.log(f"[green]Installation result:[/] {output or 'ok'}")
        return output
