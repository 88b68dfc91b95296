import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    env_path = os.environ.get("IPASIGNER_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".ipasigner" / "config.toml"


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from TOML file."""
    config_path = config_path or get_config_path()
    if not config_path.exists():
        return {}

    try:
        return toml.load(config_path)
    except Exception as e:
        raise ValueError(f"Failed to load config: {e}")


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")


def _optional_path(value: Any) -> Optional[Path]:
    return Path(str(value)).expanduser() if value else None


@dataclass
class SignerSettings:
    zsign_path: str = "zsign"
    allow_degraded: bool = True
    output_dir: Optional[Path] = None
    workspace_root: Optional[Path] = None
    ideviceinstaller_path: str = "ideviceinstaller"
    cert_password: Optional[str] = None


def get_settings(config_path: Optional[Path] = None) -> SignerSettings:
    """Resolve settings: environment first, then config file, then defaults."""
    config = load_config(config_path)
    signing = config.get("signing", {})
    output = config.get("output", {})
    workspace = config.get("workspace", {})
    install = config.get("install", {})
    certificate = config.get("certificate", {})
    env = os.environ

    allow_degraded = env.get("IPASIGNER_ALLOW_DEGRADED", signing.get("allow_degraded", True))

    return SignerSettings(
        zsign_path=env.get("IPASIGNER_ZSIGN_PATH") or signing.get("zsign_path", "zsign"),
        allow_degraded=_parse_bool(allow_degraded, "allow_degraded"),
        output_dir=_optional_path(env.get("IPASIGNER_OUTPUT_DIR") or output.get("directory")),
        workspace_root=_optional_path(
            env.get("IPASIGNER_WORKSPACE_DIR") or workspace.get("root")
        ),
        ideviceinstaller_path=env.get("IPASIGNER_IDEVICEINSTALLER")
        or install.get("ideviceinstaller_path", "ideviceinstaller"),
        cert_password=env.get("IPASIGNER_CERT_PASSWORD") or certificate.get("password"),
    )
