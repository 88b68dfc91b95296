from rich.text import Text

__version__ = "0.1.0"

APP_DESCRIPTION = "Resign iOS apps with your own certificate and provisioning profile"


def get_banner_text() -> Text:
    """Return the styled banner shown above the help text."""
    banner = Text()
    banner.append("ipa", style="bold green")
    banner.append("signer", style="bold cyan")
    return banner
