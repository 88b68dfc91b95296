from pathlib import Path

from ipasigner.src.core.models import ResignRequest


def add_signing_arguments(parser):
    """Add all signing-related arguments to an existing parser."""
    parser.add_argument("ipa_path", type=Path, help="Path to the IPA file to sign")

    parser.add_argument(
        "--certificate",
        "-c",
        type=Path,
        required=True,
        help="Path to the signing certificate (.p12)",
    )

    parser.add_argument(
        "--profile",
        "-m",
        type=Path,
        required=True,
        help="Path to the provisioning profile (.mobileprovision)",
    )

    parser.add_argument(
        "--password",
        "-p",
        type=str,
        help="Certificate password [default: config/env, otherwise prompt]",
    )

    parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        help="Directory for the signed IPA [default: next to the input IPA]",
    )

    parser.add_argument(
        "--strict-signing",
        action="store_true",
        help="Fail instead of falling back to certificate injection when zsign is missing [default: disabled]",
    )

    parser.add_argument(
        "--install",
        action="store_true",
        help="Install the signed IPA on a connected device afterwards [default: disabled]",
    )

    add_device_arguments(parser)


def add_device_arguments(parser):
    parser.add_argument(
        "--udid",
        type=str,
        help="Target device UDID for installation [default: first connected device]",
    )


def create_resign_request(args, password: str) -> ResignRequest:
    """Convert parsed arguments to a ResignRequest"""
    return ResignRequest(
        archive=args.ipa_path,
        certificate=args.certificate,
        profile=args.profile,
        passphrase=password,
    )
