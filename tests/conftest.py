"""Shared fixtures: small but structurally real IPAs, profiles and certificates."""

import plistlib
import stat
import zipfile
from datetime import datetime
from pathlib import Path

import pytest
from asn1crypto import cms

from ipasigner.src.core.models import ResignRequest, SignatureKind, SignOutcome
from ipasigner.src.core.signers import Signer

INFO_PLIST = {
    "CFBundleDevelopmentRegion": "en",
    "CFBundleExecutable": "Foo",
    "CFBundleIdentifier": "old.bundle.id",
    "CFBundleName": "Foo",
    "CFBundleShortVersionString": "1.0",
    "CFBundleVersion": "1",
}

EXECUTABLE_BYTES = b"\xcf\xfa\xed\xfe\x0c\x00\x00\x01fake mach-o"
ICON_BYTES = b"\x89PNG\r\n\x1a\nfake icon"
CERT_BYTES = b"0\x82\x0b\xd1fake pkcs12 certificate"

_ENV_VARS = (
    "IPASIGNER_CONFIG",
    "IPASIGNER_ZSIGN_PATH",
    "IPASIGNER_ALLOW_DEGRADED",
    "IPASIGNER_OUTPUT_DIR",
    "IPASIGNER_WORKSPACE_DIR",
    "IPASIGNER_IDEVICEINSTALLER",
    "IPASIGNER_CERT_PASSWORD",
)


def build_ipa(path: Path, bundles=("Foo.app",), info=INFO_PLIST) -> Path:
    """Write an IPA with one Payload entry per bundle name"""
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("Payload/", b"")
        if not bundles:
            zf.writestr("Payload/README.txt", b"no app here")
        for name in bundles:
            base = f"Payload/{name}/"
            if info is not None:
                zf.writestr(base + "Info.plist", plistlib.dumps(info))
            executable = zipfile.ZipInfo(base + "Foo")
            executable.external_attr = 0o755 << 16
            zf.writestr(executable, EXECUTABLE_BYTES)
            zf.writestr(base + "Assets/icon.png", ICON_BYTES)
    return path


def profile_plist(app_id="TEAM123.com.example.myapp") -> dict:
    return {
        "AppIDName": "My App",
        "Name": "Test Profile",
        "TeamIdentifier": ["TEAM123"],
        "ExpirationDate": datetime(2099, 1, 1),
        "Entitlements": {
            "application-identifier": app_id,
            "com.apple.developer.team-identifier": "TEAM123",
            "get-task-allow": True,
        },
    }


def cms_wrap(payload: bytes) -> bytes:
    """Wrap a payload in a CMS signed-data envelope, as .mobileprovision files are"""
    signed_data = cms.SignedData(
        {
            "version": "v1",
            "digest_algorithms": [],
            "encap_content_info": {"content_type": "data", "content": payload},
            "signer_infos": [],
        }
    )
    return cms.ContentInfo({"content_type": "signed_data", "content": signed_data}).dump()


def make_profile_bytes(app_id="TEAM123.com.example.myapp") -> bytes:
    return cms_wrap(plistlib.dumps(profile_plist(app_id)))


class RecordingSigner(Signer):
    """Stands in for the signing tool and remembers how it was called"""

    name = "recording"

    def __init__(self):
        self.calls = []
        self.manifest_ids = []

    def sign(self, bundle_dir, identity, bundle_id):
        bundle_dir = Path(bundle_dir)
        self.calls.append((bundle_dir, identity, bundle_id))
        with open(bundle_dir / "Info.plist", "rb") as f:
            self.manifest_ids.append(plistlib.load(f).get("CFBundleIdentifier"))
        signature_dir = bundle_dir / "_CodeSignature"
        signature_dir.mkdir(exist_ok=True)
        (signature_dir / "CodeResources").write_bytes(b"<plist>signed</plist>")
        return SignOutcome(SignatureKind.SIGNED, "Signed OK")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep user configuration and environment out of every test"""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("IPASIGNER_CONFIG", str(tmp_path / "no-config.toml"))


@pytest.fixture
def ipa_path(tmp_path):
    return build_ipa(tmp_path / "Foo.ipa")


@pytest.fixture
def cert_path(tmp_path):
    path = tmp_path / "cert.p12"
    path.write_bytes(CERT_BYTES)
    return path


@pytest.fixture
def profile_path(tmp_path):
    path = tmp_path / "profile.mobileprovision"
    path.write_bytes(make_profile_bytes())
    return path


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def output_dir(tmp_path):
    out = tmp_path / "signed"
    out.mkdir()
    return out


@pytest.fixture
def request_for(cert_path, profile_path):
    def make(archive, profile=None, certificate=None, passphrase="secret"):
        return ResignRequest(
            archive=archive,
            certificate=certificate or cert_path,
            profile=profile or profile_path,
            passphrase=passphrase,
        )

    return make


def read_zip(path: Path) -> dict:
    with zipfile.ZipFile(path) as zf:
        return {name: zf.read(name) for name in zf.namelist() if not name.endswith("/")}


def corrupt_member(path: Path, name: str) -> Path:
    """Overwrite the start of one member's compressed data with garbage"""
    with zipfile.ZipFile(path) as zf:
        offset = zf.getinfo(name).header_offset
    data = bytearray(path.read_bytes())
    name_len = int.from_bytes(data[offset + 26 : offset + 28], "little")
    extra_len = int.from_bytes(data[offset + 28 : offset + 30], "little")
    start = offset + 30 + name_len + extra_len
    data[start : start + 10] = b"\xff" * 10
    path.write_bytes(bytes(data))
    return path


def add_symlink(path: Path, name: str, target: bytes) -> Path:
    """Append a symlink entry whose target is stored as raw bytes"""
    info = zipfile.ZipInfo(name)
    info.create_system = 3
    info.external_attr = (stat.S_IFLNK | 0o777) << 16
    with zipfile.ZipFile(path, "a") as zf:
        zf.writestr(info, target)
    return path
