"""Tests for provisioning profile parsing and installation."""

import os
import plistlib

import pytest

from conftest import cms_wrap, make_profile_bytes, profile_plist
from ipasigner.src.core.errors import FilesystemError
from ipasigner.src.ipa.provisioning_profile_analyser import (
    EMBEDDED_PROFILE_NAME,
    FALLBACK_BUNDLE_ID,
    describe_profile,
    extract_bundle_id,
    install,
    load_profile_plist,
    parse_application_identifier,
)

TEXT_PROFILE = (
    b"JUNK\x00\x01binary envelope bytes\xff\xfe"
    b'<?xml version="1.0" encoding="UTF-8"?>\n<plist version="1.0">\n<dict>\n'
    b"\t<key>Entitlements</key>\n\t<dict>\n"
    b"\t\t<key>application-identifier</key>\n"
    b"\t\t<string>ABCDE12345.com.regex.app</string>\n"
    b"\t</dict>\n</dict>\n</plist>\n\x00\x00trailing signature"
)


class TestExtractBundleId:
    def test_cms_profile(self):
        assert extract_bundle_id(make_profile_bytes()) == "com.example.myapp"

    def test_bare_plist_profile(self):
        data = plistlib.dumps(profile_plist("TEAM999.org.sample.bare"))
        assert extract_bundle_id(data) == "org.sample.bare"

    def test_textual_fallback_inside_opaque_container(self):
        assert extract_bundle_id(TEXT_PROFILE) == "com.regex.app"

    def test_only_first_component_is_the_team(self):
        identifier = parse_application_identifier(make_profile_bytes("TEAM123.a.b.c.d"))
        assert identifier.team_id == "TEAM123"
        assert identifier.bundle_id == "a.b.c.d"

    def test_wildcard_identifier(self):
        identifier = parse_application_identifier(make_profile_bytes("TEAM123.*"))
        assert identifier.bundle_id == "*"
        assert identifier.is_wildcard
        assert extract_bundle_id(make_profile_bytes("TEAM123.*")) == "*"

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"\x00\x01\x02\x03",
            os.urandom(512),
            b"<key>application-identifier</key><string>nodot</string>",
            b"0\x82\xff\xff truncated der",
            cms_wrap(b"not a plist"),
            cms_wrap(plistlib.dumps(["a", "list"])),
            plistlib.dumps({"Entitlements": "not a dict"}),
        ],
    )
    def test_never_raises_and_falls_back(self, data):
        assert extract_bundle_id(data) == FALLBACK_BUNDLE_ID

    def test_accepts_text_and_none(self):
        assert extract_bundle_id(TEXT_PROFILE.decode("latin-1")) == "com.regex.app"
        assert extract_bundle_id(None) == FALLBACK_BUNDLE_ID


class TestDescribeProfile:
    def test_summary(self):
        summary = describe_profile(make_profile_bytes())
        assert summary.name == "Test Profile"
        assert summary.team_id == "TEAM123"
        assert summary.app_id == "TEAM123.com.example.myapp"
        assert summary.bundle_id == "com.example.myapp"
        assert not summary.used_fallback
        assert not summary.expired

    def test_unrecognised_profile(self):
        summary = describe_profile(b"garbage")
        assert summary.used_fallback
        assert summary.bundle_id == FALLBACK_BUNDLE_ID
        assert summary.name is None

    def test_load_profile_plist_returns_none_for_garbage(self):
        assert load_profile_plist(b"garbage") is None
        assert load_profile_plist(make_profile_bytes())["Name"] == "Test Profile"


class TestInstall:
    def test_copies_verbatim(self, tmp_path, profile_path):
        bundle = tmp_path / "Foo.app"
        bundle.mkdir()
        embedded = install(profile_path, bundle)
        assert embedded == bundle / EMBEDDED_PROFILE_NAME
        assert embedded.read_bytes() == profile_path.read_bytes()

    def test_replaces_existing_profile(self, tmp_path, profile_path):
        bundle = tmp_path / "Foo.app"
        bundle.mkdir()
        (bundle / EMBEDDED_PROFILE_NAME).write_bytes(b"old profile")
        install(profile_path, bundle)
        assert (bundle / EMBEDDED_PROFILE_NAME).read_bytes() == profile_path.read_bytes()

    def test_copy_failure(self, tmp_path, profile_path):
        with pytest.raises(FilesystemError):
            install(profile_path, tmp_path / "missing.app")
