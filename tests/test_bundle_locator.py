"""Tests for finding the app bundle inside Payload/."""

import pytest

from ipasigner.src.core.errors import AmbiguousBundle, InputError, NoAppBundle
from ipasigner.src.ipa.bundle_locator import locate


@pytest.fixture
def payload(tmp_path):
    path = tmp_path / "Payload"
    path.mkdir()
    return path


class TestLocate:
    def test_single_bundle(self, payload):
        (payload / "Foo.app").mkdir()
        assert locate(payload) == payload / "Foo.app"

    def test_ignores_files_and_other_directories(self, payload):
        (payload / "Foo.app").mkdir()
        (payload / "Notes.txt").write_text("hello")
        (payload / "Other").mkdir()
        (payload / "fake.app").write_text("a file, not a bundle")
        assert locate(payload) == payload / "Foo.app"

    def test_no_bundle(self, payload):
        (payload / "README.txt").write_text("nothing to see")
        with pytest.raises(NoAppBundle):
            locate(payload)

    def test_missing_payload_directory(self, tmp_path):
        with pytest.raises(NoAppBundle):
            locate(tmp_path / "Payload")

    def test_multiple_bundles_fail_loudly(self, payload):
        (payload / "Foo.app").mkdir()
        (payload / "Bar.app").mkdir()
        with pytest.raises(AmbiguousBundle) as exc_info:
            locate(payload)
        assert len(exc_info.value.candidates) == 2
        assert sorted(p.name for p in payload.iterdir()) == ["Bar.app", "Foo.app"]

    def test_errors_are_input_errors(self):
        assert issubclass(NoAppBundle, InputError)
        assert issubclass(AmbiguousBundle, InputError)
