"""Tests for build, target and link models."""

from __future__ import annotations

import pytest

from cloudbuild.core.exceptions import ErrorKind, IntegrityError
from cloudbuild.core.models import (
    TERMINAL_STATUSES,
    Build,
    BuildAttempt,
    BuildLink,
    BuildTarget,
    is_terminal,
)
from tests.factories import build_record, target_record


class TestStatuses:
    """Terminal vs. active statuses."""

    @pytest.mark.parametrize("status", ["success", "failure", "canceled", "unknown"])
    def test_terminal(self, status: str) -> None:
        assert is_terminal(status)

    @pytest.mark.parametrize("status", ["queued", "sentToBuilder", "started", "restarted"])
    def test_active(self, status: str) -> None:
        assert not is_terminal(status)

    def test_terminal_set_is_closed(self) -> None:
        assert TERMINAL_STATUSES == {"success", "failure", "canceled", "unknown"}


class TestBuildFromDict:
    """Decoding build records."""

    def test_decodes_full_record(self) -> None:
        build = Build.from_dict(build_record(target_id="android", number=12, status="started"))

        assert build.key == ("android", 12)
        assert build.label == "android #12"
        assert build.status == "started"
        assert build.is_active
        assert not build.is_success
        assert build.last_built_revision == "0123456789abcdef"
        assert build.total_time_seconds == 125.0
        assert build.download is not None
        assert build.download.is_archive

    def test_accepts_camel_case_target_id(self) -> None:
        record = build_record()
        record["buildTargetId"] = record.pop("buildtargetid")

        assert Build.from_dict(record).target_id == "ios-dev"

    def test_missing_download_link(self) -> None:
        build = Build.from_dict(build_record(href=None))
        assert build.download is None

    def test_empty_revision_is_none(self) -> None:
        assert Build.from_dict(build_record(revision="")).last_built_revision is None

    @pytest.mark.parametrize("missing", ["build", "buildStatus", "buildtargetid"])
    def test_missing_required_field(self, missing: str) -> None:
        record = build_record()
        del record[missing]

        with pytest.raises(IntegrityError) as exc_info:
            Build.from_dict(record)
        assert exc_info.value.kind is ErrorKind.INTEGRITY

    def test_non_numeric_build_number(self) -> None:
        with pytest.raises(IntegrityError):
            Build.from_dict(build_record(build="seven"))

    def test_to_dict(self) -> None:
        data = Build.from_dict(build_record(number=3)).to_dict()

        assert data["target_id"] == "ios-dev"
        assert data["number"] == 3
        assert data["download"] == {
            "href": "https://storage.example.com/artifacts/ios-dev-7.zip",
            "type": "zip",
        }


class TestBuildLink:
    """Download link metadata."""

    @pytest.mark.parametrize(
        "filetype,expected",
        [
            ("ZIP", True),
            ("application/zip", True),
            ("application/x-zip-compressed", True),
            ("APK", False),
            ("IPA", False),
            ("", False),
        ],
    )
    def test_is_archive(self, filetype: str, expected: bool) -> None:
        link = BuildLink(href="https://example.com/a", meta={"type": filetype})
        assert link.is_archive is expected

    def test_filename_from_path(self) -> None:
        link = BuildLink(href="https://storage.example.com/builds/game%20v1.apk?sig=abc")
        assert link.filename == "game v1.apk"

    def test_filename_from_content_disposition_hint(self) -> None:
        link = BuildLink(
            href=(
                "https://storage.example.com/blob/3f2a"
                "?response-content-disposition=attachment%3B%20filename%3D%22game-ios-7.zip%22"
            )
        )
        assert link.filename == "game-ios-7.zip"

    def test_filename_hint_cannot_escape_directory(self) -> None:
        link = BuildLink(
            href=(
                "https://storage.example.com/blob/3f2a"
                "?response-content-disposition=attachment%3B%20filename%3D..%2F..%2Fevil.zip"
            )
        )
        assert link.filename == "evil.zip"

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/artifacts/..%2F..%2Fpwned.txt", "pwned.txt"),
            ("/artifacts/..%5C..%5Cpwned.txt", "pwned.txt"),
            ("/artifacts/..", ""),
            ("/artifacts/%2E%2E", ""),
            ("/artifacts/", ""),
        ],
    )
    def test_filename_from_path_is_a_plain_name(self, path: str, expected: str) -> None:
        link = BuildLink(href=f"https://storage.example.com{path}")
        assert link.filename == expected

    def test_dot_dot_hint_falls_back_to_path(self) -> None:
        link = BuildLink(
            href=(
                "https://storage.example.com/blob/game.zip"
                "?response-content-disposition=attachment%3B%20filename%3D.."
            )
        )
        assert link.filename == "game.zip"


class TestBuildTarget:
    """Decoding build targets."""

    def test_decodes_settings_and_builds(self) -> None:
        target = BuildTarget.from_dict(target_record(builds=[build_record(number=4)]))

        assert target.id == "ios-dev"
        assert target.enabled
        assert target.builds[0].number == 4
        assert target.settings is not None
        assert target.settings.branch == "main"
        assert target.settings.unity_version == "2022.3.10f1"
        assert target.to_dict()["settings"]["auto_build"] is True

    def test_missing_id(self) -> None:
        record = target_record()
        del record["buildtargetid"]

        with pytest.raises(IntegrityError):
            BuildTarget.from_dict(record)


class TestBuildAttempt:
    """Decoding build start results."""

    def test_started(self) -> None:
        attempt = BuildAttempt.from_dict(build_record(status="queued", number=8))

        assert attempt.ok
        assert attempt.build is not None
        assert attempt.build.number == 8

    def test_error(self) -> None:
        attempt = BuildAttempt.from_dict({"buildtargetid": "ios-dev", "error": "Target disabled"})

        assert not attempt.ok
        assert attempt.build is None
        assert attempt.to_dict()["error"] == "Target disabled"

    def test_not_an_object(self) -> None:
        with pytest.raises(IntegrityError):
            BuildAttempt.from_dict(["nope"])
