from pathlib import Path
from unittest.mock import patch

import pytest

from cratesync import cli
from cratesync.services.decoder import DecodedAudio


class UntaggedDecoder:
    def decode(self, file_path: Path) -> DecodedAudio:
        return DecodedAudio(raw_tags={}, duration=4000.0)


@pytest.fixture(autouse=True)
def no_logging_setup():
    # Keep the root logger pointed at pytest's handlers
    with patch("cratesync.cli.setup_logging"):
        yield


class TestCli:
    def test_scan__indexes_and_prints_summary(self, tmp_path: Path, capsys):
        (tmp_path / "song.mp3").write_bytes(b"song")

        with patch("cratesync.services.scanner.MutagenDecoder", UntaggedDecoder):
            exit_code = cli.main(["scan", str(tmp_path), "--hash-workers", "2"])

        assert exit_code == 0
        assert "Tracks added: 1" in capsys.readouterr().out
        assert (tmp_path / ".crate" / "library.db").is_file()

    def test_stats__after_scan__prints_counts(self, tmp_path: Path, capsys):
        (tmp_path / "song.mp3").write_bytes(b"song")
        with patch("cratesync.services.scanner.MutagenDecoder", UntaggedDecoder):
            cli.main(["scan", str(tmp_path)])
        capsys.readouterr()

        exit_code = cli.main(["stats", str(tmp_path)])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "Tracks: 1" in out
        assert "Total duration: 1 hours, 6 minutes" in out

    def test_stats__not_a_library__fails(self, tmp_path: Path, capsys):
        exit_code = cli.main(["stats", str(tmp_path)])

        assert exit_code == 1
        assert "No library found" in capsys.readouterr().err

    def test_scan__missing_directory__fails(self, tmp_path: Path, capsys):
        exit_code = cli.main(["scan", str(tmp_path / "missing")])

        assert exit_code == 1
        assert "does not exist" in capsys.readouterr().err

    def test_format_duration__under_an_hour(self):
        assert cli.format_duration(125.0) == "2 minutes"
