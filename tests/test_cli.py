"""Tests for the pascalpatch command line."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from pascalpatch.__main__ import main


class TestArguments:
    def test_missing_listing(self, tmp_path):
        assert main([str(tmp_path / "nope.txt"), "--json"]) == 1

    def test_stdin_requires_output(self, capsys):
        assert main(["--json"]) == 1
        assert "output base file name" in capsys.readouterr().err

    def test_invalid_template(self, mini_dataset, tmp_path, capsys):
        out = tmp_path / "out" / "p_%1%_%d.png"
        assert main([str(mini_dataset), "-o", str(out), "--json"]) == 1
        assert "exactly one placeholder" in capsys.readouterr().err
        assert not (tmp_path / "out").exists()

    def test_invalid_worker_count(self, mini_dataset):
        assert main([str(mini_dataset), "--workers", "0", "--json"]) == 1

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "0.1.0" in capsys.readouterr().out


@pytest.mark.integration
class TestRun:
    def test_json_summary(self, mini_dataset, tmp_path, capsys):
        out = tmp_path / "patches" / "person_%05d.png"
        assert main([str(mini_dataset), "-o", str(out), "--workers", "2", "--json"]) == 0

        summary = json.loads(capsys.readouterr().out)
        assert summary["annotations"] == 3
        assert summary["objects"] == 6
        assert summary["written"] == 6
        assert summary["outputs"][0] == str(tmp_path / "patches" / "person_00000.png")
        assert sorted(p.name for p in (tmp_path / "patches").iterdir()) == [
            f"person_{i:05d}.png" for i in range(6)
        ]

    def test_default_output_name(self, mini_dataset, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert main([str(mini_dataset)]) == 0
        assert all((tmp_path / f"listing{i}.png").is_file() for i in range(6))

    def test_reads_stdin(self, mini_dataset, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("sys.stdin", io.StringIO(mini_dataset.read_text()))
        assert main(["-o", "out/x_%1%.jpg", "--json"]) == 0
        assert sorted(p.name for p in (tmp_path / "out").iterdir()) == [
            f"x_{i}.jpg" for i in range(6)
        ]

    def test_config_file(self, mini_dataset, tmp_path, capsys):
        config = tmp_path / "config.yaml"
        config.write_text("extraction:\n  window_width: 32\n  window_height: 32\n  padding: 4\n")
        out = tmp_path / "small" / "p_%1%.png"
        assert main([str(mini_dataset), "-o", str(out), "--config", str(config), "--json"]) == 0
        import cv2

        patch = cv2.imread(str(tmp_path / "small" / "p_0.png"))
        assert patch.shape == (32, 32, 3)

    def test_stage_failure_exit_code(self, write_record, tmp_path, capsys):
        path = write_record(
            "a", [(1, "PASperson", "P", (100, 200), (50, 50, 150, 350))], with_image=False,
        )
        listing = tmp_path / "list.txt"
        listing.write_text(f"{path}\n")
        out = tmp_path / "out" / "p_%1%.png"
        assert main([str(listing), "-o", str(out), "--json"]) == 1
        err = capsys.readouterr().err
        assert "failed to read image" in err
        assert str(Path("Images") / "a.png") in err
