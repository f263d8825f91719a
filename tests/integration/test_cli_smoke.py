"""Smoke tests for the classification CLI entry point.

These tests verify the CLI accepts valid arguments and reports configuration
problems without running the catalog-backed pipeline.
"""

from types import SimpleNamespace
from unittest.mock import patch

import pytest


class TestClassifyCliSmoke:
    """Smoke tests for the classify CLI."""

    def test_module_imports(self):
        """The classify module should be importable."""
        from landcover_rf import classify

        assert hasattr(classify, "main")
        assert hasattr(classify, "parse_args")

    def test_parser_requires_aoi(self, monkeypatch):
        from landcover_rf.classify import parse_args

        monkeypatch.delenv("LANDCOVER_AOI", raising=False)
        with pytest.raises(SystemExit):
            parse_args(["--labels", "points.gpkg", "--output-dir", "out"])

    def test_parser_requires_labels(self, monkeypatch):
        from landcover_rf.classify import parse_args

        monkeypatch.delenv("LANDCOVER_LABELS", raising=False)
        with pytest.raises(SystemExit):
            parse_args(["--aoi", "aoi.gpkg", "--output-dir", "out"])

    def test_parser_accepts_full_arguments(self):
        from landcover_rf.classify import parse_args

        args = parse_args(
            [
                "--aoi", "aoi.gpkg",
                "--labels", "C1.gpkg", "C2.gpkg",
                "--output-dir", "out",
                "--n-trees", "50",
                "--exports", "map",
            ]
        )
        assert args.labels == ["C1.gpkg", "C2.gpkg"]
        assert args.n_trees == 50
        assert args.exports == ["map"]

    def test_config_alone_is_enough(self, tmp_path):
        from landcover_rf.classify import parse_args

        args = parse_args(["--config", str(tmp_path / "run.yaml")])
        assert args.config == tmp_path / "run.yaml"

    def test_main_exits_on_configuration_error(self, tmp_path):
        from landcover_rf.classify import main

        with pytest.raises(SystemExit) as excinfo:
            main(["--config", str(tmp_path / "missing.yaml")])
        assert excinfo.value.code == 1

    def test_main_exits_on_missing_labels(self, tmp_path):
        from landcover_rf.classify import main

        with pytest.raises(SystemExit) as excinfo:
            main(
                [
                    "--aoi=-71.5,-34.8,-71.0,-34.4",
                    "--labels", str(tmp_path / "missing.gpkg"),
                    "--output-dir", str(tmp_path / "out"),
                ]
            )
        assert excinfo.value.code == 1

    def test_main_exit_code_reflects_exports(self, tmp_path, labels_gpkg):
        from landcover_rf.classify import main

        matrix = SimpleNamespace(accuracy=0.9, kappa=0.8)
        failed = SimpleNamespace(
            training=SimpleNamespace(matrix=matrix),
            report_path=tmp_path / "report.json",
            exports=[SimpleNamespace(ok=True), SimpleNamespace(ok=False)],
        )
        argv = [
            "--aoi=-71.5,-34.8,-71.0,-34.4",
            "--labels", str(labels_gpkg),
            "--output-dir", str(tmp_path / "out"),
        ]
        with patch("landcover_rf.classify.run_pipeline", return_value=failed):
            with pytest.raises(SystemExit) as excinfo:
                main(argv)
        assert excinfo.value.code == 2

        failed.exports = [SimpleNamespace(ok=True)]
        with patch("landcover_rf.classify.run_pipeline", return_value=failed):
            main(argv)
