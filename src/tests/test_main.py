"""
===============================================================================
GRAPH KERNEL BENCHMARK - Command-Line Driver Test Suite
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import itertools
import logging

import pandas as pd
import pytest
import scipy.io
import scipy.sparse as sp
import yaml

import main
from analytics.graph import from_edges


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put the previous handlers back."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "bench.yaml"
    config = {
        "benchmark": {"trials": 1, "threads": [1]},
        "output": {"summary_csv": None, "scaling_plot": None, "results_db": None},
    }
    path.write_text(yaml.safe_dump(config))
    return str(path)


@pytest.fixture
def graph_file(tmp_path):
    graph = from_edges(list(itertools.combinations(range(5), 2)) + [(4, 5)])
    path = tmp_path / "k5.mtx"
    scipy.io.mmwrite(str(path), sp.triu(graph.adjacency).tocoo())
    return str(path)


class TestMain:

    def test_triangle_count_run(self, tmp_path, graph_file, config_file, capsys):
        out_dir = tmp_path / "out"
        csv_path = tmp_path / "summary.csv"
        plot_path = tmp_path / "scaling.png"
        status = main.main([
            graph_file, "--config", config_file, "--output-dir", str(out_dir),
            "--csv", str(csv_path), "--plot", str(plot_path),
            "--db", str(tmp_path / "results.db"),
        ])
        assert status == 0
        assert (out_dir / "benchmark.log").exists()
        assert plot_path.exists()

        summary = pd.read_csv(csv_path)
        assert len(summary) == 2
        assert set(summary["variant"]) == {"SANDIA_DOT", "SANDIA_DOT2"}

        out = capsys.readouterr().out
        assert "# of triangles: 10" in out
        assert "Best method:" in out

    def test_random_graph_lcc(self, tmp_path, config_file):
        status = main.main([
            "--random", "60", "5", "--kernel", "lcc", "--trials", "2",
            "--threads", "1", "accelerator", "--config", config_file,
            "--output-dir", str(tmp_path),
        ])
        assert status == 0

    def test_missing_graph_file(self, tmp_path, config_file):
        status = main.main([str(tmp_path / "nope.mtx"), "--config", config_file,
                            "--output-dir", str(tmp_path)])
        assert status == 1

    def test_no_input(self, tmp_path, config_file):
        assert main.main(["--config", config_file, "--output-dir", str(tmp_path)]) == 1

    def test_invalid_random_size(self, tmp_path, config_file):
        status = main.main(["--random", "0", "4", "--config", config_file,
                            "--output-dir", str(tmp_path)])
        assert status == 1

    def test_missing_config_file(self, tmp_path):
        status = main.main(["--random", "10", "3", "--config", str(tmp_path / "nope.yaml"),
                            "--output-dir", str(tmp_path)])
        assert status == 1

    def test_malformed_config_file(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("benchmark: [trials: 1\n")
        status = main.main(["--random", "10", "3", "--config", str(path),
                            "--output-dir", str(tmp_path)])
        assert status == 1

    def test_non_numeric_config_value(self, tmp_path):
        path = tmp_path / "bad_trials.yaml"
        path.write_text(yaml.safe_dump({"benchmark": {"trials": "three"}}))
        status = main.main(["--random", "10", "3", "--config", str(path),
                            "--output-dir", str(tmp_path)])
        assert status == 1

    def test_all_configurations_skipped_is_not_fatal(self, tmp_path, graph_file, capsys):
        path = tmp_path / "huge.yaml"
        path.write_text(yaml.safe_dump({"benchmark": {"trials": 1, "threads": [100000]}}))
        status = main.main([graph_file, "--config", str(path), "--output-dir", str(tmp_path)])
        assert status == 0
        captured = capsys.readouterr()
        assert "# of triangles: 10" in captured.out
        assert "no configuration evaluated" in captured.err

    def test_auto_after_first_entry_rejected(self, tmp_path, graph_file, config_file):
        status = main.main([graph_file, "--threads", "2", "auto", "--config", config_file,
                            "--output-dir", str(tmp_path)])
        assert status == 1


class TestSettingsFromArgs:

    def test_overrides_config(self):
        args = main.build_parser().parse_args([
            "g.mtx", "--kernel", "lcc", "--trials", "5", "--threads", "40", "0",
            "--strict", "--zero-fill", "memset", "--tolerance", "1e-3",
        ])
        settings = main.settings_from_args({"benchmark": {"trials": 2}}, args)
        assert settings.kernel == "lcc"
        assert settings.trials == 5
        assert settings.threads[0] == 40
        assert settings.threads[1].value == "accelerator"
        assert settings.strict_validation
        assert settings.zero_fill == "memset"
        assert settings.tolerance == pytest.approx(1e-3)

    def test_config_values_kept(self):
        args = main.build_parser().parse_args(["g.mtx"])
        settings = main.settings_from_args({"benchmark": {"trials": 7, "schedule_length": 2}}, args)
        assert settings.trials == 7
        assert settings.schedule_length == 2
