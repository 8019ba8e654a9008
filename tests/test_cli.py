"""Tests for the modpres command-line interface."""

import pytest

from conftest import save_assignment_csv, save_expression_csv

from modpres.cli import main


@pytest.fixture
def input_files(tmp_path, preserved_pair):
    ref_matrix, ref_modules, query_matrix, query_modules = preserved_pair
    files = {
        "ref_expr": tmp_path / "ref.csv",
        "ref_modules": tmp_path / "ref_modules.csv",
        "query_expr": tmp_path / "query.csv",
        "query_modules": tmp_path / "query_modules.csv",
    }
    save_expression_csv(ref_matrix, files["ref_expr"])
    save_assignment_csv(ref_modules, files["ref_modules"])
    save_expression_csv(query_matrix, files["query_expr"])
    save_assignment_csv(query_modules, files["query_modules"])
    return files


def _run_args(files, output, *extra):
    return [
        "run",
        "--ref-expr", str(files["ref_expr"]),
        "--ref-modules", str(files["ref_modules"]),
        "--query-expr", str(files["query_expr"]),
        "--query-modules", str(files["query_modules"]),
        "--name", "astro",
        "--output", str(output),
        *extra,
    ]


class TestRunCommand:
    """Tests for `modpres run`."""

    def test_run_writes_results(self, tmp_path, input_files, capsys):
        """Run writes Z, obs and manifest files for the named result."""
        output = tmp_path / "results"

        code = main(_run_args(input_files, output, "--n-permutations", "20", "--seed", "3"))

        assert code == 0
        assert (output / "astro.Z.csv").exists()
        assert (output / "astro.obs.csv").exists()
        assert (output / "astro.json").exists()
        out = capsys.readouterr().out
        assert "blue" in out
        assert "low-confidence" in out

    def test_config_file(self, tmp_path, input_files):
        """Settings are read from a config file."""
        config = tmp_path / "config.yaml"
        config.write_text("permutation:\n  n_permutations: 15\n  seed: 4\n")

        code = main(_run_args(input_files, tmp_path / "out", "--config", str(config)))

        assert code == 0
        assert '"n_permutations": 15' in (tmp_path / "out" / "astro.json").read_text()

    def test_invalid_config_fails(self, tmp_path, input_files):
        """An invalid config file gives exit code 1."""
        config = tmp_path / "config.yaml"
        config.write_text("permutation:\n  n_perms: 15\n")

        assert main(_run_args(input_files, tmp_path / "out", "--config", str(config))) == 1

    def test_missing_input_fails(self, tmp_path, input_files):
        """A missing input file gives exit code 1."""
        input_files["query_expr"] = tmp_path / "missing.csv"
        assert main(_run_args(input_files, tmp_path / "out")) == 1

    def test_argument_bounds(self, tmp_path, input_files):
        """Out-of-range arguments are rejected by argparse."""
        with pytest.raises(SystemExit):
            main(_run_args(input_files, tmp_path / "out", "--n-permutations", "0"))


class TestShowCommand:
    """Tests for `modpres show`."""

    def test_show_selected_columns(self, tmp_path, input_files, capsys):
        """Show prints only the columns matching the pattern."""
        output = tmp_path / "results"
        main(_run_args(input_files, output, "--n-permutations", "20"))
        capsys.readouterr()

        code = main(["show", "--input", str(output), "--name", "astro", "--pattern", "^summary$"])

        assert code == 0
        out = capsys.readouterr().out
        assert "summary" in out
        assert "z.density" not in out

    def test_show_unknown_result(self, tmp_path, capsys):
        """Show reports an unknown result name with exit code 1."""
        code = main(["show", "--input", str(tmp_path), "--name", "missing"])
        assert code == 1
        assert "No stored result" in capsys.readouterr().out


class TestDispatcher:
    """Tests for the top-level dispatcher."""

    def test_no_command_prints_help(self, capsys):
        """Without a subcommand the help text is printed."""
        assert main([]) == 0
        assert "modpres" in capsys.readouterr().out

    def test_version(self, capsys):
        """--version prints the package version."""
        with pytest.raises(SystemExit):
            main(["--version"])
        assert "0.1.0" in capsys.readouterr().out
