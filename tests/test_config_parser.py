"""
Tests for the YAML configuration layer.
"""

import sys
from pathlib import Path

import pytest

# Add scripts directory to path for imports
scripts_dir = Path(__file__).parent.parent / "scripts"
sys.path.insert(0, str(scripts_dir))

from seedpipe.seed import DEFAULT_MIN_SEGMENT_LENGTH, DEFAULT_OVERHANG
from utils.config_parser import (
    WORK_DIR_ENV,
    export_as_shell,
    flatten_config,
    get_nested,
    load_config,
    seed_options_from_config,
    to_shell_var_name,
    validate_config,
    work_dir_from_config,
)


class TestLoading:
    """Tests for reading configuration values."""

    def test_load_yaml(self, temp_dir):
        """Nested YAML sections become nested dicts."""
        path = temp_dir / "config.yaml"
        path.write_text("seed:\n  overhang: 80\nresources:\n  threads: 2\n")
        config = load_config(str(path))
        assert config == {"seed": {"overhang": 80}, "resources": {"threads": 2}}

    def test_load_empty(self, temp_dir):
        """An empty file is an empty config."""
        path = temp_dir / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == {}

    def test_load_missing(self, temp_dir):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(str(temp_dir / "nope.yaml"))

    def test_get_nested(self, sample_config):
        """Dot paths reach nested values, missing paths give the default."""
        assert get_nested(sample_config, "seed.overhang") == 50
        assert get_nested(sample_config, "seed.missing", "x") == "x"
        assert get_nested(sample_config, "seed.overhang.deeper") is None


class TestShellExport:
    """Tests for shell variable export."""

    def test_flatten(self):
        """Booleans are lowercase and None is empty."""
        flat = flatten_config({"seed": {"ungapped_only": True, "overhang": 100}, "x": None})
        assert flat == {"seed.ungapped_only": "true", "seed.overhang": "100", "x": ""}

    def test_var_name(self):
        """Variable names are prefixed and upper case."""
        assert to_shell_var_name("seed.min_segment_length") == "SEEDPIPE_SEED_MIN_SEGMENT_LENGTH"
        assert to_shell_var_name("paths.work-dir") == "SEEDPIPE_PATHS_WORK_DIR"

    def test_export_quotes(self):
        """Values are single quoted with embedded quotes escaped."""
        out = export_as_shell({"paths": {"work_dir": "/tmp/it's"}})
        assert out == "export SEEDPIPE_PATHS_WORK_DIR='/tmp/it'\"'\"'s'"


class TestValidateConfig:
    """Tests for validate_config."""

    def test_valid(self, sample_config):
        """The sample configuration is valid."""
        ok, errors = validate_config(sample_config)
        assert ok
        assert errors == []

    def test_bad_threads(self, sample_config):
        """Threads must be a positive integer."""
        sample_config["resources"]["threads"] = 0
        ok, errors = validate_config(sample_config)
        assert not ok
        assert any("resources.threads" in e for e in errors)

    def test_bad_overhang(self, sample_config):
        """Overhang must be an integer, not a flag."""
        sample_config["seed"]["overhang"] = True
        ok, errors = validate_config(sample_config)
        assert not ok
        assert any("seed.overhang" in e for e in errors)

    def test_bad_flag(self, sample_config):
        """Seed flags must be booleans."""
        sample_config["seed"]["ungapped_only"] = "yes"
        ok, errors = validate_config(sample_config)
        assert not ok
        assert any("seed.ungapped_only" in e for e in errors)

    def test_negative_bitscore(self, sample_config):
        """Bitscore thresholds are non-negative."""
        sample_config["blastn"]["min_bitscore"] = -1
        ok, errors = validate_config(sample_config)
        assert not ok

    def test_placeholder_work_dir(self, sample_config, monkeypatch):
        """The example placeholder path is rejected."""
        monkeypatch.delenv(WORK_DIR_ENV, raising=False)
        sample_config["paths"]["work_dir"] = "/path/to/your/seed_project"
        ok, errors = validate_config(sample_config)
        assert not ok
        assert any("Working directory" in e for e in errors)

    def test_work_dir_from_env(self, monkeypatch):
        """The environment variable stands in for paths.work_dir."""
        monkeypatch.setenv(WORK_DIR_ENV, "/data/run1")
        ok, errors = validate_config({})
        assert ok, errors
        assert work_dir_from_config({}) == Path("/data/run1")


class TestSeedOptions:
    """Tests for seed_options_from_config."""

    def test_from_sample(self, sample_config):
        """Values from the seed section are used."""
        options = seed_options_from_config(sample_config)
        assert options.overhang == 50
        assert options.min_segment_length == 12
        assert options.ungapped_only is True
        assert options.all_segments is False
        assert options.terminal_floor == pytest.approx(60.0)

    def test_defaults(self):
        """An empty config gives the default options."""
        options = seed_options_from_config({})
        assert options.overhang == DEFAULT_OVERHANG
        assert options.min_segment_length == DEFAULT_MIN_SEGMENT_LENGTH
        assert options.check_codons is True
