from __future__ import annotations

import pytest

from lectern.application.wiring import build_services
from lectern.core.config import IngestionSettings, load_paths
from lectern.core.errors import ConfigurationError


def test_load_paths_defaults_under_project_root(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("LECTERN_HOME", raising=False)

    paths = load_paths(tmp_path)

    assert paths.lectern_dir == tmp_path.resolve() / ".lectern"
    assert paths.db_path.name == "lectern.db"
    assert paths.qdrant_dir == paths.lectern_dir / "vector" / "qdrant"


def test_lectern_home_overrides_data_dir(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("LECTERN_HOME", str(tmp_path / "elsewhere"))

    assert load_paths(tmp_path / "proj").lectern_dir == (tmp_path / "elsewhere").resolve()


def test_settings_from_env_reads_overrides_and_ignores_garbage(monkeypatch) -> None:
    monkeypatch.setenv("LECTERN_BATCH_SIZE", "9")
    monkeypatch.setenv("LECTERN_HEARTBEAT_INTERVAL_SECONDS", "-3")
    monkeypatch.setenv("LECTERN_CHUNK_MAX_TOKENS", "lots")
    monkeypatch.setenv("LECTERN_CHUNK_OVERLAP_TOKENS", "0")
    monkeypatch.setenv("LECTERN_STALL_AUTO_REQUEUE", "yes")

    settings = IngestionSettings.from_env()

    assert settings.batch_size == 9
    assert settings.heartbeat_interval_seconds == 15.0
    assert settings.chunk_max_tokens == 500
    assert settings.chunk_overlap_tokens == 0
    assert settings.stall_auto_requeue is True


def test_overlap_must_be_smaller_than_chunk(app_paths) -> None:
    settings = IngestionSettings(chunk_max_tokens=50, chunk_overlap_tokens=50)

    with pytest.raises(ConfigurationError):
        build_services(app_paths, settings)
