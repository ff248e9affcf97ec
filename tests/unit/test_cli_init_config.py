"""Unit tests for taskwarden init config generation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from taskwarden.cli.init_config import default_config_text, init_config_command
from taskwarden.config.models import TaskwardenConfig


def test_packaged_template_validates_to_defaults() -> None:
    parsed = TaskwardenConfig.model_validate(yaml.safe_load(default_config_text()))
    assert parsed.model_dump() == TaskwardenConfig.model_validate({}).model_dump()


def test_init_writes_template_into_new_directory(tmp_path: Path) -> None:
    target_dir = tmp_path / "deploy" / "conf"
    written = init_config_command(path=str(target_dir))
    assert written == target_dir / "taskwarden.yaml"
    assert written.read_text(encoding="utf-8") == default_config_text()


@pytest.mark.parametrize("force", [False, True])
def test_existing_file_needs_force(tmp_path: Path, force: bool) -> None:
    existing = tmp_path / "taskwarden.yaml"
    existing.write_text("scheduler: {}\n", encoding="utf-8")
    if not force:
        with pytest.raises(FileExistsError, match="--force"):
            init_config_command(path=str(tmp_path))
        assert existing.read_text(encoding="utf-8") == "scheduler: {}\n"
        return
    init_config_command(path=str(tmp_path), force=True)
    assert existing.read_text(encoding="utf-8") == default_config_text()
