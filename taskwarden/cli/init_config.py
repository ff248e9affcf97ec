"""taskwarden init: write the packaged default taskwarden.yaml."""

from __future__ import annotations

from importlib import resources
from pathlib import Path

from rich.console import Console

from taskwarden.config import YAMLConfigLoader


def default_config_text() -> str:
    """Commented default configuration shipped inside the package."""
    template = resources.files("taskwarden") / "templates" / YAMLConfigLoader.DEFAULT_FILENAME
    return template.read_text(encoding="utf-8")


def init_config_command(path: str = ".", force: bool = False) -> Path:
    """Write taskwarden.yaml into *path* and return the written file.

    Raises:
        FileExistsError: The file exists and *force* is false.
    """
    output_path = Path(path).expanduser().resolve() / YAMLConfigLoader.DEFAULT_FILENAME
    if output_path.exists() and not force:
        raise FileExistsError(f"Config already exists: {output_path} (use --force to overwrite)")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(default_config_text(), encoding="utf-8")
    Console().print(f"[green]Created[/green] {output_path}")
    return output_path
