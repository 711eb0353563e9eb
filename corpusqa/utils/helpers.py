"""Small filesystem helpers."""

from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create the directory (and parents) if missing; return it."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """~/.corpusqa, created on demand."""
    return ensure_dir(Path.home() / ".corpusqa")
