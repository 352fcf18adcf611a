"""Markdown profile files describing the person the committee advises."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _profile_path(profile_dir: Path, filename: str) -> Path:
    name = Path(filename).name
    if not name or name != filename:
        raise ValueError(f"Invalid profile filename: {filename!r}")
    return profile_dir / name


def read_all_profiles(profile_dir: Path) -> dict[str, str]:
    """Return {filename: content} for every .md file, sorted by filename.

    The directory is created when missing.
    """
    if not profile_dir.exists():
        profile_dir.mkdir(parents=True, exist_ok=True)
        return {}
    files = sorted(profile_dir.glob("*.md"), key=lambda p: p.name)
    return {p.name: p.read_text(encoding="utf-8") for p in files}


def write_profile_file(profile_dir: Path, filename: str, content: str) -> Path:
    profile_dir.mkdir(parents=True, exist_ok=True)
    path = _profile_path(profile_dir, filename)
    path.write_text(content, encoding="utf-8")
    logger.info("Wrote profile file %s", path)
    return path


def delete_profile_file(profile_dir: Path, filename: str) -> bool:
    """Delete a profile file. Returns False when it did not exist."""
    path = _profile_path(profile_dir, filename)
    if not path.exists():
        return False
    path.unlink()
    logger.info("Deleted profile file %s", path)
    return True
