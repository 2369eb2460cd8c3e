from __future__ import annotations

from pathlib import Path


def repo_root() -> Path:
    # backend/app/core/paths.py -> core -> app -> backend -> repo
    return Path(__file__).resolve().parents[3]


def app_root() -> Path:
    return Path(__file__).resolve().parents[1]


def resolve_repo_path(path_value: str) -> Path:
    """
    Resolves a path that may be relative to the repo root.
    Absolute paths are returned untouched; otherwise the working directory wins
    over the repo root when the file exists there.
    """
    p = Path(path_value)
    if p.is_absolute():
        return p
    if p.exists():
        return p.resolve()
    return (repo_root() / path_value).resolve()


def template_path(group: str, name: str) -> Path:
    return app_root() / "templates" / group / f"{name}.html"
