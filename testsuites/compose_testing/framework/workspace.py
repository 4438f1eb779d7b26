"""
================================================================================
Test Workspaces
================================================================================

Per-test temporary directories holding compose fixtures, secret files and the
artifacts that containers write back through bind mounts.

Every call to WorkspaceManager.create_folder() returns a fresh directory, so
tests running back-to-back (or in parallel under pytest-xdist) never observe
each other's files.

Usage:
    manager = WorkspaceManager()
    workspace = manager.create_folder("Container_Compose_With_Secrets")
    compose_file = workspace.copy_fixture(RESOURCES / "container-compose-with-secrets.yml")
    workspace.write_secret("neo4j_auth.txt", "neo4j/newSecretPassword")
    ...
    manager.cleanup()

================================================================================
"""

from __future__ import annotations

import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import allure
from loguru import logger


PathLike = Union[str, Path]

SESSION_ROOT_PREFIX = "neo4j_compose_"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class FixtureError(OSError):
    """Raised when a fixture cannot be materialized into a workspace."""
    pass


def copy_fixture(target_dir: PathLike, source: PathLike) -> Path:
    """
    Copy a fixture file into target_dir, keeping its file name.

    A file of the same name already present in target_dir is replaced.
    Content is copied byte for byte.

    Raises:
        FixtureError: If the source is unreadable or target_dir is not writable
    """
    source = Path(source)
    target = Path(target_dir) / source.name

    if not source.is_file():
        raise FixtureError(f"Fixture file not found: {source}")

    try:
        if target.exists() or target.is_symlink():
            target.unlink()
        shutil.copyfile(source, target)
    except OSError as e:
        raise FixtureError(
            f"Cannot copy fixture {source} into {target_dir}: {e}"
        ) from e

    logger.debug(f"Copied fixture {source.name} -> {target}")
    return target


@dataclass
class Workspace:
    """An isolated directory owned by a single test."""

    path: Path
    name: str

    def __fspath__(self) -> str:
        return str(self.path)

    def resolve(self, *parts: str) -> Path:
        """Path inside the workspace; refuses paths that escape it."""
        candidate = self.path.joinpath(*parts).resolve()
        root = self.path.resolve()
        if candidate != root and root not in candidate.parents:
            raise FixtureError(f"Path escapes workspace {root}: {'/'.join(parts)}")
        return candidate

    def copy_fixture(self, source: PathLike) -> Path:
        """Copy a fixture file into this workspace."""
        return copy_fixture(self.path, source)

    def make_dirs(self, *parts: str) -> Path:
        """Create nested directories inside the workspace (bind mount targets)."""
        directory = self.resolve(*parts)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FixtureError(f"Cannot create directory {directory}: {e}") from e
        # Containers often run as a different uid than the test process
        directory.chmod(0o777)
        return directory

    @allure.step("Write secret file: {name}")
    def write_secret(self, name: str, value: str) -> Path:
        """
        Write a plain-text secret file, exactly as given.

        No trailing newline is added; images read the whole file as the value.
        """
        secret = self.resolve(name)
        try:
            secret.parent.mkdir(parents=True, exist_ok=True)
            secret.write_text(value, encoding="utf-8")
        except OSError as e:
            raise FixtureError(f"Cannot write secret file {secret}: {e}") from e
        logger.debug(f"Wrote secret file {secret} ({len(value)} chars)")
        return secret


class WorkspaceManager:
    """
    Creates and removes per-test workspaces under one session root.

    Attributes:
        keep: Retain workspaces after cleanup() for debugging
    """

    def __init__(self, root: Optional[PathLike] = None, keep: bool = False) -> None:
        """
        Args:
            root: Parent directory for the session root. System temp if None.
            keep: Retain workspaces instead of deleting them on cleanup().
        """
        self._parent = Path(root) if root else None
        self.keep = keep
        self._session_root: Optional[Path] = None
        self._workspaces: List[Workspace] = []

    @property
    def session_root(self) -> Path:
        if self._session_root is None:
            if self._parent is not None:
                self._parent.mkdir(parents=True, exist_ok=True)
            self._session_root = Path(
                tempfile.mkdtemp(
                    prefix=SESSION_ROOT_PREFIX,
                    dir=str(self._parent) if self._parent else None,
                )
            )
            logger.debug(f"Workspace session root: {self._session_root}")
        return self._session_root

    @property
    def workspaces(self) -> List[Workspace]:
        return list(self._workspaces)

    def create_folder(self, prefix: str) -> Workspace:
        """
        Create a new, unique workspace.

        Args:
            prefix: Human-readable prefix, usually derived from the test name

        Returns:
            Workspace whose directory exists and is empty
        """
        safe_prefix = _UNSAFE_CHARS.sub("_", prefix).strip("_") or "workspace"
        try:
            path = Path(tempfile.mkdtemp(prefix=f"{safe_prefix}_", dir=self.session_root))
        except OSError as e:
            raise FixtureError(f"Cannot create workspace under {self.session_root}: {e}") from e

        # Bind-mounted children must be writable by the container user
        os.chmod(path, 0o777)
        workspace = Workspace(path=path, name=safe_prefix)
        self._workspaces.append(workspace)
        logger.info(f"Created workspace: {path}")
        return workspace

    def remove(self, workspace: Workspace) -> None:
        """Delete a single workspace unless workspaces are kept."""
        if workspace in self._workspaces:
            self._workspaces.remove(workspace)
        if self.keep:
            logger.info(f"Keeping workspace for inspection: {workspace.path}")
            return
        shutil.rmtree(workspace.path, ignore_errors=True)
        if workspace.path.exists():
            # Files written by a container user we cannot delete
            logger.warning(f"Workspace could not be fully removed: {workspace.path}")

    def cleanup(self) -> None:
        """Remove every workspace created by this manager."""
        for workspace in list(self._workspaces):
            self.remove(workspace)

        if self._session_root is not None and not self.keep:
            shutil.rmtree(self._session_root, ignore_errors=True)
            self._session_root = None


__all__ = [
    "FixtureError",
    "Workspace",
    "WorkspaceManager",
    "copy_fixture",
]
