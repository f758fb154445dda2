"""Read-only scan of the production directory tree.

Derives the episode / short-form / scene / shot choices offered by the
data-entry frontend.  Layout::

    <root>/Episode_01/Audio/SC_01_SH_02_Audio.wav
    <root>/Episode_01/Production/SC_01_SH_03_animation_v011.mp4
    <root>/Short-Forms/<name>/<any subdir>/SC_01_SH_01_*.mp4

Only file names matter; scenes and shots are taken from the
``SC_<n>_SH_<n>_`` prefix.  This module never touches the record store.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel

from .models import ProjectType

logger = logging.getLogger(__name__)

EPISODE_PATTERN = re.compile(r"^Episode_(\d+)", re.IGNORECASE)
SCENE_SHOT_PATTERN = re.compile(r"^SC_(\d+)_SH_(\d+)_")
EPISODE_SUBDIRS = ("Audio", "For lineup", "Production", "03_Production")
SHORT_FORMS_DIR = "Short-Forms"


class ShotRef(BaseModel):
    scene: str
    shot: str

    model_config = {"frozen": True}


class ProjectInfo(BaseModel):
    """One episode or short form.

    Attributes:
        name: Directory name, used as the record title.
        project_type: ``long-form`` for episodes, ``short-form`` otherwise.
        scenes: Sorted scene labels.
        shots: Sorted scene/shot pairs.
    """

    name: str
    project_type: ProjectType
    scenes: list[str] = []
    shots: list[ShotRef] = []

    model_config = {"frozen": True}


class ProjectStructure(BaseModel):
    """Result of one scan."""

    episodes: list[ProjectInfo] = []
    short_forms: list[ProjectInfo] = []
    scanned_at: str
    error: str | None = None

    model_config = {"frozen": True}

    def find(self, name: str) -> ProjectInfo | None:
        """Return the project called *name*; episodes are checked first."""
        for project in [*self.episodes, *self.short_forms]:
            if project.name == name:
                return project
        return None

    def scenes_for(self, name: str) -> list[str]:
        project = self.find(name)
        return list(project.scenes) if project else []

    def shots_for(self, name: str, scene: str) -> list[str]:
        project = self.find(name)
        if project is None:
            return []
        return [ref.shot for ref in project.shots if ref.scene == scene]


def extract_scene_shots(file_names: list[str]) -> set[tuple[str, str]]:
    """Return ``(SC_xx, SH_yy)`` pairs found in *file_names*."""
    pairs: set[tuple[str, str]] = set()
    for name in file_names:
        match = SCENE_SHOT_PATTERN.match(name)
        if match:
            pairs.add((f"SC_{match.group(1)}", f"SH_{match.group(2)}"))
    return pairs


def _list_files(directory: Path) -> list[str]:
    return [p.name for p in directory.iterdir() if p.is_file()]


def _build_project(
    name: str, project_type: ProjectType, pairs: set[tuple[str, str]]
) -> ProjectInfo:
    ordered = sorted(pairs)
    return ProjectInfo(
        name=name,
        project_type=project_type,
        scenes=sorted({scene for scene, _ in ordered}),
        shots=[ShotRef(scene=scene, shot=shot) for scene, shot in ordered],
    )


class StructureProvider:
    """Scan a production root for episodes and short forms.

    Args:
        root: Production directory.  A missing root yields an empty
            structure.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def scan(self) -> ProjectStructure:
        """Scan the tree.  I/O errors are logged and reported in ``error``."""
        scanned_at = datetime.now(timezone.utc).isoformat()
        try:
            episodes = self._scan_episodes()
            short_forms = self._scan_short_forms()
        except OSError as exc:
            logger.error("Failed to scan %s: %s", self.root, exc)
            return ProjectStructure(scanned_at=scanned_at, error=str(exc))

        logger.info(
            "Scanned %s: %d episodes, %d short forms",
            self.root,
            len(episodes),
            len(short_forms),
        )
        return ProjectStructure(
            episodes=episodes, short_forms=short_forms, scanned_at=scanned_at
        )

    def _scan_episodes(self) -> list[ProjectInfo]:
        if not self.root.is_dir():
            logger.warning("Production root not found: %s", self.root)
            return []

        found: list[tuple[int, ProjectInfo]] = []
        for entry in self.root.iterdir():
            match = EPISODE_PATTERN.match(entry.name)
            if not entry.is_dir() or not match:
                continue
            pairs: set[tuple[str, str]] = set()
            for sub in EPISODE_SUBDIRS:
                sub_path = entry / sub
                if sub_path.is_dir():
                    pairs |= extract_scene_shots(_list_files(sub_path))
            found.append(
                (int(match.group(1)), _build_project(entry.name, ProjectType.LONG_FORM, pairs))
            )
        return [project for _, project in sorted(found, key=lambda item: item[0])]

    def _scan_short_forms(self) -> list[ProjectInfo]:
        base = self.root / SHORT_FORMS_DIR
        if not base.is_dir():
            return []

        projects: list[ProjectInfo] = []
        for entry in sorted(base.iterdir()):
            if not entry.is_dir():
                continue
            pairs: set[tuple[str, str]] = set()
            for sub in entry.iterdir():
                if sub.is_dir():
                    pairs |= extract_scene_shots(_list_files(sub))
            projects.append(_build_project(entry.name, ProjectType.SHORT_FORM, pairs))
        return projects
