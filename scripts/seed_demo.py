#!/usr/bin/env python3
"""Seed a demo workspace and sequencer project.

Creates a database with a default workspace, a saved preset and a short
video project whose tracks point at generated test media, so the studio
can be tried without RunPod credentials.

Usage:
    python scripts/seed_demo.py

This script:
1. Creates demo video/audio assets under the public dir if missing
2. Initializes the database
3. Seeds the workspace, preset and video project
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from engui.config import get_db_path, get_default_user_id, get_public_dir
from engui.core.project_io import DEFAULT_TRACKS
from engui.core.resolution import get_resolution
from engui.db import repo
from engui.db.session import get_db_session, init_db
from engui.models.domain import (
    DEFAULT_WORKSPACE_COLOR,
    DEFAULT_WORKSPACE_DESCRIPTION,
    DEFAULT_WORKSPACE_NAME,
    PresetEntity,
    VideoKeyFrameEntity,
    VideoProjectEntity,
    VideoTrackEntity,
    WorkspaceEntity,
)

DEMO_PROJECT_TITLE = "Demo project"
DEMO_DURATION_MS = 4000

# (file name, ffmpeg input args, output codec args)
DEMO_ASSETS = [
    (
        "demo_clip.mp4",
        ["-f", "lavfi", "-i", "testsrc=duration=4:size=1280x720:rate=30"],
        ["-c:v", "libx264", "-pix_fmt", "yuv420p"],
    ),
    (
        "demo_music.mp3",
        ["-f", "lavfi", "-i", "sine=frequency=330:duration=4"],
        ["-c:a", "libmp3lame"],
    ),
    (
        "demo_voice.wav",
        ["-f", "lavfi", "-i", "sine=frequency=660:duration=2"],
        ["-c:a", "pcm_s16le"],
    ),
]


def create_demo_assets() -> dict[str, str]:
    """Create demo media files using ffmpeg.

    Returns:
        Dict of file name to web path.
    """
    results_dir = get_public_dir() / "results"
    results_dir.mkdir(parents=True, exist_ok=True)
    web_paths = {}

    for name, inputs, codec in DEMO_ASSETS:
        path = results_dir / name
        web_paths[name] = f"/results/{name}"
        if path.exists():
            continue
        print(f"Creating {name}...")
        try:
            result = subprocess.run(
                ["ffmpeg", "-y", *inputs, *codec, str(path)],
                capture_output=True,
                text=True,
                timeout=60,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            print(f"Warning: could not run ffmpeg ({e}); export will skip {name}")
            continue
        if result.returncode != 0:
            print(f"Warning: could not create {name}: {result.stderr.strip()}")
        else:
            print(f"Created: {path}")

    return web_paths


def seed_database(assets: dict[str, str]) -> str:
    """Insert the demo workspace, preset and project.

    Returns:
        The demo project ID.
    """
    user_id = get_default_user_id()
    with get_db_session() as session:
        if repo.get_default_workspace(session, user_id) is None:
            repo.create_workspace(
                session,
                WorkspaceEntity(
                    id=repo.new_id(),
                    user_id=user_id,
                    name=DEFAULT_WORKSPACE_NAME,
                    description=DEFAULT_WORKSPACE_DESCRIPTION,
                    color=DEFAULT_WORKSPACE_COLOR,
                    is_default=True,
                ),
            )
            print(f"Created workspace: {DEFAULT_WORKSPACE_NAME}")

        repo.create_preset(
            session,
            PresetEntity(
                id=repo.new_id(),
                user_id=user_id,
                name="Portrait 768x1024",
                type="flux-krea",
                options={"width": 768, "height": 1024, "guidance": 2.5},
            ),
        )

        for project in repo.list_video_projects(session, user_id):
            if project.title == DEMO_PROJECT_TITLE:
                print(f"Demo project already exists: {project.id}")
                return project.id

        resolution = get_resolution("16:9", "720p")
        project = VideoProjectEntity(
            id=repo.new_id(),
            title=DEMO_PROJECT_TITLE,
            user_id=user_id,
            description="Test pattern with music and a voiceover",
            aspect_ratio=resolution.aspect_ratio,
            quality_preset=resolution.quality_preset,
            width=resolution.width,
            height=resolution.height,
            duration=DEMO_DURATION_MS,
        )
        tracks = {
            track_type: VideoTrackEntity(
                id=repo.new_id(),
                project_id=project.id,
                type=track_type,
                label=label,
                locked=False,
                order=order,
            )
            for order, (track_type, label) in enumerate(DEFAULT_TRACKS)
        }
        placements = [
            ("video", "video", "demo_clip.mp4", 0, 4000),
            ("music", "music", "demo_music.mp3", 0, 4000),
            ("voiceover", "voiceover", "demo_voice.wav", 1000, 2000),
        ]
        for track_type, data_type, name, start, duration in placements:
            tracks[track_type].keyframes.append(
                VideoKeyFrameEntity(
                    id=repo.new_id(),
                    track_id=tracks[track_type].id,
                    timestamp=start,
                    duration=duration,
                    data_type=data_type,
                    media_id=name,
                    url=assets[name],
                )
            )
        tracks["music"].volume = 60.0
        project.tracks = list(tracks.values())

        created = repo.create_video_project(session, project)
        print(f"Created project: {created.id} ({created.width}x{created.height})")
        return created.id


def main() -> int:
    """Main entry point."""
    print("=" * 60)
    print("EnguiStudio Demo Seeding Script")
    print("=" * 60)

    print("\n[1/3] Creating demo assets...")
    assets = create_demo_assets()

    print("\n[2/3] Initializing database...")
    init_db()

    print("\n[3/3] Seeding database...")
    project_id = seed_database(assets)

    print("\n" + "=" * 60)
    print("Demo seeding complete!")
    print(f"Database: {get_db_path()}")
    print(f"Project: {project_id}")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
