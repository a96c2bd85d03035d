"""Tests for video sequencer API endpoints (projects, tracks, keyframes, export)."""

from unittest.mock import patch

import pytest

from engui.config import get_exports_dir


def create_project(client, **fields) -> dict:
    body = {"title": "Trailer", "withDefaultTracks": True, **fields}
    response = client.post("/api/video-projects", json=body)
    assert response.status_code == 201
    return response.json()["project"]


def track_of(project: dict, track_type: str) -> dict:
    return next(t for t in project["tracks"] if t["type"] == track_type)


def keyframe_body(track_id: str, **fields) -> dict:
    body = {
        "trackId": track_id,
        "timestamp": 0,
        "duration": 5000,
        "dataType": "video",
        "mediaId": "media-1",
        "url": "/results/clip.mp4",
    }
    body.update(fields)
    return body


class TestVideoProjects:
    """Test /api/video-projects."""

    def test_create_with_defaults(self, client):
        """Defaults to 16:9 1080p, 30 s, with three unlocked tracks."""
        project = create_project(client)
        assert (project["width"], project["height"]) == (1920, 1080)
        assert project["duration"] == 30000
        assert [t["type"] for t in project["tracks"]] == ["video", "music", "voiceover"]
        assert all(t["locked"] is False for t in project["tracks"])

    def test_size_follows_aspect_ratio_and_preset(self, client):
        """9:16 at 720p is 720x1280."""
        project = create_project(client, aspectRatio="9:16", qualityPreset="720p")
        assert (project["width"], project["height"]) == (720, 1280)

    def test_invalid_aspect_ratio_returns_400(self, client):
        """Unsupported ratios are rejected."""
        response = client.post("/api/video-projects", json={"title": "x", "aspectRatio": "4:3"})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "aspectRatio must be one of: 16:9, 9:16, 1:1"

    def test_requires_title(self, client):
        """title is required."""
        response = client.post("/api/video-projects", json={})
        assert response.json()["error"]["message"] == "title is required"

    def test_patch_resizes_canvas(self, client):
        """Changing the aspect ratio recomputes width and height."""
        project = create_project(client)
        response = client.patch(f"/api/video-projects/{project['id']}", json={"aspectRatio": "1:1"})
        updated = response.json()["project"]
        assert (updated["width"], updated["height"]) == (1080, 1080)
        assert updated["qualityPreset"] == "1080p"

    def test_delete_then_get_returns_404(self, client):
        """Deleted projects are gone."""
        project = create_project(client)
        assert client.delete(f"/api/video-projects/{project['id']}").status_code == 200
        response = client.get(f"/api/video-projects/{project['id']}")
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Video project not found"

    def test_export_and_import(self, client):
        """An exported document imports as a new project with the same content."""
        project = create_project(client)
        client.post("/api/video-keyframes", json=keyframe_body(track_of(project, "video")["id"]))

        response = client.get(f"/api/video-projects/{project['id']}/export")
        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        document = response.json()
        assert document["version"] == "1.0"

        imported = client.post("/api/video-projects/import", json=document)
        assert imported.status_code == 201
        copy = imported.json()["project"]
        assert copy["id"] != project["id"]
        assert copy["title"] == "Trailer"
        assert len(track_of(copy, "video")["keyframes"]) == 1

    def test_import_invalid_document_returns_400(self, client):
        """Structural problems are reported."""
        response = client.post("/api/video-projects/import", json={"project": {}})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Missing or invalid version"


class TestVideoTracks:
    """Test /api/video-tracks."""

    def test_create_defaults(self, client):
        """Label defaults to "{type} track"; tracks start locked."""
        project = create_project(client, withDefaultTracks=False)
        response = client.post(
            "/api/video-tracks", json={"projectId": project["id"], "type": "music"}
        )
        assert response.status_code == 201
        track = response.json()["track"]
        assert track["label"] == "music track"
        assert track["locked"] is True
        assert track["volume"] == 100

    def test_invalid_type_returns_400(self, client):
        """Only video, music and voiceover tracks exist."""
        project = create_project(client)
        response = client.post(
            "/api/video-tracks", json={"projectId": project["id"], "type": "image"}
        )
        assert response.json()["error"]["message"] == "type must be one of: video, music, voiceover"

    def test_unknown_project_returns_404(self, client):
        """The project must exist."""
        response = client.post("/api/video-tracks", json={"projectId": "nope", "type": "video"})
        assert response.status_code == 404

    def test_volume_range(self, client):
        """Volume is limited to 0-200."""
        track = track_of(create_project(client), "music")
        assert client.patch(f"/api/video-tracks/{track['id']}", json={"volume": 250}).status_code == 400
        response = client.patch(f"/api/video-tracks/{track['id']}", json={"volume": 150, "muted": True})
        assert response.json()["track"]["volume"] == 150
        assert response.json()["track"]["muted"] is True

    def test_delete_cascades_keyframes(self, client):
        """Keyframes go with their track."""
        project = create_project(client)
        track = track_of(project, "video")
        keyframe = client.post("/api/video-keyframes", json=keyframe_body(track["id"])).json()
        assert client.delete(f"/api/video-tracks/{track['id']}").status_code == 200
        assert client.delete(f"/api/video-keyframes/{keyframe['keyframe']['id']}").status_code == 404

    def test_audio_helpers_require_path(self, client):
        """videoPath is required."""
        response = client.post("/api/video-tracks/detect-audio", json={})
        assert response.json()["error"]["message"] == "Video path is required"

    def test_audio_helpers_reject_traversal(self, client):
        """Paths outside the public dir are refused."""
        response = client.post(
            "/api/video-tracks/detect-audio", json={"videoPath": "/../../etc/passwd"}
        )
        assert response.status_code == 400

    def test_missing_video_returns_404(self, client):
        """A path with no file behind it returns 404."""
        response = client.post(
            "/api/video-tracks/create-muted", json={"videoPath": "/results/none.mp4"}
        )
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Video file not found"

    def test_detect_audio(self, client, isolated_env):
        """Reports the ffprobe result for a file under the public dir."""
        video = isolated_env / "public" / "results" / "clip.mp4"
        video.parent.mkdir(parents=True)
        video.write_bytes(b"fake")
        with patch("engui.api.routes.video_tracks.has_audio_stream", return_value=True):
            data = client.post(
                "/api/video-tracks/detect-audio", json={"videoPath": "/results/clip.mp4"}
            ).json()
        assert data["hasAudio"] is True

    def test_create_muted_writes_sibling(self, client, isolated_env):
        """The muted copy sits next to the source."""
        video = isolated_env / "public" / "results" / "clip.mp4"
        video.parent.mkdir(parents=True)
        video.write_bytes(b"fake")
        with patch("engui.api.routes.video_tracks.create_muted_video") as mute:
            data = client.post(
                "/api/video-tracks/create-muted", json={"videoPath": "/results/clip.mp4"}
            ).json()
        assert data["mutedVideoPath"] == "/results/clip_muted.mp4"
        assert mute.call_args.args[1].name == "clip_muted.mp4"


class TestVideoKeyframes:
    """Test /api/video-keyframes."""

    def test_create_keyframe(self, client):
        """A valid keyframe is stored with contain fit by default."""
        track = track_of(create_project(client), "video")
        response = client.post("/api/video-keyframes", json=keyframe_body(track["id"]))
        assert response.status_code == 201
        assert response.json()["keyframe"]["fitMode"] == "contain"

    @pytest.mark.parametrize(
        "override,message",
        [
            ({"trackId": None}, "trackId is required"),
            ({"url": ""}, "url is required"),
            ({"dataType": "gif"}, "dataType must be one of: image, video, music, voiceover"),
            ({"timestamp": -1}, "timestamp must be non-negative"),
            ({"duration": 0}, "duration must be positive"),
        ],
    )
    def test_validation_errors(self, client, override, message):
        """Each invalid field has its own message."""
        track = track_of(create_project(client), "video")
        response = client.post("/api/video-keyframes", json=keyframe_body(track["id"], **override))
        assert response.status_code == 400
        assert response.json()["error"]["message"] == message

    def test_unknown_track_returns_404(self, client):
        """The track must exist."""
        response = client.post("/api/video-keyframes", json=keyframe_body("nope"))
        assert response.json()["error"]["message"] == "Video track not found"

    def test_patch_keyframe(self, client):
        """Timing and fit can be changed."""
        track = track_of(create_project(client), "video")
        keyframe = client.post("/api/video-keyframes", json=keyframe_body(track["id"])).json()
        response = client.patch(
            f"/api/video-keyframes/{keyframe['keyframe']['id']}",
            json={"timestamp": 1000, "fitMode": "cover"},
        )
        updated = response.json()["keyframe"]
        assert updated["timestamp"] == 1000
        assert updated["fitMode"] == "cover"

    def test_auto_place_prefers_free_music_track(self, client):
        """Audio lands on music first, then voiceover when music is busy."""
        project = create_project(client)
        body = {
            "projectId": project["id"],
            "timestamp": 0,
            "duration": 4000,
            "dataType": "music",
            "mediaId": "song",
            "url": "/audio/song.mp3",
        }
        first = client.post("/api/video-keyframes/auto-place", json=body).json()
        second = client.post("/api/video-keyframes/auto-place", json=body).json()
        third = client.post("/api/video-keyframes/auto-place", json=body)

        assert first["trackId"] == track_of(project, "music")["id"]
        assert second["trackId"] == track_of(project, "voiceover")["id"]
        assert third.status_code == 409


class TestVideoExport:
    """Test /api/video-export."""

    def test_status(self, client):
        """GET reports the service is up."""
        assert client.get("/api/video-export").json()["status"] == "ok"

    def test_requires_project(self, client):
        """Project data is required."""
        assert client.post("/api/video-export", json={}).status_code == 400

    def test_empty_timeline(self, client):
        """Nothing to render yields a null download URL and a note."""
        data = client.post(
            "/api/video-export", json={"project": {"id": "p1", "duration": 5000}, "tracks": []}
        ).json()
        assert data["success"] is True
        assert data["downloadUrl"] is None
        assert data["note"] == "Add media to timeline before exporting"

    def test_renders_to_exports(self, client):
        """Keyframes are rendered into the exports directory."""
        body = {
            "project": {"id": "p1", "width": 1280, "height": 720, "duration": 5000},
            "tracks": [{"id": "t1", "type": "video", "order": 0}],
            "keyframes": {"t1": [{"id": "k1", "timestamp": 0, "duration": 2000,
                                  "data": {"type": "image", "mediaId": "m", "url": "/results/a.png"}}]},
            "options": {"format": "webm"},
        }
        with patch("engui.api.routes.video_export.compose_timeline") as compose:
            data = client.post("/api/video-export", json=body).json()

        project, tracks, keyframes, output_path = compose.call_args.args
        assert (project.width, project.height) == (1280, 720)
        assert keyframes["t1"][0].data_type == "image"
        assert output_path.suffix == ".webm"
        assert data["downloadUrl"] == f"/exports/{output_path.name}"

    def test_null_track_fields_use_defaults(self, client):
        """Null volume and order fall back to 100 and the list position."""
        body = {
            "project": {"id": "p1", "duration": 5000},
            "tracks": [{"id": "t1", "type": "music", "order": None, "volume": None}],
            "keyframes": {"t1": [{"id": "k1", "timestamp": None, "duration": 2000,
                                  "data": {"type": "music", "mediaId": "m", "url": "/audio/a.mp3"}}]},
        }
        with patch("engui.api.routes.video_export.compose_timeline") as compose:
            response = client.post("/api/video-export", json=body)

        assert response.status_code == 200
        _, tracks, keyframes, _ = compose.call_args.args
        assert (tracks[0].order, tracks[0].volume) == (0, 100)
        assert keyframes["t1"][0].timestamp == 0

    @pytest.mark.parametrize("name", ["../secret.mp4", "a/b.mp4", "a\\b.mp4"])
    def test_download_rejects_paths(self, client, name):
        """Names with separators or parent references are refused."""
        response = client.get("/api/video-export/download", params={"file": name})
        assert response.status_code == 400

    def test_download(self, client):
        """Sends the rendered file as an attachment."""
        exports = get_exports_dir()
        exports.mkdir(parents=True)
        (exports / "export_1.mp4").write_bytes(b"video")
        response = client.get("/api/video-export/download", params={"file": "export_1.mp4"})
        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert "attachment" in response.headers["content-disposition"]

    def test_download_missing_returns_404(self, client):
        """Unknown file returns 404."""
        response = client.get("/api/video-export/download", params={"file": "nope.mp4"})
        assert response.status_code == 404
