"""Tests for generation, upscale and model catalog API endpoints.

RunPodService and the background job runner are patched; no network calls.
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import Session

from engui.db import repo
from engui.models.domain import JobEntity, WorkspaceEntity
from engui.providers.runpod import RunPodError

RUNPOD_SETTINGS = {
    "apiKey": "rp_testkey",
    "endpoints": {"flux-krea": "ep-flux", "infinite-talk": "ep-talk", "upscale": "ep-up"},
}
S3_SETTINGS = {
    "endpointUrl": "https://s3api-eu-ro-1.runpod.io",
    "accessKeyId": "AKIAEXAMPLE",
    "secretAccessKey": "secret-value-123",
    "bucketName": "vol-123",
    "region": "eu-ro-1",
}


def in_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


@pytest.fixture
def configured(client):
    client.post("/api/settings", json={"settings": {"runpod": RUNPOD_SETTINGS, "s3": S3_SETTINGS}})


@pytest.fixture
def runpod():
    """Patched RunPodService class and background runner."""
    with patch("engui.api.routes.generate.RunPodService") as service_cls, patch(
        "engui.api.routes.generate.run_generation_job"
    ) as runner:
        service_cls.return_value.submit_job.return_value = "rp-job-1"
        service_cls.return_value.submit_upscale_job.return_value = "rp-up-1"
        yield service_cls, runner


class TestModelCatalog:
    """Test /api/models."""

    def test_filters_by_type(self, client):
        """type=image returns image models only."""
        models = client.get("/api/models", params={"type": "image"}).json()["models"]
        assert {m["id"] for m in models} == {"flux-krea", "qwen-image-edit"}

    def test_unknown_model_returns_404(self, client):
        """Unknown id returns 404."""
        assert client.get("/api/models/nope").status_code == 404

    def test_validate_reports_errors(self, client):
        """Out of range values are reported."""
        data = client.post("/api/models/flux-krea/validate", json={"width": 100}).json()
        assert data["valid"] is False
        assert data["errors"] == ["Value 100 is outside the allowed range [512, 2048]"]


class TestGenerate:
    """Test POST /api/generate/{model_id}."""

    def test_requires_runpod_setup(self, client, runpod):
        """Missing settings signal that setup is required."""
        response = client.post("/api/generate/flux-krea", data={"prompt": "a cat"})
        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"requiresSetup": True}

    def test_invalid_parameters_return_400(self, client, configured, runpod):
        """Catalog validation runs before anything is stored."""
        response = client.post("/api/generate/flux-krea", data={"prompt": "a cat", "width": "64"})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid generation parameters"
        assert client.get("/api/jobs").json()["jobs"] == []

    def test_submits_and_schedules(self, client, engine, configured, runpod):
        """Creates a processing job, charges a credit and schedules the follow-up."""
        service_cls, runner = runpod
        response = client.post(
            "/api/generate/flux-krea", data={"prompt": "a cat", "width": "768", "seed": "7"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["runpodJobId"] == "rp-job-1"
        assert data["status"] == "processing"

        service_cls.assert_called_once_with("rp_testkey", "ep-flux", 3600)
        inputs = service_cls.return_value.submit_job.call_args.args[0]
        assert inputs["width"] == 768
        assert inputs["seed"] == 7
        assert inputs["height"] == 1024

        job = client.get(f"/api/jobs/{data['jobId']}").json()["job"]
        assert job["status"] == "processing"
        assert job["runpodJobId"] == "rp-job-1"
        assert job["options"]["endpointType"] == "flux-krea"

        credit = client.get("/api/credit-activity").json()
        assert credit["balance"] == -1
        assert data["jobId"] in credit["activities"][0]["activity"]

        context = runner.call_args.args[0]
        assert context.job_id == data["jobId"]
        assert context.media_type == "image"

    def test_submission_runs_off_event_loop(self, client, configured, runpod):
        """RunPod is called from a worker thread, not the event loop."""
        service_cls, _ = runpod
        calls = []

        def submit(*args):
            calls.append(in_event_loop())
            return "rp-job-1"

        service_cls.return_value.submit_job.side_effect = submit
        response = client.post("/api/generate/flux-krea", data={"prompt": "a cat"})
        assert response.status_code == 200
        assert calls == [False]

    def test_uses_current_workspace(self, client, engine, configured, runpod):
        """Without workspaceId the job goes to the user's default workspace."""
        with Session(engine) as db_session:
            repo.create_workspace(
                db_session,
                WorkspaceEntity(
                    id="ws-home", user_id="user-with-settings", name="Home", is_default=True
                ),
            )
            db_session.commit()
        data = client.post("/api/generate/flux-krea", data={"prompt": "a cat"}).json()
        assert client.get(f"/api/jobs/{data['jobId']}").json()["job"]["workspaceId"] == "ws-home"

    def test_submit_failure_marks_job_failed(self, client, configured, runpod):
        """A RunPod error fails the job and returns 500 with its id."""
        service_cls, runner = runpod
        service_cls.return_value.submit_job.side_effect = RunPodError("RunPod API error: 500")
        response = client.post("/api/generate/flux-krea", data={"prompt": "a cat"})
        assert response.status_code == 500

        job_id = response.json()["error"]["details"]["jobId"]
        job = client.get(f"/api/jobs/{job_id}").json()["job"]
        assert job["status"] == "failed"
        assert "RunPod API error" in job["options"]["error"]
        runner.assert_not_called()

    def test_uploads_input_files(self, client, configured, runpod):
        """Files go to the volume and their paths into the payload."""
        service_cls, _ = runpod
        s3 = MagicMock()
        s3.upload_file.side_effect = lambda data, name, content_type, folder: {
            "filePath": f"/runpod-volume/{folder}/{name}",
            "s3Url": f"https://s3/{folder}/{name}",
            "key": f"{folder}/{name}",
        }
        with patch("engui.api.routes.generate.S3Service") as s3_cls:
            s3_cls.from_settings.return_value = s3
            response = client.post(
                "/api/generate/infinite-talk",
                data={"prompt": "talk"},
                files=[
                    ("image", ("face.png", b"img", "image/png")),
                    ("audio", ("voice.wav", b"wav", "audio/wav")),
                ],
            )
        assert response.status_code == 200
        job_id = response.json()["jobId"]

        inputs = service_cls.return_value.submit_job.call_args.args[0]
        assert inputs["image_path"] == f"/runpod-volume/input/input_{job_id}_face.png"
        assert inputs["wav_path"] == f"/runpod-volume/input/input_{job_id}_voice.wav"
        assert inputs["audio_paths"] == [inputs["wav_path"]]


class TestUpscale:
    """Test POST /api/upscale."""

    def add_completed_job(self, engine, **options):
        with Session(engine) as db_session:
            repo.create_job(
                db_session,
                JobEntity(
                    id="job-src",
                    user_id="user-with-settings",
                    type="wan22",
                    model_id="wan22",
                    status="completed",
                    prompt="a wave",
                    result_url="/results/wan22_result_job-src.mp4",
                    options=options,
                ),
            )
            db_session.commit()

    def test_requires_job_or_path(self, client, configured, runpod):
        """An empty request is rejected."""
        assert client.post("/api/upscale", json={}).status_code == 400

    def test_uses_volume_result_of_job(self, client, engine, configured, runpod):
        """A job whose result is on the volume is upscaled in place."""
        service_cls, _ = runpod
        self.add_completed_job(engine, runpodResultUrl="/runpod-volume/out/wave.mp4")
        response = client.post("/api/upscale", json={"jobId": "job-src", "interpolation": True})
        assert response.status_code == 200

        service_cls.return_value.submit_upscale_job.assert_called_once_with(
            "/runpod-volume/out/wave.mp4", "video", True
        )
        job = client.get(f"/api/jobs/{response.json()['jobId']}").json()["job"]
        assert job["type"] == "upscale"
        assert job["options"]["sourceJobId"] == "job-src"

    def test_unknown_source_job_returns_404(self, client, configured, runpod):
        """The source job must exist."""
        assert client.post("/api/upscale", json={"jobId": "nope"}).status_code == 404


class TestExternalWorkerFlow:
    """Test POST /api/generate, GET /api/generate/status and the webhook."""

    def test_legacy_generate_then_webhook(self, client):
        """The webhook completes a job recorded by POST /api/generate."""
        created = client.post(
            "/api/generate", json={"userId": "user-1", "type": "video", "prompt": "x"}
        ).json()
        assert created["status"] == "processing"

        response = client.post(
            "/api/webhook/complete",
            json={"jobId": created["jobId"], "resultUrl": "https://cdn/out.mp4"},
        )
        assert response.status_code == 200
        job = response.json()["job"]
        assert job["status"] == "completed"
        assert job["resultUrl"] == "https://cdn/out.mp4"

    def test_webhook_unknown_job_returns_404(self, client):
        """Unknown job id returns 404."""
        response = client.post(
            "/api/webhook/complete", json={"jobId": "nope", "resultUrl": "https://cdn/out.mp4"}
        )
        assert response.status_code == 404

    def test_status_requires_headers(self, client):
        """Endpoint id and key headers are required."""
        response = client.get("/api/generate/status", params={"jobId": "rp-1"})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Missing required parameters"

    def test_status_proxies_runpod(self, client, runpod):
        """Returns RunPod's status document."""
        service_cls, _ = runpod
        service_cls.return_value.get_job_status.return_value = {
            "status": "IN_PROGRESS",
            "output": None,
        }
        data = client.get(
            "/api/generate/status",
            params={"jobId": "rp-1"},
            headers={"X-RunPod-Endpoint-Id": "ep-1", "X-RunPod-Key": "k"},
        ).json()
        assert data["status"] == "IN_PROGRESS"
        service_cls.assert_called_once_with("k", "ep-1")
