"""Tests for the RunPod client and per-model payload builders.

A MagicMock requests session stands in for the network.
"""

from unittest.mock import MagicMock

import pytest
import requests

from engui.providers.base import ProviderBase
from engui.providers.payloads import build_lora_pairs, create_payload, describe_payload
from engui.providers.runpod import RunPodAuthError, RunPodError, RunPodService


def response(status: int, body: dict | None = None) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status
    mock.ok = 200 <= status < 300
    mock.json.return_value = body or {}
    mock.text = str(body)
    return mock


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def service(session) -> RunPodService:
    return RunPodService("rp_key", "ep-1", session=session, sleep=lambda _: None)


# ============================================================================
# Payloads
# ============================================================================


class TestPayloads:
    """Test create_payload."""

    def test_flux_krea_omits_empty_optionals(self):
        payload = create_payload("flux-krea", {"prompt": "a cat", "width": 768, "lora": ""})
        assert payload == {
            "input": {"prompt": "a cat", "width": 768, "height": None, "seed": None, "guidance": None}
        }

    def test_unknown_model_passes_input_through(self):
        assert create_payload("mystery", {"x": 1}) == {"input": {"x": 1}}

    def test_wan22_lora_pairs(self):
        """Only complete pairs are sent; the volume prefix is stripped."""
        inputs = {
            "prompt": "waves",
            "lora_high_1": "/runpod-volume/loras/a_high.safetensors",
            "lora_low_1": "/runpod-volume/loras/a_low.safetensors",
            "lora_high_1_weight": 0.5,
            "lora_high_2": "b_high.safetensors",
        }
        pairs = create_payload("wan22", inputs)["input"]["lora_pairs"]
        assert pairs == [
            {"high": "a_high.safetensors", "low": "a_low.safetensors", "high_weight": 0.5, "low_weight": 1.0}
        ]

    def test_wan22_without_loras(self):
        assert "lora_pairs" not in create_payload("wan22", {"prompt": "x"})["input"]
        assert build_lora_pairs({}) == []

    def test_infinite_talk_falls_back_to_audio(self):
        payload = create_payload(
            "infinite-talk", {"prompt": "hi", "audio": "/runpod-volume/a.wav", "network_volume": True}
        )["input"]
        assert payload["wav_path"] == "/runpod-volume/a.wav"
        assert payload["network_volume"] is True
        assert "video_path" not in payload

    def test_qwen_guidance_alias(self):
        payload = create_payload("qwen-image-edit", {"prompt": "p", "guidance": 4})["input"]
        assert payload["guidance_scale"] == 4

    def test_describe_payload_elides_long_strings(self):
        summary = describe_payload({"input": {"image": "A" * 500, "seed": 7, "skip": None}})
        assert summary == "image=[data 500 chars], seed=7"


# ============================================================================
# RunPod client
# ============================================================================


class TestRunPodService:
    """Test RunPodService."""

    def test_is_provider(self):
        assert issubclass(RunPodService, ProviderBase)

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            RunPodService("", "ep-1")

    def test_submit_job(self, service, session):
        """Posts the model payload to /run with bearer auth."""
        session.request.return_value = response(200, {"id": "job-9"})
        assert service.submit_job({"prompt": "a cat"}, "flux-krea") == "job-9"

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("POST", "https://api.runpod.ai/v2/ep-1/run")
        assert kwargs["headers"]["Authorization"] == "Bearer rp_key"
        assert kwargs["json"]["input"]["prompt"] == "a cat"

    def test_submit_error(self, service, session):
        session.request.return_value = response(500, {"error": "boom"})
        with pytest.raises(RunPodError, match="RunPod API error: 500"):
            service.submit_job({"prompt": "x"})

    def test_submit_without_id(self, service, session):
        session.request.return_value = response(200, {})
        with pytest.raises(RunPodError, match="did not return a job ID"):
            service.submit_job({"prompt": "x"})

    def test_retries_connection_errors(self, service, session):
        """Connection errors are retried up to three attempts."""
        session.request.side_effect = [
            requests.ConnectionError("reset"),
            response(200, {"id": "job-1"}),
        ]
        assert service.submit_job({}) == "job-1"
        assert session.request.call_count == 2

    def test_gives_up_after_three_attempts(self, service, session):
        session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(RunPodError):
            service.get_job_status("job-1")
        assert session.request.call_count == 3

    def test_upscale_payload(self, service, session):
        session.request.return_value = response(200, {"id": "up-1"})
        service.submit_upscale_job("/runpod-volume/a.mp4", "video", with_interpolation=True)
        assert session.request.call_args.kwargs["json"] == {
            "input": {"task_type": "upscale_and_interpolation", "video_path": "/runpod-volume/a.mp4"}
        }

    def test_status_404_means_queued(self, service, session):
        """A freshly submitted job can 404 briefly."""
        session.request.return_value = response(404)
        assert service.get_job_status("job-1") == {"id": "job-1", "status": "IN_QUEUE"}

    def test_wait_for_completion(self, service, session):
        """Polls until COMPLETED."""
        session.request.side_effect = [
            response(200, {"status": "IN_QUEUE"}),
            response(200, {"status": "IN_PROGRESS"}),
            response(200, {"status": "COMPLETED", "output": {"image": "abc"}}),
        ]
        assert service.wait_for_completion("job-1")["output"] == {"image": "abc"}

    def test_wait_failed_job(self, service, session):
        session.request.return_value = response(200, {"status": "FAILED", "error": "OOM"})
        with pytest.raises(RunPodError, match="Job failed: OOM"):
            service.wait_for_completion("job-1")

    def test_wait_times_out(self, session):
        """The clock passing max_wait stops polling."""
        ticks = iter([0.0, 0.0, 20.0])
        service = RunPodService(
            "k", "ep", session=session, sleep=lambda _: None, clock=lambda: next(ticks)
        )
        session.request.return_value = response(200, {"status": "IN_PROGRESS"})
        with pytest.raises(RunPodError, match="Job timeout"):
            service.wait_for_completion("job-1", max_wait=10)

    def test_health_rejects_bad_key(self, service, session):
        session.request.return_value = response(401)
        with pytest.raises(RunPodAuthError):
            service.check_health()

    @pytest.mark.parametrize(
        "status,success,message",
        [
            (200, True, "Endpoint accessible"),
            (401, False, "Invalid API key - Authentication failed"),
            (404, False, "Endpoint not found - Check your endpoint ID"),
            (502, False, "RunPod server error: 502"),
        ],
    )
    def test_connection_probe(self, service, session, status, success, message):
        session.request.return_value = response(status)
        result = service.test_connection()
        assert result["success"] is success
        assert result["message"].startswith(message)
        assert result["status_code"] == status
