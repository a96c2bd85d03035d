"""Per-model RunPod request payloads.

Each worker image expects its own input keys. Builders take the merged
generation inputs and return the "input" object; optional keys are left
out when empty.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

LORA_VOLUME_PREFIX = "/runpod-volume/loras/"
MAX_LORA_PAIRS = 4

Input = dict[str, Any]


def _optional(payload: Input, source: Input, *keys: str) -> Input:
    for key in keys:
        if source.get(key):
            payload[key] = source[key]
    return payload


def _strip_lora_prefix(path: str) -> str:
    if path.startswith(LORA_VOLUME_PREFIX):
        return path[len(LORA_VOLUME_PREFIX):]
    return path


def build_lora_pairs(input: Input) -> list[dict[str, Any]]:
    """Collect lora_high_i / lora_low_i (i = 1..4) into wan22 lora pairs.

    A pair is only sent when both halves are set. Weights default to 1.0.
    """
    pairs = []
    for i in range(1, MAX_LORA_PAIRS + 1):
        high = input.get(f"lora_high_{i}")
        low = input.get(f"lora_low_{i}")
        if not (high and low):
            continue
        high_weight = input.get(f"lora_high_{i}_weight")
        low_weight = input.get(f"lora_low_{i}_weight")
        pairs.append(
            {
                "high": _strip_lora_prefix(high),
                "low": _strip_lora_prefix(low),
                "high_weight": 1.0 if high_weight is None else high_weight,
                "low_weight": 1.0 if low_weight is None else low_weight,
            }
        )
    return pairs


def _multitalk(input: Input) -> Input:
    payload = {
        "prompt": input.get("prompt") or "a man talking",
        "image_path": input.get("image_path"),
        "audio_paths": input.get("audio_paths"),
    }
    return _optional(payload, input, "audio_type")


def _flux_kontext(input: Input) -> Input:
    return {
        "prompt": input.get("prompt"),
        "image_path": input.get("image_path"),
        "width": input.get("width"),
        "height": input.get("height"),
        "seed": input.get("seed"),
        "guidance": input.get("guidance"),
    }


def _flux_krea(input: Input) -> Input:
    payload = {
        "prompt": input.get("prompt"),
        "width": input.get("width"),
        "height": input.get("height"),
        "seed": input.get("seed"),
        "guidance": input.get("guidance"),
    }
    return _optional(payload, input, "model", "lora")


def _wan22(input: Input) -> Input:
    payload = {
        "prompt": input.get("prompt"),
        "image_path": input.get("image_path"),
        "width": input.get("width"),
        "height": input.get("height"),
        "seed": input.get("seed"),
        "cfg": input.get("cfg"),
        "length": input.get("length"),
        "steps": input.get("steps"),
        "context_overlap": input.get("context_overlap"),
    }
    _optional(payload, input, "end_image_path")
    pairs = build_lora_pairs(input)
    if pairs:
        payload["lora_pairs"] = pairs
    return payload


def _wan_animate(input: Input) -> Input:
    payload = {
        "prompt": input.get("prompt"),
        "positive_prompt": input.get("positive_prompt") or input.get("prompt"),
        "seed": input.get("seed"),
        "cfg": input.get("cfg"),
        "steps": input.get("steps"),
        "width": input.get("width"),
        "height": input.get("height"),
    }
    return _optional(
        payload,
        input,
        "fps",
        "mode",
        "points_store",
        "coordinates",
        "neg_coordinates",
        "image_path",
        "video_path",
    )


def _infinite_talk(input: Input) -> Input:
    payload = {
        "prompt": input.get("prompt"),
        "input_type": input.get("input_type"),
        "person_count": input.get("person_count"),
    }
    _optional(payload, input, "image_path", "video_path")
    payload["wav_path"] = input.get("wav_path") or input.get("audio")
    _optional(payload, input, "wav_path_2")
    payload["width"] = input.get("width")
    payload["height"] = input.get("height")
    if input.get("network_volume"):
        payload["network_volume"] = True
    return payload


def _video_upscale(input: Input) -> Input:
    return {
        "video_path": input.get("video_path"),
        "task_type": input.get("task_type"),
        "network_volume": True,
    }


def _qwen_image_edit(input: Input) -> Input:
    payload = {
        "prompt": input.get("prompt"),
        "image_path": input.get("image_path"),
    }
    _optional(payload, input, "image_path_2")
    payload.update(
        {
            "seed": input.get("seed"),
            "width": input.get("width"),
            "height": input.get("height"),
        }
    )
    _optional(payload, input, "steps")
    payload["guidance_scale"] = input.get("guidance_scale") or input.get("guidance")
    return payload


def _z_image(input: Input) -> Input:
    payload = {
        "prompt": input.get("prompt"),
        "seed": input.get("seed"),
        "width": input.get("width"),
        "height": input.get("height"),
        "steps": input.get("steps"),
        "cfg": input.get("cfg"),
    }
    _optional(payload, input, "negativePrompt", "condition_image")
    if input.get("use_controlnet") is not None:
        payload["use_controlnet"] = input["use_controlnet"]
    # lora format: [["/runpod-volume/loras/style.safetensors", 0.8], ...]
    lora = input.get("lora")
    if isinstance(lora, list) and lora:
        payload["lora"] = lora
    return payload


PAYLOAD_BUILDERS: dict[str, Callable[[Input], Input]] = {
    "multitalk": _multitalk,
    "flux-kontext": _flux_kontext,
    "flux-krea": _flux_krea,
    "wan22": _wan22,
    "wan-animate": _wan_animate,
    "infinite-talk": _infinite_talk,
    "video-upscale": _video_upscale,
    "qwen-image-edit": _qwen_image_edit,
    "z-image": _z_image,
}


def create_payload(model_id: str | None, input: Input) -> dict[str, Input]:
    """Wrap the model-specific input as {"input": {...}}.

    Unknown models get their input passed through unchanged.
    """
    builder = PAYLOAD_BUILDERS.get(model_id or "")
    if builder is None:
        if model_id:
            logger.warning(f"Unknown model '{model_id}', using generic payload")
        return {"input": dict(input)}
    return {"input": builder(input)}


def describe_payload(payload: dict[str, Input]) -> str:
    """One-line summary for logs; long strings (base64 data) are elided."""
    parts = []
    for key, value in payload["input"].items():
        if value is None:
            continue
        if isinstance(value, str) and len(value) > 100:
            parts.append(f"{key}=[data {len(value)} chars]")
        else:
            parts.append(f"{key}={value!r}"[:120])
    return ", ".join(parts)
