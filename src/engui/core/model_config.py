"""Catalog of generation models and their tunable parameters."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

ModelType = Literal["image", "video", "audio"]
ApiType = Literal["runpod", "external"]
ParameterType = Literal["string", "number", "boolean", "select"]


@dataclass(frozen=True)
class ModelParameter:
    name: str
    label: str
    type: ParameterType
    default: Any = None
    options: tuple[str, ...] | None = None
    min: float | None = None
    max: float | None = None
    step: float | None = None
    description: str | None = None
    group: Literal["basic", "advanced", "hidden"] = "advanced"
    depends_on: tuple[str, Any] | None = None
    multiple_of: int | None = None
    required: bool = False


@dataclass(frozen=True)
class ModelConfig:
    id: str
    name: str
    provider: str
    type: ModelType
    inputs: tuple[str, ...]
    api_type: ApiType
    endpoint: str
    parameters: tuple[ModelParameter, ...] = ()
    dimensions: tuple[str, ...] = ()
    durations: tuple[int, ...] = ()
    image_input_key: str = "image"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["parameters"] = [asdict(p) for p in self.parameters]
        return data


@dataclass(frozen=True)
class ParameterCheck:
    valid: bool
    error: str | None = None


def _p(name: str, label: str, type: ParameterType, default: Any = None, **kwargs) -> ModelParameter:
    return ModelParameter(name=name, label=label, type=type, default=default, **kwargs)


MODELS: tuple[ModelConfig, ...] = (
    # Video
    ModelConfig(
        id="wan22",
        name="Wan 2.2",
        provider="Wan",
        type="video",
        inputs=("text", "image"),
        api_type="runpod",
        endpoint="wan22",
        parameters=(
            _p("width", "Width", "number", 768, min=256, max=2048, step=64, group="basic"),
            _p("height", "Height", "number", 512, min=256, max=2048, step=64, group="basic"),
            _p("negativePrompt", "Negative Prompt", "string", ""),
            _p("seed", "Seed", "number", 42),
            _p("cfg", "CFG Scale", "number", 1.0, min=1, max=20, step=0.1, group="hidden"),
            _p("steps", "Steps", "number", 6, min=4, max=50, group="hidden"),
        ),
    ),
    ModelConfig(
        id="wan-animate",
        name="Wan Animate",
        provider="Wan",
        type="video",
        inputs=("image", "video", "text"),
        api_type="runpod",
        endpoint="wan-animate",
        parameters=(
            _p("mode", "Mode", "select", "replace", options=("replace", "animate"), group="hidden"),
            _p("width", "Width", "number", 512, min=64, max=2048, step=64, group="basic", multiple_of=64),
            _p("height", "Height", "number", 512, min=64, max=2048, step=64, group="basic", multiple_of=64),
            _p("steps", "Steps", "number", 4, min=1, max=50),
            _p("cfg", "CFG Scale", "number", 1.0, min=0.1, max=20, step=0.1),
            _p("seed", "Seed", "number", 42),
            _p("fps", "FPS", "number", 30, min=1, max=60),
            _p("points_store", "Points Store", "string", "", group="hidden", depends_on=("mode", "animate")),
            _p("coordinates", "Coordinates", "string", "", group="hidden", depends_on=("mode", "animate")),
            _p("neg_coordinates", "Negative Coordinates", "string", "", group="hidden", depends_on=("mode", "animate")),
        ),
    ),
    ModelConfig(
        id="infinite-talk",
        name="Infinite Talk",
        provider="Infinite Talk",
        type="video",
        inputs=("image", "video", "audio"),
        api_type="runpod",
        endpoint="infinite-talk",
        parameters=(
            _p("input_type", "Input Type", "select", "image", options=("image", "video"), group="basic"),
            _p("person_count", "Person Count", "select", "single", options=("single", "multi"), group="basic"),
            _p("width", "Width", "number", 640, min=64, max=2048, step=64, group="basic"),
            _p("height", "Height", "number", 640, min=64, max=2048, step=64, group="basic"),
            _p("audio_start", "Audio Start (s)", "string", ""),
            _p("audio_end", "Audio End (s)", "string", ""),
            _p("audio2_start", "Audio 2 Start (s)", "string", "", depends_on=("person_count", "multi")),
            _p("audio2_end", "Audio 2 End (s)", "string", "", depends_on=("person_count", "multi")),
        ),
    ),
    ModelConfig(
        id="google-veo",
        name="Veo",
        provider="Google",
        type="video",
        inputs=("text",),
        api_type="external",
        endpoint="https://api.google.com/veo/generate",
        dimensions=("1920x1080", "1080x1920"),
        durations=(6, 24),
    ),
    ModelConfig(
        id="kling",
        name="Kling",
        provider="Kling AI",
        type="video",
        inputs=("text", "image"),
        api_type="external",
        endpoint="https://api.kling.ai/v1/videos",
        dimensions=("16:9", "9:16", "1:1"),
        durations=(5, 10),
        parameters=(
            _p("mode", "Mode", "select", "Standard", options=("Standard", "Pro"), group="basic"),
        ),
    ),
    # Image
    ModelConfig(
        id="flux-krea",
        name="Flux Krea",
        provider="Flux",
        type="image",
        inputs=("text",),
        api_type="runpod",
        endpoint="flux-krea",
        parameters=(
            _p("width", "Width", "number", 1024, min=512, max=2048, step=64, group="basic"),
            _p("height", "Height", "number", 1024, min=512, max=2048, step=64, group="basic"),
            _p("guidance", "Guidance Scale", "number", 1.0, min=1, max=20, step=0.1, group="hidden"),
            _p("seed", "Seed", "number", 1234, description="-1 for random"),
            _p("lora", "LoRA", "string", ""),
            _p("loraWeight", "LoRA Weight", "number", 1.0, min=0.1, max=2.0, step=0.1),
        ),
    ),
    ModelConfig(
        id="qwen-image-edit",
        name="Qwen Image Edit",
        provider="Qwen",
        type="image",
        inputs=("text", "image"),
        api_type="runpod",
        endpoint="qwen-image-edit",
        image_input_key="image_base64",
        parameters=(
            _p("width", "Width", "number", 512, min=256, max=1920, step=64, group="basic", multiple_of=64),
            _p("height", "Height", "number", 512, min=256, max=1920, step=64, group="basic", multiple_of=64),
            _p("seed", "Seed", "number", 42, description="-1 for random"),
            _p("steps", "Steps", "number", 4, min=1, max=50),
            _p("guidance", "Guidance Scale", "number", 1, min=1, max=20, step=0.5),
        ),
    ),
)


def get_model_by_id(model_id: str) -> ModelConfig | None:
    return next((m for m in MODELS if m.id == model_id), None)


def get_models_by_type(model_type: str) -> list[ModelConfig]:
    return [m for m in MODELS if m.type == model_type]


def _format_bound(value: float | None, fallback: str) -> str:
    if value is None:
        return fallback
    return str(int(value)) if float(value).is_integer() else str(value)


def coerce_parameter_value(param: ModelParameter, raw: Any) -> Any:
    """Convert a form string to the parameter's type where possible.

    Values that do not convert are returned unchanged so validation can
    report them.
    """
    if not isinstance(raw, str):
        return raw
    if param.type == "number":
        try:
            number = float(raw)
        except ValueError:
            return raw
        return int(number) if number.is_integer() and "." not in raw else number
    if param.type == "boolean":
        return raw.strip().lower() in ("true", "1", "yes", "on")
    return raw


def validate_parameter(param: ModelParameter, value: Any) -> ParameterCheck:
    """Check one value against range, option and multiple-of constraints."""
    if value is None:
        if param.required:
            return ParameterCheck(False, f"Required parameter '{param.name}' is missing")
        return ParameterCheck(True)

    if param.type == "number":
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value != value:
            return ParameterCheck(False, f"Value for '{param.name}' must be a number")
        shown = _format_bound(value, "")
        if param.min is not None and value < param.min:
            return ParameterCheck(
                False,
                f"Value {shown} is outside the allowed range "
                f"[{_format_bound(param.min, '-inf')}, {_format_bound(param.max, 'inf')}]",
            )
        if param.max is not None and value > param.max:
            return ParameterCheck(
                False,
                f"Value {shown} is outside the allowed range "
                f"[{_format_bound(param.min, '-inf')}, {_format_bound(param.max, 'inf')}]",
            )
        if param.multiple_of is not None and value % param.multiple_of != 0:
            return ParameterCheck(False, f"Value {shown} must be a multiple of {param.multiple_of}")

    if param.type == "select" and param.options and value not in param.options:
        return ParameterCheck(
            False,
            f"Value '{value}' is not a valid option. Valid options: {', '.join(param.options)}",
        )

    return ParameterCheck(True)


def validate_model_inputs(model_id: str, inputs: dict[str, Any]) -> list[str]:
    """Validate every parameter of a model.

    Returns:
        Error messages; empty when all inputs are valid.
    """
    model = get_model_by_id(model_id)
    if model is None:
        return [f"Model '{model_id}' not found in configuration"]
    errors = []
    for param in model.parameters:
        check = validate_parameter(param, inputs.get(param.name))
        if not check.valid:
            errors.append(check.error)
    return errors


def get_visible_parameters(model_id: str, current_values: dict[str, Any]) -> list[ModelParameter]:
    """Parameters whose depends_on condition holds for current_values."""
    model = get_model_by_id(model_id)
    if model is None:
        return []
    return [
        p
        for p in model.parameters
        if p.depends_on is None or current_values.get(p.depends_on[0]) == p.depends_on[1]
    ]


def apply_defaults(model_id: str, inputs: dict[str, Any]) -> dict[str, Any]:
    """Fill missing parameters with their defaults."""
    model = get_model_by_id(model_id)
    if model is None:
        return dict(inputs)
    merged = {p.name: p.default for p in model.parameters if p.default not in (None, "")}
    merged.update({k: v for k, v in inputs.items() if v is not None})
    return merged
