"""Load a profile from a mapping, a JSON document, a JSON file or a preset name."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loadpace._internal.errors import InvalidProfile
from loadpace.profiles.arrival_rate import ArrivalRate, ArrivalRateSpec
from loadpace.profiles.base import LoadProfile, ProfileKind
from loadpace.profiles.presets import Preset, get_preset
from loadpace.profiles.stages import Stage, StageRamp

if TYPE_CHECKING:
    from loadpace._internal.types import ProfileConfig

# Accepted spellings for each field, canonical name first.
_RAMP_FIELDS: dict[str, tuple[str, ...]] = {
    "executor": ("executor",),
    "stages": ("stages",),
    "interpolation": ("interpolation",),
    "max_workers": ("maxWorkers", "max_workers", "maxVUs"),
}
_ARRIVAL_FIELDS: dict[str, tuple[str, ...]] = {
    "executor": ("executor",),
    "rate": ("rate",),
    "time_unit": ("timeUnit", "time_unit"),
    "duration": ("duration",),
    "pre_allocated": ("preAllocated", "pre_allocated", "preAllocatedVUs"),
    "max_workers": ("maxWorkers", "max_workers", "maxVUs"),
}
_RAMP_EXECUTORS = (ProfileKind.STAGE_RAMP.value, "ramping-vus")
_STAGE_FIELDS = ("duration", "target")


def load_profile(source: ProfileConfig | str | Path) -> LoadProfile:
    """Build a validated profile from configuration.

    *source* may be:

    - a mapping such as ``{"stages": [{"duration": "5s", "target": 5}]}``;
    - a JSON document string (starting with ``{``);
    - a path to a ``.json`` file;
    - the name of a preset (see :class:`~loadpace.profiles.presets.Preset`).

    Args:
        source: Profile configuration.

    Returns:
        A :class:`StageRamp` or :class:`ArrivalRate`.

    Raises:
        InvalidProfile: If the configuration cannot be read or violates any
            profile invariant.
    """
    if isinstance(source, Mapping):
        return profile_from_dict(source)

    if isinstance(source, Path):
        return _load_file(source)

    if not isinstance(source, str):
        msg = f"Profile source must be a mapping, JSON string or path, got {type(source).__name__}"
        raise InvalidProfile(msg)

    text = source.strip()
    if text.startswith("{"):
        return profile_from_dict(_parse_json(text, "profile JSON"))

    path = Path(text)
    if path.suffix == ".json" or path.exists():
        return _load_file(path)

    if text in {p.value for p in Preset}:
        return get_preset(text)

    msg = f"Profile not found: {text!r} is neither a JSON file nor a preset name"
    raise InvalidProfile(msg)


def profile_from_dict(config: ProfileConfig) -> LoadProfile:
    """Build a profile from an already-parsed configuration mapping.

    Args:
        config: The top-level profile mapping.

    Returns:
        The validated profile.

    Raises:
        InvalidProfile: If the mapping is malformed.
    """
    if not isinstance(config, Mapping):
        msg = f"Profile configuration must be an object, got {type(config).__name__}"
        raise InvalidProfile(msg)

    if "preset" in config:
        _reject_unknown(config, {"preset"}, "profile")
        return get_preset(config["preset"])

    if "scenarios" in config:
        _reject_unknown(config, {"scenarios"}, "profile")
        scenarios = config["scenarios"]
        if not isinstance(scenarios, Mapping) or len(scenarios) != 1:
            msg = "'scenarios' must be an object with exactly one scenario"
            raise InvalidProfile(msg)
        ((name, scenario),) = scenarios.items()
        try:
            return profile_from_dict(scenario)
        except InvalidProfile as exc:
            msg = f"scenario {name!r}: {exc}"
            raise InvalidProfile(msg) from exc

    if "stages" in config:
        return _build_stage_ramp(config)

    if "executor" in config or "rate" in config:
        return _build_arrival_rate(config)

    msg = "Profile must define 'stages', an arrival-rate 'executor', 'scenarios' or 'preset'"
    raise InvalidProfile(msg)


def _build_stage_ramp(config: ProfileConfig) -> StageRamp:
    fields = _canonicalize(config, _RAMP_FIELDS, "stage ramp")
    executor = fields.get("executor", ProfileKind.STAGE_RAMP.value)
    if executor not in _RAMP_EXECUTORS:
        msg = f"Unsupported executor for stages: {executor!r} (expected one of: {', '.join(_RAMP_EXECUTORS)})"
        raise InvalidProfile(msg)

    raw_stages = fields["stages"]
    if not isinstance(raw_stages, list):
        msg = f"'stages' must be a list, got {type(raw_stages).__name__}"
        raise InvalidProfile(msg)

    stages: list[Stage] = []
    for i, raw in enumerate(raw_stages):
        if not isinstance(raw, Mapping):
            msg = f"stages[{i}] must be an object, got {type(raw).__name__}"
            raise InvalidProfile(msg)
        _reject_unknown(raw, set(_STAGE_FIELDS), f"stages[{i}]")
        missing = [name for name in _STAGE_FIELDS if name not in raw]
        if missing:
            msg = f"stages[{i}] is missing: {', '.join(missing)}"
            raise InvalidProfile(msg)
        try:
            stages.append(Stage(raw["duration"], raw["target"]))
        except InvalidProfile as exc:
            msg = f"stages[{i}]: {exc}"
            raise InvalidProfile(msg) from exc

    return StageRamp(
        stages,
        interpolation=fields.get("interpolation", "step"),
        max_workers=fields.get("max_workers"),
    )


def _build_arrival_rate(config: ProfileConfig) -> ArrivalRate:
    fields = _canonicalize(config, _ARRIVAL_FIELDS, "arrival-rate profile")
    executor = fields.get("executor", ProfileKind.ARRIVAL_RATE.value)
    if executor != ProfileKind.ARRIVAL_RATE.value:
        msg = f"Unsupported executor: {executor!r} (expected {ProfileKind.ARRIVAL_RATE.value!r})"
        raise InvalidProfile(msg)

    missing = [name for name in ("rate", "duration", "pre_allocated") if name not in fields]
    if missing:
        msg = f"arrival-rate profile is missing: {', '.join(missing)}"
        raise InvalidProfile(msg)

    pre_allocated = fields["pre_allocated"]
    return ArrivalRate(
        ArrivalRateSpec(
            rate=fields["rate"],
            time_unit=fields.get("time_unit", 1.0),
            duration=fields["duration"],
            pre_allocated=pre_allocated,
            max_workers=fields.get("max_workers", pre_allocated),
        )
    )


def _canonicalize(
    config: ProfileConfig,
    spellings: dict[str, tuple[str, ...]],
    what: str,
) -> dict[str, Any]:
    """Map accepted key spellings onto canonical names.

    Raises:
        InvalidProfile: On unknown keys or a field given under two spellings.
    """
    allowed = {alias for aliases in spellings.values() for alias in aliases}
    _reject_unknown(config, allowed, what)

    fields: dict[str, Any] = {}
    for canonical, aliases in spellings.items():
        present = [alias for alias in aliases if alias in config]
        if len(present) > 1:
            msg = f"{what} sets {canonical} more than once: {', '.join(present)}"
            raise InvalidProfile(msg)
        if present:
            fields[canonical] = config[present[0]]
    return fields


def _reject_unknown(config: Mapping[str, Any], allowed: set[str], what: str) -> None:
    unknown = sorted(set(config) - allowed)
    if unknown:
        msg = f"{what} has unknown field(s): {', '.join(unknown)}"
        raise InvalidProfile(msg)


def _parse_json(text: str, origin: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in {origin}: {exc}"
        raise InvalidProfile(msg) from exc


def _load_file(path: Path) -> LoadProfile:
    if not path.exists():
        msg = f"Profile file not found: {path}"
        raise InvalidProfile(msg)
    if path.suffix != ".json":
        msg = f"Profile file must be a .json file, got: {path}"
        raise InvalidProfile(msg)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Could not read profile file {path}: {exc}"
        raise InvalidProfile(msg) from exc
    return profile_from_dict(_parse_json(text, str(path)))
