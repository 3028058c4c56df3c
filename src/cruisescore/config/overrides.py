"""
Per-request settings overrides.

A decision request may carry `settingsOverrides` to tune scoring policy for that one
engine run (e.g. a stricter over-budget decay while experimenting in the admin UI).
Only the scoring sections under `decision` are tunable; provider credentials, table
names, file paths and the stored weights are not.

The payload is checked against `OVERRIDABLE`, deep-merged onto a dump of the current
settings, and re-validated, so a bad value fails the same way a bad YAML file would.
"""

from __future__ import annotations

from typing import Any, Mapping

from cruisescore.config.settings import Settings

# True: anything below this key is accepted. A dict: only the listed child keys are.
OVERRIDABLE: dict[str, Any] = {
    "decision": {
        "price": True,
        "cabin": True,
        "preference": True,
        "demand": True,
        "risk": True,
        "confidence": True,
        "max_reasons": True,
    },
}


def _merge(base: dict[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in patch.items():
        current = out.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            out[key] = _merge(dict(current), value)
        else:
            out[key] = value
    return out


def _checked(payload: Mapping[str, Any], allowed: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Return `payload` unchanged if every key is allowed; raise ValueError naming the first bad key."""
    out: dict[str, Any] = {}
    for key, value in payload.items():
        dotted = f"{prefix}{key}"
        rule = allowed.get(key)
        if rule is None:
            raise ValueError(f"settings_overrides contains a disallowed key: '{dotted}'")
        if rule is True:
            out[key] = value
        elif isinstance(value, Mapping):
            out[key] = _checked(value, rule, prefix=f"{dotted}.")
        else:
            raise ValueError(f"settings_overrides key '{dotted}' must be a mapping")
    return out


def apply_settings_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    """Return `settings` with a whitelisted override payload applied (or `settings` itself if empty)."""
    if not overrides:
        return settings
    patch = _checked(overrides, OVERRIDABLE)
    return Settings.model_validate(_merge(settings.model_dump(mode="python"), patch))
