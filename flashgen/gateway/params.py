# flashgen/gateway/params.py
"""
Request-shaping helpers for the gateway: sampling-parameter validation,
named parameter presets, and message normalization.
"""

from typing import Any, Dict, List, Optional

from flashgen.gateway.errors import ValidationError

ALLOWED_ROLES = ("system", "user", "assistant", "function", "tool")

PARAMETER_PRESETS: Dict[str, Dict[str, Any]] = {
    "creative": {"temperature": 1.2, "top_p": 0.9, "frequency_penalty": 0.2},
    "balanced": {"temperature": 0.7, "top_p": 0.8},
    "precise": {"temperature": 0.2, "top_p": 0.5, "frequency_penalty": 0.0},
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_parameters(parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Check sampling bounds; raise ValidationError before any network call."""
    params = dict(parameters)

    temperature = params.get("temperature")
    if temperature is not None and not (_is_number(temperature) and 0 <= temperature <= 2):
        raise ValidationError("Temperature must be between 0 and 2")

    top_p = params.get("top_p")
    if top_p is not None and not (_is_number(top_p) and 0 <= top_p <= 1):
        raise ValidationError("Top_p must be between 0 and 1")

    max_tokens = params.get("max_tokens")
    if max_tokens is not None and (not isinstance(max_tokens, int) or isinstance(max_tokens, bool)
                                   or max_tokens < 1):
        raise ValidationError("Max_tokens must be a positive integer")

    for penalty in ("presence_penalty", "frequency_penalty"):
        value = params.get(penalty)
        if value is not None and not (_is_number(value) and -2 <= value <= 2):
            raise ValidationError(f"{penalty} must be between -2 and 2")

    return params


def get_preset(name: Optional[str]) -> Dict[str, Any]:
    if not name:
        return {}
    if name not in PARAMETER_PRESETS:
        raise ValidationError(f"Unknown parameter preset '{name}'. Allowed: {sorted(PARAMETER_PRESETS)}")
    return dict(PARAMETER_PRESETS[name])


def resolve_parameters(defaults: Dict[str, Any], preset: Optional[str] = None,
                       overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """A preset replaces the defaults; explicit overrides win over both."""
    base = get_preset(preset) if preset else dict(defaults)
    base.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return validate_parameters(base)


def normalize_messages(messages: Optional[List[Dict[str, str]]] = None,
                       user_message: Optional[str] = None,
                       system_message: Optional[str] = None) -> List[Dict[str, str]]:
    """
    An explicit message list is used as-is (copied). Otherwise build
    [system?, user] from the shorthand arguments.
    """
    if messages:
        out = []
        for m in messages:
            if m.get("role") not in ALLOWED_ROLES:
                raise ValidationError(f"Invalid message role: {m.get('role')!r}")
            out.append(dict(m))
        return out

    result: List[Dict[str, str]] = []
    if system_message:
        result.append({"role": "system", "content": system_message})
    if user_message:
        result.append({"role": "user", "content": user_message})

    if not result:
        raise ValidationError("No messages provided. Either messages or a prompt must be specified.")
    return result
