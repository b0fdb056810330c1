# assessment/model_props.py

from typing import Any, Dict, Tuple


def is_openai_model(model_name) -> bool:
    # keep it simple; adjust if you start using exotic names
    prefixes = ("gpt-", "gpt4", "o1", "o3", "o4")
    return any((model_name or "").startswith(p) for p in prefixes)


def parse_model_name(raw: str) -> Tuple[str, Dict[str, Any]]:
    """Parse strings like:
        - 'gpt-4o'
        - 'gpt-4o_flex'
        - 'gemini-2.5-flash_priority'
    into (base_model, provider_params).

    Suffix tokens pick the OpenAI service tier; Vertex models accept none.
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValueError("parse_model_name: No Model Name passed. ")

    parts = raw.split("_")
    base = parts[0]
    if len(parts) <= 1:
        return base, {}

    service_tier_tokens = {"auto", "default", "flex", "priority"}
    service_tier = None
    unknown = []
    for tok in parts[1:]:
        t = tok.strip().lower()
        if not t:
            continue
        if service_tier is None and t in service_tier_tokens:
            service_tier = t
            continue
        unknown.append(t)

    if unknown:
        raise ValueError(f"parse_model_name: Unknown model suffix token(s) {unknown} in '{raw}'. ")
    if service_tier is not None and not is_openai_model(base):
        raise ValueError(f"parse_model_name: service tier '{service_tier}' is only supported for OpenAI models. ")

    params: Dict[str, Any] = {}
    if service_tier is not None:
        params["service_tier"] = service_tier
    return base, params
