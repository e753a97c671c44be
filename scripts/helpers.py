import re
import json

_FENCED = re.compile(r'```(?:json)?\s*({[\s\S]*?})\s*```')


def extract_clean_json(raw: str | dict) -> dict:
    """
    Pull the JSON object out of a model response.

    Accepts an already-decoded dict, a ```json fenced block, or a bare
    object (optionally surrounded by chatter). Raises ValueError when no
    object can be decoded.
    """
    if isinstance(raw, dict):
        return raw
    if not raw or not raw.strip():
        raise ValueError("Empty model response")

    match = _FENCED.search(raw)
    if match:
        json_str = match.group(1)
    else:
        start, end = raw.find("{"), raw.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("No JSON object found in model response")
        json_str = raw[start:end + 1]

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed JSON in model response: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Model response JSON is not an object")

    # some responses wrap the payload
    if isinstance(data.get("recipe"), dict):
        data = data["recipe"]
    return data
