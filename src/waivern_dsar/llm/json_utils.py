"""JSON extraction from LLM responses."""

import re


def extract_json_from_llm_response(llm_response: str) -> str:
    """Extract JSON from an LLM response that may be wrapped in markdown.

    Args:
        llm_response: Raw response from LLM

    Returns:
        Clean JSON string

    Raises:
        ValueError: If no JSON is found in the response

    """
    json_match = re.search(
        r"```(?:json)?\s*(\{.*?\}|\[.*?\])\s*```", llm_response, re.DOTALL
    )
    if json_match:
        return json_match.group(1).strip()

    array_match = re.search(r"\[.*\]", llm_response, re.DOTALL)
    if array_match:
        return array_match.group(0).strip()

    obj_match = re.search(r"\{.*\}", llm_response, re.DOTALL)
    if obj_match:
        return obj_match.group(0).strip()

    raise ValueError("No valid JSON found in LLM response")
