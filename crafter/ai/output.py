"""Per-mode output schemas and parsing of raw provider text into validated payloads."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from crafter.ai.errors import ParseError
from crafter.ai.json_parser import parse_json_with_fallback, strip_json_fences

_SVG_BLOCK_RE = re.compile(r"<svg\b.*?</svg>", re.DOTALL | re.IGNORECASE)


class GenerateOutput(BaseModel):
  """A freshly generated design, rendered as SVG markup."""

  model_config = ConfigDict(extra="ignore")

  svg: str = Field(min_length=1)
  reasoning: str = ""

  @field_validator("svg")
  @classmethod
  def _require_svg_markup(cls, value: str) -> str:
    markup = value.strip()
    if not markup.lower().startswith("<svg") or not markup.lower().endswith("</svg>"):
      raise ValueError("svg must be a complete <svg>...</svg> document")
    return markup


class IterateOutput(GenerateOutput):
  """A revision of an existing frame; same shape as a generated design."""


OUTPUT_MODELS: dict[str, type[GenerateOutput]] = {"generate": GenerateOutput, "iterate": IterateOutput}


def _summarize_validation_error(exc: ValidationError) -> str:
  parts = []
  for error in exc.errors():
    location = ".".join(str(item) for item in error.get("loc", ())) or "output"
    parts.append(f"{location}: {error.get('msg')}")
  return "; ".join(parts)


def _decode_payload(raw: str) -> Any:
  """Decode JSON output, falling back to bare SVG markup when the model skipped the JSON wrapper."""
  cleaned = strip_json_fences(raw)
  try:
    return parse_json_with_fallback(cleaned)
  except json.JSONDecodeError as exc:
    match = _SVG_BLOCK_RE.search(raw)
    if match is None:
      raise ParseError(f"Failed to parse generation output: response is neither JSON nor SVG markup ({exc.msg})") from exc
    return {"svg": match.group(0), "reasoning": ""}


def parse_generation_output(mode: str, raw: str | None) -> dict[str, Any]:
  """Parse and validate raw provider text against the output schema for a job mode."""
  output_model = OUTPUT_MODELS.get(mode)
  if output_model is None:
    raise ValueError(f"Unsupported job mode: {mode}")
  if raw is None or raw.strip() == "":
    raise ParseError("Failed to parse generation output: empty response")

  payload = _decode_payload(raw)
  if not isinstance(payload, dict):
    raise ParseError(f"Failed to parse generation output: expected a JSON object, got {type(payload).__name__}")

  try:
    validated = output_model.model_validate(payload)
  except ValidationError as exc:
    raise ParseError(f"Failed to parse generation output: {_summarize_validation_error(exc)}") from exc
  return validated.model_dump()
