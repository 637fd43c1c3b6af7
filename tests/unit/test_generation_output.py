from __future__ import annotations

import json

import pytest

from crafter.ai.errors import ParseError
from crafter.ai.json_parser import parse_json_with_fallback, strip_json_fences
from crafter.ai.output import parse_generation_output

SVG = '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"><rect width="10" height="10"/></svg>'


def test_parses_plain_json() -> None:
  raw = json.dumps({"svg": SVG, "reasoning": "Simple square."})
  assert parse_generation_output("generate", raw) == {"svg": SVG, "reasoning": "Simple square."}


def test_parses_fenced_json_with_trailing_comma() -> None:
  raw = f'```json\n{{"svg": {json.dumps(SVG)}, "reasoning": "ok",}}\n```'
  assert parse_generation_output("iterate", raw)["svg"] == SVG


def test_falls_back_to_bare_svg_markup() -> None:
  raw = f"Here is your design:\n{SVG}\nEnjoy!"
  assert parse_generation_output("generate", raw) == {"svg": SVG, "reasoning": ""}


def test_rejects_json_without_svg_document() -> None:
  with pytest.raises(ParseError, match="Failed to parse generation output"):
    parse_generation_output("generate", json.dumps({"svg": "<div>nope</div>"}))


def test_rejects_prose_without_json_or_svg() -> None:
  with pytest.raises(ParseError, match="neither JSON nor SVG"):
    parse_generation_output("generate", "I cannot help with that.")


def test_rejects_empty_response() -> None:
  with pytest.raises(ParseError, match="empty response"):
    parse_generation_output("generate", "  ")


def test_json_parser_extracts_object_from_prose() -> None:
  assert parse_json_with_fallback('Sure! {"a": [1, 2,]} trailing') == {"a": [1, 2]}


def test_strip_json_fences_leaves_unfenced_text() -> None:
  assert strip_json_fences('  {"a": 1}  ') == '{"a": 1}'
