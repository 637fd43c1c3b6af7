"""Build provider requests from job inputs.

Prompt wording is owned by the design team and changes often; the worker only
relies on the output contract stated in OUTPUT_CONTRACT.
"""

from __future__ import annotations

import json
from typing import Any

from crafter.ai.providers.base import GenerationRequest

OUTPUT_CONTRACT = 'Respond with a single JSON object: {"svg": "<svg ...>...</svg>", "reasoning": "<short explanation>"}. No markdown, no code fence.'


def _design_system_block(design_system: Any) -> str:
  if isinstance(design_system, str):
    return design_system
  return json.dumps(design_system, ensure_ascii=False, sort_keys=True)


def _system_prompt(job_input: dict[str, Any]) -> str:
  sections = [
    "You are a UI designer producing production-ready frames as SVG.",
    "Follow this design system exactly:",
    _design_system_block(job_input["designSystem"]),
    OUTPUT_CONTRACT,
  ]
  return "\n\n".join(sections)


def _with_history(prompt: str, chat_history: Any) -> str:
  if not chat_history:
    return prompt
  history = chat_history if isinstance(chat_history, str) else json.dumps(chat_history, ensure_ascii=False)
  return f"Conversation so far:\n{history}\n\nRequest:\n{prompt}"


def build_generate_request(job_input: dict[str, Any]) -> GenerationRequest:
  """Request a new design from a text prompt."""
  return GenerationRequest(system_prompt=_system_prompt(job_input), user_prompt=_with_history(str(job_input["prompt"]), job_input.get("chatHistory")))


def split_data_url(image_data: str) -> tuple[str, str]:
  """Return (mime_type, base64_payload) for a raw base64 string or a data: URL."""
  if image_data.startswith("data:") and ";base64," in image_data:
    header, payload = image_data.split(";base64,", 1)
    return header[len("data:") :] or "image/png", payload
  return "image/png", image_data


def build_iterate_request(job_input: dict[str, Any]) -> GenerationRequest:
  """Request a revision of an existing frame, sending its rendering and structure."""
  mime_type, image_base64 = split_data_url(str(job_input["imageData"]))
  frame_data = job_input["frameData"]
  frame_block = frame_data if isinstance(frame_data, str) else json.dumps(frame_data, ensure_ascii=False)
  user_prompt = f"Current frame structure:\n{frame_block}\n\n{_with_history(str(job_input['prompt']), job_input.get('chatHistory'))}"
  return GenerationRequest(system_prompt=_system_prompt(job_input), user_prompt=user_prompt, image_base64=image_base64, image_mime_type=mime_type)


REQUEST_BUILDERS = {"generate": build_generate_request, "iterate": build_iterate_request}
