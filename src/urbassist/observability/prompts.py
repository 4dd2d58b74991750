"""Prompt registry — versioned Gemini prompts.

Prompt text is kept out of the retrieval code so that each version can be
logged as an MLflow artifact and compared across runs.
"""

import logging
from dataclasses import dataclass

from urbassist.observability.tracing import log_text, set_tag

logger = logging.getLogger(__name__)


ZONE_REGULATIONS_PROMPT_V1 = """\
Based on French urban planning rules for zone {zone_type} ({zone_name}) in {commune_name}, \
provide typical construction regulations in JSON format:
{{
  "maxHeight": number (meters),
  "setbacks": {{"front": number, "side": number, "rear": number}},
  "maxCoverageRatio": number (0-1),
  "parkingRequirements": "string",
  "greenSpaceRequirements": "string",
  "roofConstraints": "string",
  "facadeConstraints": "string"
}}
Only return the JSON, no other text.\
"""


@dataclass(frozen=True)
class Prompt:
    version: str
    template: str

    @property
    def artifact_file(self) -> str:
        return f"{self.version}.txt"


_PROMPTS: dict[str, Prompt] = {
    "zone_regulations": Prompt("v1", ZONE_REGULATIONS_PROMPT_V1),
}


def _lookup(name: str) -> Prompt:
    try:
        return _PROMPTS[name]
    except KeyError:
        raise KeyError(f"Unknown prompt: {name!r}. Available: {sorted(_PROMPTS)}") from None


def get_active_prompt(name: str) -> str:
    """Template text of the active version. KeyError for unknown names."""
    return _lookup(name).template


def get_prompt_version(name: str) -> str:
    return _lookup(name).version


def list_prompts() -> list[dict[str, str]]:
    return [{"name": name, "version": prompt.version} for name, prompt in _PROMPTS.items()]


def render_prompt(name: str, **values: str) -> str:
    """Fill a prompt template's placeholders."""
    return _lookup(name).template.format(**values)


def log_prompt_to_run(name: str) -> None:
    """Attach the active prompt text and its version tag to the current MLflow run."""
    prompt = _lookup(name)
    log_text(prompt.template, f"prompts/{name}_{prompt.artifact_file}")
    set_tag(f"prompt_{name}_version", prompt.version)
    logger.debug("Logged prompt %s (%s) to MLflow run", name, prompt.version)
