"""Ask an OpenAI chat model to describe a structure in the tile DSL.

The model is told to produce the three markdown sections that
:mod:`dsl_parser` reads (components, constraints, component tiles); it never
draws the assembled layout itself.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from openai import OpenAI, OpenAIError

from config import CFG

logger = logging.getLogger(__name__)

SYMBOL_LIBRARY = (
    ("(space)", "Empty"),
    (".", "Ground / Walkable Floor"),
    ("X", "Wall"),
    ("_", "Horizontal Structure"),
    ("|", "Vertical Structure"),
    ("/ or \\", "Diagonal Structure"),
    ("C", "Chest / Container / Crate"),
    ("$", "Coins / Currency / Treasure"),
    ("G", "Glass / Window / Pane"),
    ("M", "Metal Object / Machinery"),
    ("S", "Stone"),
    ("w", "Wood"),
    ("t", "Tree (Natural)"),
    ("v", "Vegetation / Vines / Moss"),
    ("*", "Ice / Snow / Frost"),
    ("~", "Liquid / Water / Pool"),
    ("^", "Spike / Hazard"),
    ("%", "Food / Provisions / Rations"),
    ("s", "Fire / Furnace / Heat Source"),
    ("b", "Book / Scroll / Written Object"),
    ("B", "Bed"),
    ("T", "Table / Work Surface"),
    ("r", "Rug / Carpet / Decorative Floor"),
    ("a", "Altar / Shrine"),
    ("h", "Chair / Stool / Seating"),
    ("p", "Pillar / Column"),
    ("d", "Debris / Rubble / Broken Object"),
    ("f", "Flag / Banner / Hanging Cloth"),
    (":", "Lamp / Light Source / Torch"),
)

STRUCTURE_TYPES = ("castle", "village", "dungeon", "cathedral", "tower")


class LLMError(RuntimeError):
    pass


def build_prompts(structure_type: str) -> Tuple[str, str]:
    kind = (structure_type or "").strip() or "structure"
    symbols = "\n".join(f"{sym} - {meaning}" for sym, meaning in SYMBOL_LIBRARY)
    system_prompt = (
        f"Your task is to design a top-down ASCII map of a {kind} using a constraint-driven process.\n"
        "You will NOT generate the final structure layout.\n"
        "Instead, you will define:\n\n"
        "1. Core components\n"
        "2. Spatial constraints\n"
        "3. Self-contained ASCII components (tiles) to be assembled later by an external constraint solver\n\n"
        "Step 1: Identify Core Components\n"
        "List the components that make up the structure (rooms, chambers, towers, vaults, courtyards). "
        "For each give its name as **Name** followed by ' - ' and a short description covering its purpose, "
        "approximate scale (small/medium/large, where a player is one tile @) and notable features.\n\n"
        "Step 2: Define Spatial Constraints\n"
        "Use only this DSL, one constraint per line:\n"
        "ADJACENT(a, b, dir) - component a sits flush against the dir side of component b, "
        "where dir is n, e, s, w, or a for any side.\n"
        "Every component must appear in at least one constraint.\n\n"
        "Step 3: Generate Individual ASCII Components\n"
        "For each component from Step 1 output a label line **Name:** followed by a standalone ASCII block "
        "in a fenced code block. Use only characters from the symbol library, contain no words, and reflect "
        "the component's function and features.\n\n"
        "Symbol Library\n"
        f"{symbols}\n\n"
        "Output Format\n"
        "## Components\n"
        "## Constraints\n"
        "## Component Tiles\n\n"
        "Do not generate or describe the final assembled layout."
    )
    user_prompt = (
        f"Generate a detailed specification for a {kind} structure using the DSL format described above. "
        "Focus on modular, well-defined components with clear spatial relationships. "
        "Ensure all constraints use proper DSL syntax and that ASCII tiles are detailed and distinctive. "
        "Return only the structured output with Components, Constraints, and Component Tiles sections."
    )
    return system_prompt, user_prompt


class StructureGenerator:
    """Synchronous chat-completions client with retry and exponential backoff."""

    def __init__(
        self,
        client: Optional[Any] = None,
        *,
        model: Optional[str] = None,
        max_retries: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.model = model or CFG.LLM_MODEL
        self.max_retries = max(1, int(max_retries if max_retries is not None else CFG.LLM_MAX_RETRIES))
        self._sleep = sleep
        self.stats: Dict[str, int] = {"calls": 0, "errors": 0, "retries": 0}
        if client is None:
            if not CFG.OPENAI_API_KEY:
                raise LLMError("OPENAI_API_KEY is not set")
            client = OpenAI(api_key=CFG.OPENAI_API_KEY, base_url=CFG.LLM_BASE_URL or None)
        self.client = client

    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=CFG.LLM_TEMPERATURE,
            max_tokens=CFG.LLM_MAX_TOKENS,
        )
        self.stats["calls"] += 1
        content = completion.choices[0].message.content
        if not content or not content.strip():
            raise LLMError("model returned an empty response")
        return content

    def generate(self, structure_type: str) -> str:
        system_prompt, user_prompt = build_prompts(structure_type)
        for attempt in range(self.max_retries):
            try:
                return self._complete(system_prompt, user_prompt)
            except (OpenAIError, LLMError, ConnectionError, TimeoutError) as e:
                self.stats["errors"] += 1
                logger.warning("LLM call failed (attempt %d/%d): %s", attempt + 1, self.max_retries, e)
                if attempt == self.max_retries - 1:
                    raise LLMError(f"structure generation failed after {self.max_retries} attempts: {e}") from e
                self.stats["retries"] += 1
                # Exponential backoff before retrying
                self._sleep(2 ** attempt)
        raise LLMError("structure generation failed")


def generate_structure_text(structure_type: str, client: Optional[Any] = None, **kwargs: Any) -> str:
    return StructureGenerator(client, **kwargs).generate(structure_type)


__all__ = [
    "LLMError",
    "STRUCTURE_TYPES",
    "SYMBOL_LIBRARY",
    "StructureGenerator",
    "build_prompts",
    "generate_structure_text",
]
