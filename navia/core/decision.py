from __future__ import annotations

import json
from textwrap import dedent
from typing import Iterable, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr
from pydantic import ValidationError as SchemaError

from .errors import ParseError
from .types import ActionKind, Decision, MemoryEntry, Tool, Unparseable

ParsedDecision = Union[Decision, Unparseable]

# Actions proposées au planner ("unknown" n'est qu'une variante interne)
PLANNER_ACTIONS = ("click", "type", "navigate", "scroll", "wait", "complete")


# ---------------------------------------------------------------------------
# Construction du prompt
# ---------------------------------------------------------------------------

def _memory_block(memories: Sequence[MemoryEntry]) -> str:
    if not memories:
        return "(no memory yet)"
    return "\n".join(f"[{m.type.value.upper()}] {m.content}" for m in memories)


def _tools_block(tools: Iterable[Tool]) -> str:
    lines = [f"- {t.name}: {t.description}" for t in tools]
    return "\n".join(lines) if lines else "(no tools available)"


def build_prompt(
    goal: str,
    iteration: int,
    max_iterations: int,
    memories: Sequence[MemoryEntry],
    tools: Iterable[Tool],
    *,
    page_title: str = "",
    page_url: str = "",
) -> str:
    """Prompt d'une itération : objectif, itération courante et plafond, mémoire récente, outils, schéma."""
    prompt = f"""
You are an autonomous web agent. Your goal is: "{goal}"

Current Context:
- Page Title: {page_title}
- URL: {page_url}
- Iteration: {iteration}/{max_iterations}

Recent Memory:
{_memory_block(memories)}

Available Tools:
{_tools_block(tools)}

Based on the current state and your goal, decide what action to take next.
Respond with a JSON object in this format:
{{
  "thought": "Your reasoning about what to do next",
  "action": "{'|'.join(PLANNER_ACTIONS)}",
  "target": "CSS selector or URL (for navigate)",
  "value": "text to type (for type action)",
  "tool": "tool name to use (optional)",
  "complete": true/false
}}

If you believe the goal has been achieved, set "complete": true.
Do not add any text before or after the JSON object.
"""
    return dedent(prompt).strip()


# ---------------------------------------------------------------------------
# Parsing strict de la réponse
# ---------------------------------------------------------------------------

class DecisionPayload(BaseModel):
    """Schéma filaire attendu du planner."""
    model_config = ConfigDict(extra="ignore")

    thought: StrictStr = ""
    action: Optional[StrictStr] = None
    target: Optional[StrictStr] = None
    value: Optional[StrictStr] = None
    tool: Optional[StrictStr] = None
    complete: StrictBool = False


def _strip_fences(text: str) -> str:
    s = text.strip()
    if s.startswith("```"):
        s = s.split("\n", 1)[1] if "\n" in s else ""
        if s.rstrip().endswith("```"):
            s = s.rstrip()[:-3]
    return s.strip()


def _load_json_object(text: str) -> object:
    s = _strip_fences(text)
    try:
        return json.loads(s)
    except json.JSONDecodeError:
        pass
    # On retombe sur le bloc principal (entre le premier '{' et le dernier '}')
    if "{" not in s or "}" not in s:
        raise ParseError("invalid JSON (no JSON object found)")
    try:
        return json.loads(s[s.index("{"):s.rindex("}") + 1])
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid JSON ({e.msg})") from e


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


def parse_decision(text: str) -> ParsedDecision:
    """
    Transforme le texte brut du planner en Decision, ou en Unparseable.
    Ne lève jamais : toute non-conformité devient une branche Unparseable.
    """
    raw = text if isinstance(text, str) else ""
    if not raw.strip():
        return Unparseable("empty response", raw)

    try:
        obj = _load_json_object(raw)
    except ParseError as e:
        return Unparseable(str(e), raw)

    if not isinstance(obj, dict):
        return Unparseable(f"expected a JSON object, got {type(obj).__name__}", raw)

    try:
        payload = DecisionPayload.model_validate(obj)
    except SchemaError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        return Unparseable(f"schema mismatch ({problems})", raw)

    action_name = _blank_to_none(payload.action)
    raw_action: Optional[str] = None
    if action_name is None:
        action = ActionKind.COMPLETE if payload.complete else ActionKind.UNKNOWN
    elif action_name.lower() in PLANNER_ACTIONS:
        action = ActionKind(action_name.lower())
    else:
        action = ActionKind.UNKNOWN
        raw_action = action_name

    return Decision(
        thought=payload.thought.strip(),
        action=action,
        target=_blank_to_none(payload.target),
        value=payload.value if payload.value else None,
        tool=_blank_to_none(payload.tool),
        complete=payload.complete,
        raw_action=raw_action,
    )
