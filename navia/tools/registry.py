from __future__ import annotations

from textwrap import dedent
from typing import List, Optional

from ..core.errors import ConflictError, ValidationError
from ..core.types import Tool
from ..memory.db import MemoryDB
from .sandbox import validate_code

# Outils fournis d'office ; chacun lit son sélecteur dans context.target.
DEFAULT_TOOLS: list[Tool] = [
    Tool(
        name="screenshot",
        description="Takes a screenshot of the current page",
        category="browser",
        code=dedent('''
            def run(session, context):
                png = session.screenshot()
                context.add_memory(f"Screenshot taken: {len(png)} bytes", "action")
                return {"success": True, "bytes": len(png)}
        ''').strip(),
    ),
    Tool(
        name="scroll_to_element",
        description="Scrolls to the element matching the decision target selector",
        category="browser",
        code=dedent('''
            def run(session, context):
                selector = context.target
                if not selector:
                    raise ValueError("scroll_to_element needs a target selector")
                session.evaluate(
                    "document.querySelector(" + json.dumps(selector) + ")?.scrollIntoView({behavior: 'smooth'})"
                )
                context.add_memory(f"Scrolled to element: {selector}", "action")
                return {"success": True}
        ''').strip(),
    ),
    Tool(
        name="wait_for_element",
        description="Waits up to 5 seconds for the target selector to appear",
        category="browser",
        code=dedent('''
            def run(session, context):
                selector = context.target
                if not selector:
                    raise ValueError("wait_for_element needs a target selector")
                found = session.wait_for_selector(selector, 5000)
                if found:
                    context.add_memory(f"Element appeared: {selector}", "observation")
                else:
                    context.add_memory(f"Element did not appear: {selector}", "observation")
                return {"success": found}
        ''').strip(),
    ),
    Tool(
        name="extract_text",
        description="Extracts text content from elements matching the target selector",
        category="data",
        code=dedent('''
            def run(session, context):
                selector = context.target
                if not selector:
                    raise ValueError("extract_text needs a target selector")
                texts = session.evaluate(
                    "Array.from(document.querySelectorAll(" + json.dumps(selector) + "))"
                    ".map(el => el.textContent && el.textContent.trim()).filter(Boolean)"
                ) or []
                preview = "; ".join(str(t) for t in texts[:5])
                context.add_memory(f"Extracted {len(texts)} text elements from {selector}: {preview}", "observation")
                return {"success": True, "texts": texts}
        ''').strip(),
    ),
    Tool(
        name="check_element_exists",
        description="Checks if the target selector matches an element on the page",
        category="browser",
        code=dedent('''
            def run(session, context):
                selector = context.target
                if not selector:
                    raise ValueError("check_element_exists needs a target selector")
                exists = bool(session.evaluate("document.querySelector(" + json.dumps(selector) + ") !== null"))
                state = "exists" if exists else "does not exist"
                context.add_memory(f"Element {state}: {selector}", "observation")
                return {"success": True, "exists": exists}
        ''').strip(),
    ),
]


class ToolRegistry:
    """Résolution des outils nommés sur le catalogue du store."""

    def __init__(self, store: MemoryDB, *, seed_defaults: bool = True) -> None:
        self.store = store
        if seed_defaults:
            self.seed_defaults()

    def seed_defaults(self) -> int:
        """Insère les outils par défaut absents ; renvoie le nombre ajouté."""
        return sum(1 for t in DEFAULT_TOOLS if self.store.add_tool(t))

    def active_tools(self) -> List[Tool]:
        return self.store.list_active_tools()

    def resolve(self, name: str) -> Optional[Tool]:
        """L'outil actif de ce nom, sinon None (absent ou désactivé)."""
        tool = self.store.get_tool(name.strip()) if name else None
        if tool is None or not tool.active:
            return None
        return tool

    def register(self, name: str, description: str, code: str, *, category: str = "general",
                 version: str = "1.0.0", author: str = "user", active: bool = True) -> Tool:
        for label, v in (("name", name), ("description", description), ("code", code)):
            if not isinstance(v, str) or not v.strip():
                raise ValidationError(f"{label} is required and must be a non-empty string")
        ok, reason = validate_code(code, name)
        if not ok:
            raise ValidationError(f"invalid tool code: {reason}")
        tool = Tool(name=name.strip(), description=description.strip(), code=code,
                    category=category or "general", version=version or "1.0.0",
                    author=author or "user", active=active)
        if not self.store.add_tool(tool):
            raise ConflictError(f"A tool named {tool.name!r} already exists")
        return tool

    def set_active(self, name: str, active: bool) -> bool:
        return self.store.set_tool_active(name, active)
