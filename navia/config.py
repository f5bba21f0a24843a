from __future__ import annotations
from dataclasses import dataclass, fields
from pathlib import Path
import tomllib, os

PROFILES = ["safe", "balanced", "danger"]

@dataclass
class General:
    profile: str = "safe"
    log_dir: str = "data/logs"
    kill_switch_path: str = "data/kill.switch"

@dataclass
class Agent:
    max_iterations: int = 20
    context_window: int = 10
    iteration_delay_ms: int = 1000
    click_settle_ms: int = 2000
    navigate_settle_ms: int = 3000
    wait_ms: int = 3000
    scroll_offset: int = 500
    ready_poll_ms: int = 100
    # vide = pas d'écriture des captures sur disque
    screenshot_dir: str = ""

@dataclass
class Browser:
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    timeout_ms: int = 30000

@dataclass
class LLM:
    model: str = "dummy"
    temperature: float = 0.7
    max_tokens: int = 1024
    timeout_sec: float = 120.0

@dataclass
class Tools:
    enabled: bool = True
    timeout_sec: float = 30.0
    seed_defaults: bool = True

@dataclass
class Memory:
    db_path: str = "data/memory.db"
    # vide = pas de miroir JSONL chaîné
    audit_chain_path: str = ""

@dataclass
class Security:
    chain_secret: str = ""

@dataclass
class Settings:
    general: General
    agent: Agent
    browser: Browser
    llm: LLM
    tools: Tools
    memory: Memory
    security: Security

def default_settings() -> Settings:
    return Settings(
        general=General(), agent=Agent(), browser=Browser(), llm=LLM(),
        tools=Tools(), memory=Memory(), security=Security(),
    )

def _load_toml_if_exists(path: Path) -> dict:
    if path.exists():
        with path.open("rb") as f:
            return tomllib.load(f)
    return {}

def _read_profile_toml(config_path: Path, profile: str) -> dict:
    """
    Cherche dans:
      - config/defaults.toml et config/<profile>.toml
      - puis fallback: config/profiles/defaults.toml et config/profiles/<profile>.toml
    """
    cfg_dir = config_path if config_path.is_dir() else config_path.parent

    data = _load_toml_if_exists(cfg_dir / "defaults.toml")
    if not data:
        data = _load_toml_if_exists(cfg_dir / "profiles" / "defaults.toml")

    prof = _load_toml_if_exists(cfg_dir / f"{profile}.toml")
    if not prof:
        prof = _load_toml_if_exists(cfg_dir / "profiles" / f"{profile}.toml")

    # Fusion superficielle defaults <- profil
    base = data or {}
    for k, v in prof.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k].update(v)
        else:
            base[k] = v
    return base

def _filter_for_dataclass(cls, data: dict) -> dict:
    """Ne garde que les clés connues du dataclass (évite TypeError sur clés en trop)."""
    allowed = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in allowed}

def load_settings(config: str | None, profile: str = "safe", overrides: dict | None = None) -> Settings:
    config_path = Path(config) if config else Path("config")
    raw = _read_profile_toml(config_path, profile)

    # Secret HMAC via env prioritaire
    if "security" not in raw:
        raw["security"] = {}
    env_secret = os.environ.get("NAVIA_CHAIN_SECRET")
    if env_secret:
        raw["security"]["chain_secret"] = env_secret

    g = General(**_filter_for_dataclass(General, raw.get("general")))
    a = Agent(**_filter_for_dataclass(Agent, raw.get("agent")))
    b = Browser(**_filter_for_dataclass(Browser, raw.get("browser")))
    l = LLM(**_filter_for_dataclass(LLM, raw.get("llm")))
    t = Tools(**_filter_for_dataclass(Tools, raw.get("tools")))
    mem = Memory(**_filter_for_dataclass(Memory, raw.get("memory")))
    s = Security(**_filter_for_dataclass(Security, raw.get("security")))
    g.profile = profile

    # Overrides CLI : clés de General puis d'Agent
    if overrides:
        for k, v in overrides.items():
            if v is None:
                continue
            if hasattr(g, k):
                setattr(g, k, v)
            elif hasattr(a, k):
                setattr(a, k, v)

    return Settings(general=g, agent=a, browser=b, llm=l, tools=t, memory=mem, security=s)
