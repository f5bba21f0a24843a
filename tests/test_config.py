from pathlib import Path
from navia.config import load_settings

def test_safe_defaults():
    s = load_settings(config=str(Path("config")), profile="safe")
    assert s.general.profile == "safe"
    assert s.agent.max_iterations == 20
    assert s.agent.context_window == 10
    assert s.agent.wait_ms == 3000
    assert s.browser.headless is True
    assert s.tools.timeout_sec == 10
    assert s.llm.model == "dummy"
    assert s.memory.audit_chain_path == ""

def test_danger_widens_iterations():
    s = load_settings(config=str(Path("config")), profile="danger")
    assert s.agent.max_iterations == 50
    assert s.browser.headless is False
    assert s.memory.audit_chain_path.endswith("memory.chain.jsonl")

def test_cli_overrides_apply():
    s = load_settings(config=str(Path("config")), profile="safe",
                      overrides={"max_iterations": 3, "iteration_delay_ms": None, "log_dir": "tmp/logs"})
    assert s.agent.max_iterations == 3
    assert s.agent.iteration_delay_ms == 1000
    assert s.general.log_dir == "tmp/logs"

def test_env_secret_and_missing_dir(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("NAVIA_CHAIN_SECRET", "from-env")
    s = load_settings(config=str(tmp_path / "nowhere"), profile="balanced")
    assert s.security.chain_secret == "from-env"
    assert s.general.profile == "balanced"
    assert s.agent.max_iterations == 20
