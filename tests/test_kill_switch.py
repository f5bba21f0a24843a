from pathlib import Path
import pytest

from navia.security.kill import KillSwitchEngaged, check_kill, engage_kill

def test_kill_file_blocks(tmp_path: Path):
    path = str(tmp_path / "kill")
    check_kill(path)  # absent : rien
    p = engage_kill(path)
    assert p.read_text(encoding="utf-8") == "KILLED"
    with pytest.raises(KillSwitchEngaged):
        check_kill(path)
