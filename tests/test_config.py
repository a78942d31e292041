"""Environment driven configuration."""
import os

from xunused.config import Config


def test_defaults(monkeypatch, tmp_path):
    for name in ("XUNUSED_JOBS", "XUNUSED_SYSTEM_DIRS", "XUNUSED_DEBUG", "XUNUSED_EXCLUDED_DIRS"):
        monkeypatch.delenv(name, raising=False)
    config = Config(tmp_path / ".env")

    assert config.jobs == (os.cpu_count() or 1)
    assert config.system_dirs == []
    assert config.debug is False
    assert config.excluded_dirs == []


def test_environment_values(monkeypatch, tmp_path):
    monkeypatch.setenv("XUNUSED_JOBS", "3")
    monkeypatch.setenv("XUNUSED_SYSTEM_DIRS", os.pathsep.join(["/opt/sdk/include", "/opt/qt"]))
    monkeypatch.setenv("XUNUSED_DEBUG", "yes")
    monkeypatch.setenv("XUNUSED_EXCLUDED_DIRS", "generated, legacy ,")
    config = Config(tmp_path / ".env")

    assert config.jobs == 3
    assert config.system_dirs == ["/opt/sdk/include", "/opt/qt"]
    assert config.debug is True
    assert config.excluded_dirs == ["generated", "legacy"]


def test_invalid_jobs_fall_back_to_cpu_count(monkeypatch, tmp_path):
    monkeypatch.setenv("XUNUSED_JOBS", "many")
    assert Config(tmp_path / ".env").jobs == (os.cpu_count() or 1)


def test_dotenv_file(monkeypatch, tmp_path):
    # Registered as unset so the value loaded from the file is removed afterwards
    monkeypatch.delenv("XUNUSED_JOBS", raising=False)
    env = tmp_path / ".env"
    env.write_text("XUNUSED_JOBS=5\n")
    assert Config(env).jobs == 5
