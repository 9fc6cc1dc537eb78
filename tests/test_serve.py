import pytest

from toolrelay import serve
from toolrelay.config import settings


@pytest.fixture(autouse=True)
def restore(monkeypatch):
    for name in ("HOST", "PORT", "LOG_LEVEL"):
        monkeypatch.setenv(name, str(getattr(settings, name)))
    saved = dict(settings.__dict__)
    yield
    settings.__dict__.update(saved)


def test_flags_are_passed_to_uvicorn(monkeypatch):
    calls = {}

    def fake_run(app, **kwargs):
        calls.update(kwargs)

    monkeypatch.setattr(serve.uvicorn, "run", fake_run)

    serve.main(["--host", "0.0.0.0", "--port", "3100", "--log-level", "warning"])

    assert calls["host"] == "0.0.0.0"
    assert calls["port"] == 3100
    assert calls["log_level"] == "warning"


def test_bind_failure_exits_non_zero(monkeypatch):
    def fake_run(app, **kwargs):
        raise OSError(98, "Address already in use")

    monkeypatch.setattr(serve.uvicorn, "run", fake_run)

    with pytest.raises(SystemExit) as exc:
        serve.main(["--port", "3000"])
    assert exc.value.code == 1


def test_invalid_configuration_exits_non_zero(monkeypatch):
    monkeypatch.setenv("SEND_TIMEOUT_SECONDS", "zero")

    with pytest.raises(SystemExit) as exc:
        serve.main([])
    assert exc.value.code == 1
