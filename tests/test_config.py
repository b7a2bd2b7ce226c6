from config import Settings


def test_defaults(monkeypatch):
    for name in ("HOST", "PORT", "NIM_API_BASE", "NIM_API_KEY", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.PORT == 10000
    assert settings.NIM_API_BASE == "https://integrate.api.nvidia.com/v1"
    assert settings.NIM_API_KEY is None
    assert settings.api_configured is False


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("NIM_API_KEY", "nvapi-secret")
    monkeypatch.setenv("NIM_API_BASE", "http://localhost:8000/v1")

    settings = Settings(_env_file=None)

    assert settings.PORT == 8080
    assert settings.NIM_API_BASE == "http://localhost:8000/v1"
    assert settings.api_configured is True


def test_empty_key_is_not_configured():
    assert Settings(_env_file=None, NIM_API_KEY="").api_configured is False
