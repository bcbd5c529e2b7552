import pytest

from ayah_reels.core.config import settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    fallback = tmp_path / "assets" / "default_background.mp4"
    fallback.parent.mkdir(parents=True)
    fallback.write_bytes(b"bundled-background")

    monkeypatch.setattr(settings, "temp_dir", tmp_path / "tmp")
    monkeypatch.setattr(settings, "outputs_dir", tmp_path / "outputs")
    monkeypatch.setattr(settings, "fonts_dir", tmp_path / "fonts")
    monkeypatch.setattr(settings, "fallback_background", fallback)
    monkeypatch.setattr(settings, "provider_base_url", "http://quran.test/v1")
    monkeypatch.setattr(settings, "progress_backend", "memory")
    monkeypatch.setattr(settings, "retry_initial_delay", 0.0)
    monkeypatch.setattr(settings, "retry_max_delay", 0.0)
    monkeypatch.setattr(settings, "cleanup_initial_delay", 0.0)
    monkeypatch.setattr(settings, "cleanup_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "poll_interval", 0.01)
    monkeypatch.setattr(settings, "poll_idle_timeout", 0.2)
    monkeypatch.setattr(settings, "verse_workers", 2)
    monkeypatch.setattr(settings, "vapid_private_key", None)
    return settings
