import subprocess
from pathlib import Path

import pytest

from ayah_reels.core.errors import UpstreamError
from ayah_reels.services import probe_service
from ayah_reels.services.probe_service import DurationProber


def _fake_run(stdout="", returncode=0, stderr=""):
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        if returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, output=stdout, stderr=stderr)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    return run, calls


def test_probe_reads_container_duration(monkeypatch):
    run, calls = _fake_run('{"format": {"duration": "6.582857"}}')
    monkeypatch.setattr(probe_service.subprocess, "run", run)

    assert DurationProber().probe(Path("audio_1.mp3")) == pytest.approx(6.582857)
    assert calls[0][0] == "ffprobe"
    assert "format=duration" in calls[0]
    assert calls[0][-1] == "audio_1.mp3"


def test_probe_failure_is_upstream_error(monkeypatch):
    run, _ = _fake_run(returncode=1, stderr="audio_1.mp3: Invalid data found when processing input")
    monkeypatch.setattr(probe_service.subprocess, "run", run)

    with pytest.raises(UpstreamError) as excinfo:
        DurationProber().probe(Path("audio_1.mp3"))
    assert excinfo.value.service == "ffprobe"
    assert "Invalid data" in str(excinfo.value)


@pytest.mark.parametrize("stdout", ["", "{}", '{"format": {}}', '{"format": {"duration": "N/A"}}', '{"format": {"duration": "0"}}'])
def test_probe_rejects_unusable_metadata(monkeypatch, stdout):
    run, _ = _fake_run(stdout)
    monkeypatch.setattr(probe_service.subprocess, "run", run)

    with pytest.raises(UpstreamError):
        DurationProber().probe(Path("audio_1.mp3"))


def test_probe_missing_binary(monkeypatch):
    def run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(probe_service.subprocess, "run", run)
    with pytest.raises(UpstreamError):
        DurationProber().probe(Path("audio_1.mp3"))
