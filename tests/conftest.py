"""
Pytest fixtures for Tunecast tests.

External collaborators (Google Drive, ffmpeg) are replaced by in-memory
fakes; persistence uses a real SQLite file per test.
"""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from tunecast.config import Settings
from tunecast.services.drive_client import (
    FOLDER_MIME_TYPE,
    DriveFile,
    DrivePage,
    UploadedFile,
)
from tunecast.services.encoder import EncoderConfig
from tunecast.services.job_store import JobStore


class FakeDrive:
    """Drive stand-in backed by a folder tree of DriveFile records."""

    def __init__(self, page_size: int = 2):
        self.files: Dict[str, DriveFile] = {}
        self.children: Dict[str, List[str]] = {}
        self.page_size = page_size
        self.downloads: List[str] = []
        self.uploads: List[dict] = []
        self.get_calls: List[str] = []
        self.fail_download: Optional[Exception] = None

    def add(self, file_id: str, name: str, parent: str, mime_type: str = "audio/mpeg") -> DriveFile:
        item = DriveFile(id=file_id, name=name, mime_type=mime_type, parents=[parent])
        self.files[file_id] = item
        self.children.setdefault(parent, []).append(file_id)
        return item

    def add_folder(self, folder_id: str, name: str, parent: str) -> DriveFile:
        return self.add(folder_id, name, parent, FOLDER_MIME_TYPE)

    async def list_children(self, folder_id: str, page_token: Optional[str] = None) -> DrivePage:
        ids = self.children.get(folder_id, [])
        start = int(page_token or 0)
        chunk = ids[start:start + self.page_size]
        next_token = str(start + self.page_size) if start + self.page_size < len(ids) else None
        return DrivePage(files=[self.files[i] for i in chunk], next_page_token=next_token)

    async def get(self, file_id: str) -> DriveFile:
        self.get_calls.append(file_id)
        return self.files[file_id]

    async def download(self, file_id: str, dest: Path) -> Path:
        if self.fail_download is not None:
            raise self.fail_download
        self.downloads.append(file_id)
        Path(dest).write_bytes(b"media:" + file_id.encode())
        return Path(dest)

    async def upload(self, folder_id: str, name: str, mime_type: str, path: Path) -> UploadedFile:
        assert Path(path).exists()
        self.uploads.append({"folder_id": folder_id, "name": name, "mime_type": mime_type})
        return UploadedFile(id=f"uploaded-{len(self.uploads)}", name=name)


class FakeEncoder:
    """Records encoder invocations and writes placeholder outputs."""

    def __init__(self, durations: Optional[Dict[str, float]] = None, default_duration: Optional[float] = 10.0):
        self.config = EncoderConfig()
        self.durations = durations or {}
        self.default_duration = default_duration
        self.calls: List[tuple] = []
        self.fail_step: Optional[str] = None

    def _touch(self, step: str, output: str):
        if self.fail_step == step:
            from tunecast.utils.exceptions import EncodeFailedError
            raise EncodeFailedError(step, 1, "boom")
        Path(output).write_bytes(step.encode())

    async def probe_duration(self, path: str) -> Optional[float]:
        self.calls.append(("probe", path))
        return self.durations.get(Path(path).name, self.default_duration)

    async def probe_audio_codec(self, path: str) -> Optional[str]:
        return "mp3"

    async def concat(self, inputs, output, list_path):
        self.calls.append(("concat", list(inputs), output))
        if all(Path(p).name in self.durations for p in inputs):
            self.durations[Path(output).name] = sum(self.durations[Path(p).name] for p in inputs)
        self._touch("concat", output)
        return output

    async def render_image_segment(self, image, seconds, output):
        self.calls.append(("segment", image, seconds, output))
        self._touch("segment", output)
        return output

    async def render_waveform(self, audio, output, filter_graph):
        self.calls.append(("waveform", audio, output, filter_graph))
        self._touch("waveform", output)
        return output

    async def mux(self, video, audio, output, copy_audio=False):
        self.calls.append(("mux", video, audio, output, copy_audio))
        self._touch("mux", output)
        return output

    def steps(self) -> List[str]:
        return [call[0] for call in self.calls if call[0] != "probe"]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        temp_dir=str(tmp_path / "temp"),
        data_dir=str(tmp_path / "data"),
        render_isolation=False,
        scheduler_enabled=False,
        instance_id="test-instance",
        sync_min_interval_seconds=300,
        trigger_cooldown_seconds=30,
    )


@pytest.fixture
def store(tmp_path) -> JobStore:
    return JobStore(str(tmp_path / "data" / "tunecast.db"))


@pytest.fixture
def fake_drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()
