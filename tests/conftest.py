"""Shared fixtures: in-memory repositories, local storage and call factories."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

_LOG_DIR = Path(tempfile.mkdtemp(prefix="callcoach-logs-"))

# Settings are read once at import time, so the environment is fixed up first.
os.environ["DB_URL"] = "memory://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_FILE"] = str(_LOG_DIR / "app.log")
os.environ["PIPELINE_LOG_FILE"] = str(_LOG_DIR / "pipeline.log")
os.environ["NOTIFY_BACKEND"] = "memory"
for name in ("OLLAMA_URL", "OLLAMA_HOST", "HUGGINGFACE_API_KEY"):
    os.environ.pop(name, None)

from callcoach.application.interfaces import Repositories  # noqa: E402
from callcoach.config.settings import StorageConfig  # noqa: E402
from callcoach.domain.models import (  # noqa: E402
    AnalysisRecord,
    CallRecord,
    CallStatus,
    CoachingRecord,
)
from callcoach.infrastructure.persistence.memory import create_memory_repositories  # noqa: E402
from callcoach.services.coaching_templates import generate_detailed_coaching  # noqa: E402
from callcoach.services.notifications import InMemoryEventBus  # noqa: E402
from callcoach.services.providers.mock import MOCK_ANALYSIS, MOCK_TRANSCRIPT  # noqa: E402
from callcoach.services.storage import AudioStorage  # noqa: E402

OWNER = "agent-42"


@pytest.fixture
def repositories() -> Repositories:
    return create_memory_repositories()


@pytest.fixture
def storage(tmp_path: Path) -> AudioStorage:
    return AudioStorage(StorageConfig(backend="local", local_dir=str(tmp_path / "calls")))


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus(history_size=50)


def make_call(
    *,
    status: CallStatus = CallStatus.UPLOADED,
    transcript: Optional[str] = None,
    user_id: str = OWNER,
    storage_ref: str = "missing.wav",
) -> CallRecord:
    return CallRecord(
        user_id=user_id,
        storage_ref=storage_ref,
        file_name="call-test.wav",
        original_name="call.wav",
        file_size=4,
        mime_type="audio/wav",
        status=status,
        transcript=transcript,
    )


def make_analysis(call: CallRecord, **overrides: Any) -> AnalysisRecord:
    data: dict[str, Any] = {**MOCK_ANALYSIS, **overrides}
    data.update(callId=call.id, userId=call.user_id)
    return AnalysisRecord.model_validate(data)


def make_coaching(analysis: AnalysisRecord, **overrides: Any) -> CoachingRecord:
    data = generate_detailed_coaching(analysis, "mock")
    data.update(overrides)
    data.update(
        analysisId=analysis.id,
        callId=analysis.call_id,
        userId=analysis.user_id,
    )
    return CoachingRecord.model_validate(data)


__all__ = ["MOCK_TRANSCRIPT", "OWNER", "make_analysis", "make_call", "make_coaching"]
