import pytest

from streaming import services
from streaming.tasks import TranscodeOrchestrator

from tests.fakes import FakeEncoder, FakeStore, ImmediateExecutor


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def orchestrator(store, encoder, tmp_path):
    orch = TranscodeOrchestrator(
        store,
        encoder,
        executor=ImmediateExecutor(),
        segment_seconds=10,
        scratch_dir=str(tmp_path),
    )
    yield orch
    orch.shutdown()


@pytest.fixture(autouse=True)
def _reset_services():
    services.reset()
    yield
    services.reset()
