import pytest

from services.monitor import RetrievalMonitor


@pytest.fixture
def monitor():
    return RetrievalMonitor(capacity=50, low_quality_threshold=0.5)
