"""
Pytest configuration.

Adds the project root to the Python path so tests can import domain,
repositories and services, and provides shared in-memory collaborators.
"""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import InMemoryBillingRecordStore, InMemoryInvoiceStore, InMemoryWorkQueue  # noqa: E402
from services.settings import PipelineSettings  # noqa: E402


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(receive_wait_seconds=0)


@pytest.fixture
def record_store() -> InMemoryBillingRecordStore:
    return InMemoryBillingRecordStore()


@pytest.fixture
def invoice_store() -> InMemoryInvoiceStore:
    return InMemoryInvoiceStore()


@pytest.fixture
def queue() -> InMemoryWorkQueue:
    return InMemoryWorkQueue()
