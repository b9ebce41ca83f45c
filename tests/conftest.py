import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path to allow `import models`, `import services`, etc.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from connectors.document_store import InMemoryDocumentStore  # noqa: E402
from services.app_context import AppContext  # noqa: E402


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def context(store) -> AppContext:
    """Fully wired services over an empty in-memory store."""
    return AppContext.build(store=store)
