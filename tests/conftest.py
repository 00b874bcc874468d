import contextlib
from typing import Dict, Any, List, Optional

import pytest

from docchat.db.vector_store import VectorMatch
from docchat.main import create_app

DIM = 384


def unit_vector(index: int = 0, dim: int = DIM) -> List[float]:
    vec = [0.0] * dim
    vec[index % dim] = 1.0
    return vec


def make_match(
    id: str,
    score: float,
    text: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> VectorMatch:
    return VectorMatch(id=id, score=score, text=text, metadata=metadata or {})


@pytest.fixture
def app():
    """
    Fresh application whose lifespan does not touch the database.
    Collaborators are supplied through `app.dependency_overrides`.
    """
    @contextlib.asynccontextmanager
    async def mock_lifespan(app):
        yield

    application = create_app()
    application.router.lifespan_context = mock_lifespan
    yield application
    application.dependency_overrides = {}
