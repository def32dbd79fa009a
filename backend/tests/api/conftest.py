"""HTTP-level fixtures.

The app runs in-process over ``httpx.ASGITransport``; request sessions come
from the test session factory and emails land in ``sent_emails``.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from sprintdesk.api.deps import get_email_sink
from sprintdesk.api.v1.auth import create_access_token
from sprintdesk.db.session import get_db_session
from sprintdesk.main import app


@pytest.fixture
async def client(test_session_factory, email_sink):
    async def _db_session():
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _db_session
    app.dependency_overrides[get_email_sink] = lambda: email_sink

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _headers
