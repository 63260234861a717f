import os
import tempfile

# Settings, the engine and the upload stores are built at import time, so the
# environment has to point at a throwaway location before circulerp is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="circulerp-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/test.db"
os.environ["UPLOADS_PATH"] = os.path.join(_TMP_DIR, "uploads")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("BREVO_API_KEY", None)
os.environ.pop("ANTHROPIC_API_KEY", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from circulerp.database import AsyncSessionLocal, Base, engine, init_db  # noqa: E402
from circulerp.main import app  # noqa: E402
from circulerp.models.user import User  # noqa: E402
from circulerp.services import fx_service  # noqa: E402
from circulerp.services.auth_service import create_access_token  # noqa: E402
from circulerp.services.template_store import template_store  # noqa: E402


@pytest.fixture
async def db_setup():
    """Fresh schema (plus the seeded admin) for every test."""
    await init_db()
    yield
    template_store.delete()
    fx_service.clear_cache()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session(db_setup):
    async with AsyncSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_setup):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def admin_token(db_setup):
    async with AsyncSessionLocal() as session:
        admin = (await session.execute(select(User).where(User.username == "admin"))).scalar_one()
    return create_access_token(
        user_id=admin.id,
        username=admin.username,
        role=admin.role,
        display_name=admin.display_name,
    )


@pytest.fixture
def auth_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}
