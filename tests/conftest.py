"""
Academy API test fixtures

The app runs in-process behind httpx.ASGITransport. MongoDB is an in-memory
mongomock database, Redis a fakeredis server, and the identity provider an
InMemoryIdp; no live service is needed.
"""
import os
import uuid

# Settings are read once per process, so the environment is fixed before any
# academy module is imported.
os.environ.update({
    "MONGODB_URI": "mongodb://localhost:27017/academy_test",
    "CLERK_SECRET_KEY": "sk_test_academy",
    "CLERK_JWT_KEY": "test-session-signing-key",
    "CLERK_JWT_ALGORITHM": "HS256",
    "CLERK_AUTHORIZED_PARTIES": "",
    "ALLOWED_ORIGINS": "http://localhost:5173,https://academy.example.org",
    "METRICS_ENABLED": "false",
    "ROLE_CACHE_TTL_SECONDS": "60",
    "LOG_LEVEL": "WARNING",
})

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from bson import ObjectId  # noqa: E402
from fakeredis import FakeServer  # noqa: E402
from fakeredis.aioredis import FakeRedis  # noqa: E402
from httpx import ASGITransport  # noqa: E402
from jose import jwt  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from academy.api.deps import get_idp  # noqa: E402
from academy.core.errors import SubjectNotFound, UpstreamError  # noqa: E402
from academy.core.redis_client import set_redis  # noqa: E402
from academy.db import connection  # noqa: E402
from academy.db.connection import CLASSES, USERS  # noqa: E402
from academy.main import create_app  # noqa: E402
from academy.models.user import new_user_document  # noqa: E402
from academy.services.idp_mirror import IdpEmailAddress  # noqa: E402

SIGNING_KEY = os.environ["CLERK_JWT_KEY"]


# ─── Identity provider fake ────────────────────────────────────────────────────
class InMemoryIdp:
    """Subjects and their email addresses; failures are switched on per call kind."""

    def __init__(self):
        self.addresses: dict[str, list[IdpEmailAddress]] = {}
        self.primary: dict[str, str] = {}
        self.deleted: list[str] = []
        self.fail_add = False
        self.fail_delete_address = False
        self.fail_delete_subject = False

    def register(self, subject_id: str, email: str) -> None:
        self.addresses[subject_id] = [IdpEmailAddress(id=f"idn_{uuid.uuid4().hex[:8]}", email_address=email)]
        self.primary[subject_id] = email

    def emails(self, subject_id: str) -> list[str]:
        return [a.email_address for a in self.addresses.get(subject_id, [])]

    async def add_primary_email(self, subject_id: str, email: str) -> None:
        if self.fail_add:
            raise UpstreamError("IdP POST /email_addresses answered 422")
        if subject_id not in self.addresses:
            raise SubjectNotFound(subject_id)
        self.addresses[subject_id].append(IdpEmailAddress(id=f"idn_{uuid.uuid4().hex[:8]}", email_address=email))
        self.primary[subject_id] = email

    async def list_email_addresses(self, subject_id: str) -> list[IdpEmailAddress]:
        if subject_id not in self.addresses:
            raise SubjectNotFound(subject_id)
        return list(self.addresses[subject_id])

    async def delete_email_address(self, email_id: str) -> None:
        if self.fail_delete_address:
            raise UpstreamError("IdP DELETE /email_addresses answered 503")
        for subject_id, addresses in self.addresses.items():
            self.addresses[subject_id] = [a for a in addresses if a.id != email_id]

    async def delete_subject(self, subject_id: str) -> None:
        if self.fail_delete_subject:
            raise UpstreamError("IdP DELETE /users answered 503")
        if subject_id not in self.addresses:
            raise SubjectNotFound(subject_id)
        del self.addresses[subject_id]
        self.primary.pop(subject_id, None)
        self.deleted.append(subject_id)


# ─── Helpers ───────────────────────────────────────────────────────────────────
def session_token(subject_id: str, **claims) -> str:
    return jwt.encode({"sub": subject_id, "sid": "sess_test", **claims}, SIGNING_KEY, algorithm="HS256")


def bearer(subject_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {session_token(subject_id)}"}


async def insert_user(db, *, first="Ada", last="Lovelace", email=None, privilege="student",
                      idp_id=None, whatsapp="+900000000", enrolled=None) -> dict:
    idp_id = idp_id or f"user_{uuid.uuid4().hex[:10]}"
    doc = new_user_document(
        first_name=first,
        last_name=last,
        email=email or f"{idp_id}@example.org",
        idp_id=idp_id,
        whatsapp=whatsapp,
        privilege=privilege,
    )
    doc["enrolledClasses"] = list(enrolled or [])
    doc["_id"] = (await db[USERS].insert_one(doc)).inserted_id
    return doc


async def insert_class(db, *, level=1, age_group="Adults", instructor="Selin Kaya", is_open=True,
                       roster=None, schedule=None, link="https://meet.example.org/room") -> dict:
    doc = {
        "level": level,
        "ageGroup": age_group,
        "instructor": instructor,
        "schedule": schedule if schedule is not None else [
            {"day": "Monday", "startTime": "18:00", "endTime": "19:30"},
        ],
        "isEnrollmentOpen": is_open,
        "image": "level1.png",
        "link": link,
        "roster": list(roster or []),
    }
    doc["_id"] = (await db[CLASSES].insert_one(doc)).inserted_id
    return doc


def new_id() -> str:
    return str(ObjectId())


# ─── Fixtures ──────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["academy_test"]
    await connection.ensure_indexes(database)
    connection.install(database, client)
    yield database
    connection.reset()


@pytest_asyncio.fixture
async def redis_client():
    client = FakeRedis(server=FakeServer(), decode_responses=True)
    set_redis(client)
    yield client
    set_redis(None)
    await client.aclose()


@pytest.fixture
def idp():
    return InMemoryIdp()


@pytest.fixture
def app(db, redis_client, idp):
    application = create_app()
    application.dependency_overrides[get_idp] = lambda: idp
    return application


@pytest_asyncio.fixture
async def client(app):
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def admin(db, idp):
    user = await insert_user(db, first="Grace", last="Hopper", privilege="admin", idp_id="user_admin")
    idp.register(user["idpId"], user["email"])
    return user


@pytest_asyncio.fixture
async def student(db, idp):
    user = await insert_user(db, first="Alan", last="Turing", idp_id="user_student", whatsapp="+905551234567")
    idp.register(user["idpId"], user["email"])
    return user
