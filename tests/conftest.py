"""Shared pytest fixtures for Cozy Connect tests."""
import pytest
from fastapi.testclient import TestClient

from app.services.feedback_service import FeedbackService
from app.services.linking_service import LinkingService
from app.services.match_service import MatchService
from app.services.profile_gateway import ProfileFields, ProfileGateway
from app.store.memory import InMemoryRecordStore

PROFILES_TABLE = "tblProfiles"
MATCHES_TABLE = "tblMatches"
FEEDBACK_TABLE = "tblFeedback"


def profile_fields(name, linking_email=None, **extra):
    """Minimal complete profile row in store column names."""
    fields = {
        ProfileFields.NAME: name,
        ProfileFields.SHORT_INTRO: f"Hi, I am {name}",
        ProfileFields.CATEGORIES: ["Engineering"],
        ProfileFields.LOOKING_FOR: "Co-founders",
        ProfileFields.CAN_OFFER: "Code reviews",
        ProfileFields.PICTURE: [{"url": f"https://img.example.com/{name}.png", "filename": f"{name}.png"}],
    }
    if linking_email:
        fields[ProfileFields.EMAIL] = linking_email
        fields[ProfileFields.LINKING_EMAIL] = linking_email
    fields.update(extra)
    return fields


@pytest.fixture
def store():
    """In-memory store seeded with three profiles.

    p1 (Alice) and p2 (Bob) are linked to Google accounts; p3 (Carol) is an
    unclaimed, pre-seeded profile holding a verification code.
    """
    s = InMemoryRecordStore(last_modified_field=ProfileFields.LAST_MODIFIED)
    s.seed(PROFILES_TABLE, "p1", profile_fields("Alice", "alice@example.com"))
    s.seed(PROFILES_TABLE, "p2", profile_fields("Bob", "bob@example.com"))
    s.seed(
        PROFILES_TABLE,
        "p3",
        profile_fields("Carol", **{ProfileFields.VERIFICATION_CODE: "123456"}),
    )
    return s


@pytest.fixture
def gateway(store):
    return ProfileGateway(store, PROFILES_TABLE)


@pytest.fixture
def match_service(store, gateway):
    return MatchService(store, MATCHES_TABLE, gateway)


class FakeEmailService:
    """Records verification emails instead of sending them."""

    def __init__(self):
        self.sent = []

    async def send_verification_code(self, to, profile_name, code):
        self.sent.append({"to": to, "profile_name": profile_name, "code": code})
        return "msg_test"

    async def aclose(self):
        pass


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def linking_service(gateway, email_service):
    return LinkingService(gateway, email_service)


@pytest.fixture
def auth():
    """Mutable holder for the email the API treats as signed in."""
    return {"email": "alice@example.com"}


@pytest.fixture
def client(store, gateway, match_service, linking_service, email_service, auth):
    from app.api.deps import get_current_email, get_optional_email
    from app.errors import Unauthenticated
    from app.main import app

    app.state.store = store
    app.state.email = email_service
    app.state.profiles = gateway
    app.state.matches = match_service
    app.state.linking = linking_service
    app.state.feedback = FeedbackService(store, FEEDBACK_TABLE)

    async def fake_optional_email():
        return auth["email"]

    async def fake_current_email():
        if not auth["email"]:
            raise Unauthenticated("Not authenticated")
        return auth["email"]

    app.dependency_overrides[get_optional_email] = fake_optional_email
    app.dependency_overrides[get_current_email] = fake_current_email
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
