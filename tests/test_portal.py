import json
import re
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mentorlink.config import Settings
from mentorlink.database import Database
from mentorlink.models import Role
from mentorlink.portal import create_app


JUNIOR = "a@srec.ac.in"
SENIOR = "b@srec.ac.in"
PASSWORD = "super-secret-password"


class RecordingOutbox:
    def __init__(self) -> None:
        self.notifications = []

    def enqueue(self, notification) -> bool:
        self.notifications.append(notification)
        return True


@pytest.fixture()
def database(tmp_path):
    db = Database(tmp_path / "data")
    db.initialize()
    return db


@pytest.fixture()
def outbox():
    return RecordingOutbox()


@pytest.fixture()
def client(tmp_path, database, outbox):
    settings = Settings(data_dir=tmp_path / "data", session_secret="tests-secret")
    app = create_app(database=database, settings=settings, outbox=outbox)
    with TestClient(app) as test_client:
        yield test_client


def _login(client, email, password=PASSWORD):
    response = client.post(
        "/login",
        data={"email": email, "password": password},
        follow_redirects=False,
    )
    assert response.status_code == 303
    return response


def _dashboard_user(client):
    response = client.get("/dashboard")
    assert response.status_code == 200
    match = re.search(
        r"<script id=\"user-data\" type=\"application/json\">(.*?)</script>",
        response.text,
        re.DOTALL,
    )
    assert match is not None
    return json.loads(match.group(1))


def test_create_app_requires_session_secret(tmp_path, database):
    with pytest.raises(RuntimeError):
        create_app(database=database, settings=Settings(data_dir=tmp_path))


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.text == "MentorLink is running"


def test_register_then_login_redirects_to_dashboard(client, database):
    response = client.post(
        "/register",
        data={
            "name": "Asha",
            "email": JUNIOR,
            "password": PASSWORD,
            "role": "junior",
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"].endswith("/login")

    stored = database.get_user(JUNIOR)
    assert stored is not None
    assert stored.password_hash != PASSWORD

    login = _login(client, JUNIOR)
    assert login.headers["location"].endswith("/dashboard")
    assert client.get("/dashboard", follow_redirects=False).status_code == 200


def test_register_rejects_non_institutional_domain(client, database):
    response = client.post(
        "/register",
        data={"name": "Out", "email": "out@gmail.com", "password": PASSWORD, "role": "junior"},
        follow_redirects=False,
    )
    assert response.status_code == 400
    assert "institutional" in response.text
    assert database.get_user("out@gmail.com") is None


def test_register_rejects_duplicate_email(client, database):
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    response = client.post(
        "/register",
        data={"name": "Asha", "email": JUNIOR.upper(), "password": PASSWORD, "role": "junior"},
        follow_redirects=False,
    )
    assert response.status_code == 409
    assert "already exists" in response.text


def test_register_rejects_unknown_role_and_short_password(client):
    bad_role = client.post(
        "/register",
        data={"name": "X", "email": "x@srec.ac.in", "password": PASSWORD, "role": "admin"},
    )
    assert bad_role.status_code == 400

    short = client.post(
        "/register",
        data={"name": "X", "email": "x@srec.ac.in", "password": "short", "role": "junior"},
    )
    assert short.status_code == 400


def test_invalid_login_returns_to_form_with_error(client, database):
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    response = client.post(
        "/login",
        data={"email": JUNIOR, "password": "wrong-password"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"].endswith("/login")
    assert "Invalid email or password." in client.get("/login").text


def test_dashboard_requires_login(client):
    response = client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"].endswith("/login")


def test_interest_selection_matches_senior(client, database, outbox):
    database.create_user("Bala", SENIOR, PASSWORD, Role.SENIOR, ["ml", "ai"])
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)

    response = client.post(
        "/select-interest",
        data={"email": JUNIOR, "interest": "ml"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"].endswith("/dashboard")

    user = _dashboard_user(client)
    assert user["assignedMentors"] == [SENIOR]
    assert user["interests"] == ["ml"]
    assert "passwordHash" not in user
    assert [n.to for n in outbox.notifications] == [SENIOR]
    assert database.get_user(SENIOR).assigned_juniors == [JUNIOR]


def test_interest_selection_without_match(client, database, outbox):
    database.create_user("Bala", SENIOR, PASSWORD, Role.SENIOR, ["ml"])
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)

    response = client.post(
        "/select-interest",
        data={"email": JUNIOR, "interest": "rust"},
        follow_redirects=False,
    )
    assert response.status_code == 303

    user = _dashboard_user(client)
    assert user["assignedMentors"] == []
    assert outbox.notifications == []


def test_interest_selection_flashes_outcome(client, database):
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)

    response = client.post("/select-interest", data={"email": JUNIOR, "interest": "rust"})

    assert response.status_code == 200
    assert "No senior currently covers" in response.text


def test_cannot_act_for_another_user(client, database):
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    database.create_user("Chitra", "c@srec.ac.in", PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)

    response = client.post(
        "/select-interest",
        data={"email": "c@srec.ac.in", "interest": "ml"},
        follow_redirects=False,
    )
    assert response.status_code == 403
    assert client.get("/dashboard?email=c@srec.ac.in").status_code == 403


def test_senior_edits_interests(client, database):
    database.create_user("Bala", SENIOR, PASSWORD, Role.SENIOR, ["ml"])
    _login(client, SENIOR)

    response = client.post(
        "/edit-interests",
        data={"email": SENIOR, "interests": "web, ml, dsa"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert database.get_user(SENIOR).interests == ["web", "ml", "dsa"]


def test_junior_cannot_edit_interests(client, database):
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)

    response = client.post("/edit-interests", data={"email": JUNIOR, "interests": "ml"})
    assert response.status_code == 400


def test_feedback_form_requires_parameters(client, database):
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)

    response = client.get("/feedback", params={"senior": SENIOR})
    assert response.status_code == 400
    assert response.text == "Missing parameters."


def test_feedback_submission_is_stored(client, database):
    database.create_user("Bala", SENIOR, PASSWORD, Role.SENIOR, ["ml"])
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)
    client.post("/select-interest", data={"email": JUNIOR, "interest": "ml"})

    form = client.get("/feedback", params={"senior": SENIOR, "junior": JUNIOR})
    assert form.status_code == 200

    response = client.post(
        "/submit-feedback",
        data={"seniorEmail": SENIOR, "juniorEmail": JUNIOR, "rating": "4", "comments": "Helpful"},
    )
    assert response.status_code == 200
    assert response.text == "Feedback saved successfully"

    records = database.list_feedback()
    assert len(records) == 1
    assert records[0].rating == 4
    assert records[0].submitted_by == JUNIOR
    stored = json.loads((database.path / "feedback.json").read_text(encoding="utf-8"))
    assert stored[0]["seniorEmail"] == SENIOR


def test_feedback_rejects_out_of_range_rating(client, database):
    database.create_user("Bala", SENIOR, PASSWORD, Role.SENIOR, ["ml"])
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)
    client.post("/select-interest", data={"email": JUNIOR, "interest": "ml"})

    response = client.post(
        "/submit-feedback",
        data={"seniorEmail": SENIOR, "juniorEmail": JUNIOR, "rating": "9", "comments": ""},
    )
    assert response.status_code == 400
    assert database.list_feedback() == []


def test_feedback_requires_a_matched_pair_in_the_right_roles(client, database):
    database.create_user("Bala", SENIOR, PASSWORD, Role.SENIOR, ["ml"])
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)

    unlinked = client.post(
        "/submit-feedback",
        data={"seniorEmail": SENIOR, "juniorEmail": JUNIOR, "rating": "5", "comments": ""},
    )
    assert unlinked.status_code == 403
    assert client.get("/feedback", params={"senior": SENIOR, "junior": JUNIOR}).status_code == 403

    client.post("/select-interest", data={"email": JUNIOR, "interest": "ml"})
    swapped = client.post(
        "/submit-feedback",
        data={"seniorEmail": JUNIOR, "juniorEmail": SENIOR, "rating": "5", "comments": ""},
    )
    assert swapped.status_code == 403
    assert database.list_feedback() == []


def test_chat_page_only_for_matched_pair(client, database):
    database.create_user("Bala", SENIOR, PASSWORD, Role.SENIOR, ["ml"])
    database.create_user("Asha", JUNIOR, PASSWORD, Role.JUNIOR)
    _login(client, JUNIOR)

    before = client.get("/chat", params={"junior": JUNIOR, "senior": SENIOR})
    assert before.status_code == 403

    client.post("/select-interest", data={"email": JUNIOR, "interest": "ml"})
    after = client.get("/chat", params={"junior": JUNIOR, "senior": SENIOR})
    assert after.status_code == 200
    assert "joinRoom" in after.text
