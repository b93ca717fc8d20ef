import csv
import io
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from backend.server import CalendarService, app, get_service
from course_calendar.config import Settings

from tests.fakes import FakeCalendarClient

CSV_ROWS = [
    ["Course Listing", "Registration Status", "Instructor", "Meeting Patterns", "Start Date", "End Date"],
    [
        "CSE 4501 - Video Game Programming II - Fall 2025",
        "Registered",
        "Jane Doe",
        "Mon/Wed | 5:30 PM - 7:00 PM | RIDGLEY, Room 00016",
        "2025-01-13",
        "2025-05-02",
    ],
]

COURSE_JSON = {
    "id": 1,
    "title": "CSE 4501 - Video Game Programming II",
    "days": ["Monday", "Wednesday"],
    "startTime": "17:30:00",
    "endTime": "19:00:00",
    "location": "RIDGLEY, Room 00016",
    "instructor": "Jane Doe",
    "startDate": "2025-01-13",
    "endDate": "2025-05-02",
}


def csv_bytes(rows) -> bytes:
    buffer = io.StringIO()
    csv.writer(buffer).writerows(rows)
    return buffer.getvalue().encode("utf-8")


class FakeService(CalendarService):
    def __init__(self, config: Settings, client: FakeCalendarClient):
        super().__init__(config)
        self.client = client
        self.requested_users = []

    def client_for(self, user_id: str) -> FakeCalendarClient:
        self.requested_users.append(user_id)
        return self.client


class ServerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.settings = Settings(
            google_client_id=None,
            google_client_secret=None,
            token_dir=Path(self._tmp.name),
            max_upload_bytes=1024 * 1024,
            frontend_origins=("http://localhost:3000",),
        )
        self.fake = FakeCalendarClient()
        self.service = FakeService(self.settings, self.fake)
        app.dependency_overrides[get_service] = lambda: self.service
        self.addCleanup(app.dependency_overrides.clear)
        self.http = TestClient(app)


class TestHealthAndAuth(ServerTestCase):
    def test_health(self) -> None:
        response = self.http.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "OK")

    def test_auth_url_requires_configuration(self) -> None:
        response = self.http.get("/api/auth/google/url")
        self.assertEqual(response.status_code, 500)
        self.assertIn("not configured", response.json()["detail"])

    def test_auth_url_carries_user_as_state(self) -> None:
        self.settings.google_client_id = "client-123"
        self.settings.google_client_secret = "shh"
        response = self.http.get("/api/auth/google/url", headers={"X-User-Id": "u1"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("state=u1", response.json()["authUrl"])

    def test_status_and_disconnect(self) -> None:
        self.assertEqual(self.http.get("/api/auth/google/status").json(), {"authenticated": False})
        self.assertEqual(self.http.post("/api/auth/google/disconnect").json(), {"success": True})

    def test_callback_without_code_redirects_with_error(self) -> None:
        response = self.http.get("/auth/google/callback?error=access_denied", follow_redirects=False)
        self.assertIn(response.status_code, (302, 307))
        self.assertEqual(response.headers["location"], "http://localhost:3000/?auth=error")

    def test_calendars(self) -> None:
        response = self.http.get("/api/calendars")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["calendars"][0]["id"], "primary")


class TestUploadAndExport(ServerTestCase):
    def test_upload_csv(self) -> None:
        response = self.http.post(
            "/api/upload", files={"file": ("schedule.csv", csv_bytes(CSV_ROWS), "text/csv")}
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["fileName"], "schedule.csv")
        course = payload["courses"][0]
        self.assertEqual(course["title"], "CSE 4501 - Video Game Programming II")
        self.assertEqual(course["days"], ["Monday", "Wednesday"])
        self.assertEqual(course["startTime"], "17:30:00")
        self.assertEqual(course["startDate"], "2025-01-13")

    def test_upload_unreadable(self) -> None:
        response = self.http.post("/api/upload", files={"file": ("x.xlsx", b"\x00\x01\x02", "application/octet-stream")})
        self.assertEqual(response.status_code, 400)

    def test_upload_without_courses(self) -> None:
        rows = [CSV_ROWS[0], ["Office Hours", "Registered", "", "Fri | 1:00 PM - 2:00 PM", "", ""]]
        response = self.http.post("/api/upload", files={"file": ("s.csv", csv_bytes(rows), "text/csv")})
        self.assertEqual(response.status_code, 400)

    def test_upload_too_large(self) -> None:
        self.settings.max_upload_bytes = 10
        response = self.http.post("/api/upload", files={"file": ("s.csv", csv_bytes(CSV_ROWS), "text/csv")})
        self.assertEqual(response.status_code, 413)

    def test_upload_size_limit_is_inclusive(self) -> None:
        data = csv_bytes(CSV_ROWS)
        self.settings.max_upload_bytes = len(data)
        response = self.http.post("/api/upload", files={"file": ("s.csv", data, "text/csv")})
        self.assertEqual(response.status_code, 200)

        self.settings.max_upload_bytes = len(data) - 1
        response = self.http.post("/api/upload", files={"file": ("s.csv", data, "text/csv")})
        self.assertEqual(response.status_code, 413)

    def test_export(self) -> None:
        response = self.http.post("/api/export", json={"courses": [COURSE_JSON]})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/calendar"))
        self.assertIn("workday-schedule.ics", response.headers["content-disposition"])
        self.assertIn("RRULE:FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20250502", response.text)


class TestCalendarEvents(ServerTestCase):
    def test_create_events(self) -> None:
        broken = dict(COURSE_JSON, title="MATH 2200 - Algebra", startDate=None)
        response = self.http.post(
            "/api/calendar/events",
            json={"courses": [COURSE_JSON, broken], "calendarId": "school", "batchId": "batch_web"},
            headers={"X-User-Id": "u1"},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["eventsCreated"], 1)
        self.assertEqual(payload["batchId"], "batch_web")
        self.assertEqual(len(payload["errors"]), 1)
        self.assertTrue(payload["errors"][0].startswith("MATH 2200 - Algebra"))
        self.assertEqual(self.fake.inserted[0][0], "school")
        self.assertEqual(self.service.requested_users, ["u1"])

    def test_create_events_unauthenticated(self) -> None:
        self.fake.authenticated = False
        response = self.http.post("/api/calendar/events", json={"courses": [COURSE_JSON]})
        self.assertEqual(response.status_code, 401)

    def test_create_events_requires_courses(self) -> None:
        response = self.http.post("/api/calendar/events", json={"courses": []})
        self.assertEqual(response.status_code, 422)

    def test_delete_batch(self) -> None:
        self.http.post("/api/calendar/events", json={"courses": [COURSE_JSON], "batchId": "batch_web"})
        response = self.http.delete("/api/calendar/batches/batch_web", params={"calendarId": "primary"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual((payload["deletedCount"], payload["totalFound"], payload["errors"]), (1, 1, []))

    def test_delete_unknown_batch(self) -> None:
        response = self.http.delete("/api/calendar/batches/batch_none")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["totalFound"], 0)

    def test_delete_unauthenticated(self) -> None:
        self.fake.authenticated = False
        response = self.http.delete("/api/calendar/batches/batch_web")
        self.assertEqual(response.status_code, 401)


if __name__ == "__main__":
    unittest.main()
