import time
import unittest
from unittest.mock import MagicMock

import httplib2

from course_calendar.batches import (
    APP_SOURCE,
    build_event_body,
    create_events,
    delete_by_batch,
    generate_batch_id,
)
from course_calendar.calendar_client import GoogleCalendarClient
from course_calendar.exceptions import AuthenticationError, InvalidRecurrence, MissingDateTime
from course_calendar.models import Course

from tests.fakes import FakeCalendarClient


def course(title: str, **overrides) -> Course:
    fields = dict(
        title=title,
        days="Monday/Wednesday",
        start_time="5:30 PM",
        end_time="7:00 PM",
        location="RIDGLEY, Room 00016",
        instructor="Jane Doe",
        start_date="2025-01-13",
        end_date="2025-05-02",
    )
    fields.update(overrides)
    return Course(**fields)


class TestEventBody(unittest.TestCase):
    def test_local_wall_clock_with_zone_name(self) -> None:
        body = build_event_body(course("CSE 4501 - Games"), "batch_1_abc")
        self.assertEqual(body["start"], {"dateTime": "2025-01-13T17:30:00", "timeZone": "America/Chicago"})
        self.assertEqual(body["end"], {"dateTime": "2025-01-13T19:00:00", "timeZone": "America/Chicago"})
        self.assertEqual(body["recurrence"], ["RRULE:FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20250502"])
        self.assertEqual(body["extendedProperties"]["private"], {"appSource": APP_SOURCE, "batchId": "batch_1_abc"})
        self.assertEqual(body["description"], "Instructor: Jane Doe\nLocation: RIDGLEY, Room 00016")
        self.assertEqual(
            body["reminders"]["overrides"],
            [{"method": "popup", "minutes": 10}, {"method": "email", "minutes": 30}],
        )

    def test_first_instance_lands_on_meeting_day(self) -> None:
        body = build_event_body(course("CSE 4501 - Games", start_date="2025-01-14"), "b", "America/New_York")
        self.assertEqual(body["start"]["dateTime"], "2025-01-15T17:30:00")
        self.assertEqual(body["start"]["timeZone"], "America/New_York")

    def test_blank_fields_become_tba(self) -> None:
        body = build_event_body(course("CSE 4501 - Games", location="", instructor=""), "b")
        self.assertEqual(body["location"], "TBA")
        self.assertEqual(body["description"], "Instructor: TBA\nLocation: TBA")

    def test_per_course_failures(self) -> None:
        with self.assertRaises(MissingDateTime):
            build_event_body(course("CSE 4501 - Games", start_date=None), "b")
        with self.assertRaises(MissingDateTime):
            build_event_body(course("CSE 4501 - Games", end_time="5:00 PM"), "b")
        with self.assertRaises(InvalidRecurrence):
            build_event_body(course("CSE 4501 - Games", end_date=None), "b")
        with self.assertRaises(InvalidRecurrence):
            build_event_body(course("CSE 4501 - Games", days=()), "b")


class TestCreateEvents(unittest.TestCase):
    def test_partial_success(self) -> None:
        client = FakeCalendarClient()
        courses = [
            course("CSE 4501 - Games"),
            course("MATH 2200 - Linear Algebra", start_date=None),
            course("PHYS 1010 - Physics I"),
        ]

        result = create_events(client, courses, "primary")

        self.assertEqual(result.events_created, 2)
        self.assertEqual(result.event_ids, ["evt1", "evt2"])
        self.assertEqual(len(result.errors), 1)
        self.assertTrue(result.errors[0].startswith("MATH 2200 - Linear Algebra: "))

    def test_every_event_carries_the_batch_id(self) -> None:
        client = FakeCalendarClient()
        result = create_events(client, [course("CSE 4501 - Games"), course("PHYS 1010 - Physics I")], "work")

        self.assertRegex(result.batch_id, r"^batch_\d+_[0-9a-z]{9}$")
        for calendar_id, body in client.inserted:
            self.assertEqual(calendar_id, "work")
            self.assertEqual(body["extendedProperties"]["private"]["batchId"], result.batch_id)

    def test_caller_batch_id_is_kept(self) -> None:
        result = create_events(FakeCalendarClient(), [course("CSE 4501 - Games")], batch_id="batch_mine")
        self.assertEqual(result.batch_id, "batch_mine")

    def test_provider_error_does_not_stop_the_batch(self) -> None:
        client = FakeCalendarClient(fail_insert_for=["CSE 4501 - Games"])
        result = create_events(client, [course("CSE 4501 - Games"), course("PHYS 1010 - Physics I")])

        self.assertEqual(result.events_created, 1)
        self.assertEqual(result.errors, ["CSE 4501 - Games: Rate Limit Exceeded"])

    def test_errors_keep_input_order(self) -> None:
        courses = [
            course("AAA 1000 - First", start_date=None),
            course("BBB 2000 - Second"),
            course("CCC 3000 - Third", days=()),
        ]
        result = create_events(FakeCalendarClient(), courses)
        self.assertEqual([error.split(":")[0] for error in result.errors], ["AAA 1000 - First", "CCC 3000 - Third"])

    def test_requires_authentication_before_any_call(self) -> None:
        client = FakeCalendarClient(authenticated=False)
        with self.assertRaises(AuthenticationError):
            create_events(client, [course("CSE 4501 - Games")])
        self.assertEqual(client.inserted, [])
        with self.assertRaises(AuthenticationError):
            create_events(None, [course("CSE 4501 - Games")])

    def test_deadline_passed(self) -> None:
        client = FakeCalendarClient()
        result = create_events(
            client,
            [course("CSE 4501 - Games"), course("PHYS 1010 - Physics I")],
            deadline=time.monotonic() - 1,
        )
        self.assertEqual(result.events_created, 0)
        self.assertEqual(client.inserted, [])
        self.assertEqual(result.errors[0], "CSE 4501 - Games: cancelled before submission")

    def test_batch_ids_are_unique(self) -> None:
        self.assertNotEqual(generate_batch_id(), generate_batch_id())


class TestDeleteByBatch(unittest.TestCase):
    def test_removes_only_the_batch(self) -> None:
        client = FakeCalendarClient()
        kept = create_events(client, [course("CSE 4501 - Games")], batch_id="batch_keep")
        created = create_events(client, [course("PHYS 1010 - Physics I"), course("BIO 1100 - Cells")], batch_id="batch_drop")

        result = delete_by_batch(client, created.batch_id, "primary")

        self.assertEqual(result.total_found, 2)
        self.assertEqual(result.deleted_count, 2)
        self.assertEqual(sorted(result.deleted_ids), sorted(created.event_ids))
        self.assertEqual(list(client.events), kept.event_ids)
        self.assertEqual(client.list_calls, [("primary", {"batchId": "batch_drop"})])

    def test_no_matches(self) -> None:
        result = delete_by_batch(FakeCalendarClient(), "batch_unknown")
        self.assertEqual((result.deleted_count, result.total_found, result.errors), (0, 0, []))

    def test_partial_failure_reports_count_mismatch(self) -> None:
        client = FakeCalendarClient(fail_delete_for=["evt1"])
        create_events(client, [course("CSE 4501 - Games"), course("PHYS 1010 - Physics I")], batch_id="b1")

        result = delete_by_batch(client, "b1")

        self.assertEqual(result.total_found, 2)
        self.assertEqual(result.deleted_count, 1)
        self.assertEqual(len(result.errors), 1)
        self.assertIn("evt1", result.errors[0])

    def test_requires_authentication_and_batch_id(self) -> None:
        with self.assertRaises(AuthenticationError):
            delete_by_batch(FakeCalendarClient(authenticated=False), "b1")
        with self.assertRaises(ValueError):
            delete_by_batch(FakeCalendarClient(), "  ")


class TestTransportFailures(unittest.TestCase):
    def setUp(self) -> None:
        self.service = MagicMock()
        self.client = GoogleCalendarClient(None, service=self.service)
        self.events = self.service.events.return_value

    def test_timeout_on_one_insert_does_not_stop_the_batch(self) -> None:
        self.events.insert.return_value.execute.side_effect = [TimeoutError("timed out"), {"id": "e2"}]

        result = create_events(self.client, [course("CSE 4501 - Games"), course("PHYS 1010 - Physics I")])

        self.assertEqual(result.events_created, 1)
        self.assertEqual(result.event_ids, ["e2"])
        self.assertEqual(len(result.errors), 1)
        self.assertTrue(result.errors[0].startswith("CSE 4501 - Games: "))
        self.assertIn("timed out", result.errors[0])

    def test_http_library_error_is_reported_per_course(self) -> None:
        self.events.insert.return_value.execute.side_effect = [{"id": "e1"}, httplib2.ServerNotFoundError("no host")]

        result = create_events(self.client, [course("CSE 4501 - Games"), course("PHYS 1010 - Physics I")])

        self.assertEqual(result.event_ids, ["e1"])
        self.assertEqual(len(result.errors), 1)
        self.assertTrue(result.errors[0].startswith("PHYS 1010 - Physics I: "))

    def test_connection_reset_on_one_delete_does_not_stop_the_batch(self) -> None:
        self.events.list.return_value.execute.return_value = {"items": [{"id": "e1"}, {"id": "e2"}]}
        self.events.delete.return_value.execute.side_effect = [ConnectionResetError("reset"), {}]

        result = delete_by_batch(self.client, "b1")

        self.assertEqual(result.total_found, 2)
        self.assertEqual(result.deleted_count, 1)
        self.assertEqual(result.deleted_ids, ["e2"])
        self.assertEqual(len(result.errors), 1)
        self.assertIn("e1", result.errors[0])


if __name__ == "__main__":
    unittest.main()
