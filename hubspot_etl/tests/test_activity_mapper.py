"""Test mapping of engagement records to activities."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from hubspot_etl.models.activity import Activity, CallDetail, EmailDetail
from hubspot_etl.sync.activity_mapper import (
    activity_associations,
    determine_association,
    extract_all_associations,
    map_activity,
)
from hubspot_etl.sync.context import RunContext
from hubspot_etl.sync.field_mapper import MalformedPayload, UnsupportedSubtype
from hubspot_etl.sync.status import COMPLETED, UPCOMING

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _call_record(**props):
    return {
        "id": "c-1",
        "properties": {
            "hs_call_title": "Intro call",
            "hs_call_body": "<p>Talked</p>",
            "hs_call_direction": "OUTBOUND",
            "hs_call_status": "COMPLETED",
            "hs_timestamp": "2024-05-01T10:00:00Z",
            "hubspot_owner_id": "7",
            **props,
        },
        "associations": {
            "companies": {"results": [{"id": "500", "type": "call_to_company"}]},
            "contacts": {
                "results": [
                    {"id": "201", "associationTypes": [{"label": "Primary", "typeId": 194, "category": "HUBSPOT_DEFINED"}]},
                    {"id": "202", "types": [{"label": "Billing"}]},
                ]
            },
        },
    }


def test_map_call_builds_detail_and_status():
    ctx = RunContext(owners={"7": "Olive Owner"})
    ctx.remember_contact("201", name="Alice", email="alice@test.com")

    activity = map_activity(_call_record(), "call", ctx, NOW)

    assert activity.activity_type == "CALL"
    assert activity.subject == "Intro call"
    assert activity.body == "Talked"
    assert activity.owner == "Olive Owner"
    assert activity.status == COMPLETED
    assert activity.source_object_type == "contact"
    assert activity.source_object_id == "201"
    assert activity.source_object_name == "Alice"
    assert activity.source_object_email == "alice@test.com"

    detail = activity.detail
    assert isinstance(detail, CallDetail)
    assert detail.call_direction == "OUTBOUND"
    assert json.loads(detail.raw_properties_json)["hs_call_title"] == "Intro call"
    assert activity.email_detail is None


def test_scheduled_future_call_is_upcoming():
    activity = map_activity(
        _call_record(hs_call_status="SCHEDULED", hs_timestamp="2024-07-01T10:00:00Z"), "CALL", RunContext(), NOW
    )
    assert activity.status == UPCOMING


def test_unsupported_type_raises():
    with pytest.raises(UnsupportedSubtype):
        map_activity({"id": "x", "properties": {}}, "FAX", RunContext(), NOW)


def test_missing_properties_object_raises():
    with pytest.raises(MalformedPayload):
        map_activity({"id": "x"}, "NOTE", RunContext(), NOW)


def test_email_counts_parsed_as_ints():
    record = {
        "id": "e-1",
        "properties": {
            "hs_email_subject": "Offer",
            "hs_email_text": "Hi",
            "hs_num_email_opens": "3",
            "hs_num_email_clicks": "0",
            "hs_email_direction": "EMAIL",
        },
    }
    activity = map_activity(record, "EMAIL", RunContext(), NOW)
    assert isinstance(activity.detail, EmailDetail)
    assert activity.detail.num_opens == 3
    assert activity.detail.num_clicks == 0
    assert activity.source_object_type is None


def test_meeting_name_comes_from_title():
    record = {
        "id": "m-1",
        "properties": {"hs_meeting_title": "Kickoff", "hs_meeting_start_time": "2024-07-01T09:00:00Z"},
        "associations": {"deals": {"results": [{"id": "900"}]}},
    }
    activity = map_activity(record, "MEETING", RunContext(), NOW)
    assert activity.meeting_detail.meeting_name == "Kickoff"
    assert activity.activity_date == datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)
    assert activity.status == UPCOMING
    assert (activity.source_object_type, activity.source_object_id) == ("deal", "900")


def test_determine_association_prefers_contacts():
    assert determine_association(_call_record()) == ("contact", "201")
    assert determine_association({"associations": {"sms": {"results": [{"id": "1"}]}}}) == ("sms", "1")
    assert determine_association({}) == (None, None)


def test_extract_all_associations_label_precedence():
    refs = extract_all_associations(_call_record())
    by_id = {ref.object_id: ref for ref in refs}
    assert by_id["201"].object_type == "contact"
    assert by_id["201"].label == "Primary"
    assert by_id["201"].type_id == 194
    assert by_id["201"].category == "HUBSPOT_DEFINED"
    assert by_id["202"].label == "Billing"
    assert by_id["500"].object_type == "company"
    assert by_id["500"].label == "call_to_company"


def test_activity_associations_rows():
    activity = map_activity(_call_record(), "CALL", RunContext(), NOW)
    rows = activity_associations(activity, extract_all_associations(_call_record()))
    assert {(r.activity_hubspot_id, r.associated_object_type, r.associated_object_id) for r in rows} == {
        ("c-1", "company", "500"),
        ("c-1", "contact", "201"),
        ("c-1", "contact", "202"),
    }


def test_attach_detail_rejects_mismatched_variant():
    activity = Activity(hubspot_id="a-1", activity_type="CALL")
    with pytest.raises(ValueError):
        activity.attach_detail(EmailDetail())


def test_attach_detail_rejects_second_variant():
    activity = map_activity(_call_record(), "CALL", RunContext(), NOW)
    with pytest.raises(ValueError):
        activity.attach_detail(CallDetail())


def test_wrong_shaped_results_are_ignored():
    record = _call_record()
    record["associations"] = {"contacts": {"results": 7}, "deals": {"results": [{"id": "d1"}]}}
    refs = extract_all_associations(record)
    assert [(ref.object_type, ref.object_id) for ref in refs] == [("deal", "d1")]
