from __future__ import annotations

import base64

from adapters.gmail_mapper import build_metadata, build_search_query, extract_body, extract_header


def _encode(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _message(headers: dict[str, str]) -> dict:
    return {"payload": {"headers": [{"name": k, "value": v} for k, v in headers.items()]}}


def test_extract_header_is_case_insensitive() -> None:
    message = _message({"from": "a@b.com", "Subject": "Hi"})
    assert extract_header(message, "From") == "a@b.com"
    assert extract_header(message, "SUBJECT") == "Hi"
    assert extract_header(message, "To") == ""
    assert extract_header({}, "From") == ""


def test_build_metadata_normalises_addresses() -> None:
    message = _message(
        {
            "From": "John Doe <john@example.com>",
            "To": "me@example.com",
            "Subject": "=?utf-8?b?SGVsbG8gV29ybGQ=?=",
            "Date": "Sat, 01 Jun 2024 11:00:00 +0000",
        }
    )
    meta = build_metadata("m1", message)
    assert meta.email_id == "m1"
    assert meta.sender == "john@example.com"
    assert meta.recipient == "me@example.com"
    assert meta.subject == "Hello World"
    assert meta.date == "Sat, 01 Jun 2024 11:00:00 +0000"


def test_build_metadata_tolerates_missing_headers() -> None:
    meta = build_metadata("m2", {"payload": {}})
    assert (meta.sender, meta.recipient, meta.subject, meta.date) == ("", "", "", "")


def test_extract_body_single_part() -> None:
    message = {"payload": {"body": {"data": _encode("plain body")}}}
    assert extract_body(message) == "plain body"


def test_extract_body_prefers_plain_over_html() -> None:
    message = {
        "payload": {
            "body": {},
            "parts": [
                {"mimeType": "text/html", "body": {"data": _encode("<p>html</p>")}},
                {"mimeType": "text/plain", "body": {"data": _encode("plain")}},
            ],
        }
    }
    assert extract_body(message) == "plain"


def test_extract_body_falls_back_to_html_then_nested() -> None:
    html_only = {"payload": {"parts": [{"mimeType": "text/html", "body": {"data": _encode("<b>x</b>")}}]}}
    assert extract_body(html_only) == "<b>x</b>"

    nested = {
        "payload": {
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [{"mimeType": "text/plain", "body": {"data": _encode("deep")}}],
                }
            ]
        }
    }
    assert extract_body(nested) == "deep"


def test_extract_body_handles_empty_payloads() -> None:
    assert extract_body({}) == ""
    assert extract_body({"payload": {"parts": []}}) == ""


def test_build_search_query() -> None:
    assert build_search_query("is:unread", None) == "is:unread"
    assert build_search_query("is:unread", 1717243200) == "is:unread after:1717243200"
    assert build_search_query("", 5) == "after:5"
