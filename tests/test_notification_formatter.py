"""
Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

try:
    from ._env import ensure_test_env
except ImportError:
    from tests._env import ensure_test_env
ensure_test_env()

import pytest

from models.notifications import AlertSeverity
from services.notification.errors import AlertConstructionError
from services.notification.formatter import build_alert, mention_prefix, primary_fields


@pytest.mark.parametrize("count", [1, 3, 5])
def test_odd_field_count_fails(count):
    with pytest.raises(AlertConstructionError):
        build_alert(AlertSeverity.ERROR, "origin", "desc", "", [f"f{i}" for i in range(count)])


def test_even_fields_pair_in_order():
    alert = build_alert(AlertSeverity.WARN, "origin", "desc", "body", ["Response", "r", "Request", "q", "URI", "/x"])
    assert [(f.title, f.value) for f in alert.detail_fields] == [("Response", "r"), ("Request", "q"), ("URI", "/x")]
    assert alert.primary_text == "body"


def test_no_fields_is_valid():
    alert = build_alert(AlertSeverity.SUCCESS, "job", "done", "")
    assert alert.detail_fields == []


def test_construction_error_is_a_value_error():
    with pytest.raises(ValueError):
        build_alert("error", "origin", "desc", "", ["lonely"])


@pytest.mark.parametrize(
    "severity,label",
    [(AlertSeverity.ERROR, "ErrorAt"), (AlertSeverity.WARN, "WarnAt"), (AlertSeverity.SUCCESS, "SuccessAt")],
)
def test_primary_fields_lead_with_origin_and_description(severity, label):
    alert = build_alert(severity, "Checkout", "it broke", "", ["Request", "{}"])
    assert primary_fields(alert) == [(label, "Checkout"), ("Description", "it broke")]


def test_mention_prefix_adds_trailing_space_per_user():
    assert mention_prefix(["alice", "", "bob"], lambda u: f"@{u}") == "@alice @bob "
    assert mention_prefix([], lambda u: f"@{u}") == ""
