"""
Alert construction helpers: pairing a flat title/value list into detail fields, the fixed fields shown on the root message, and rendering of mention prefixes.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from typing import Callable, Iterable, List, Sequence, Tuple

from models.notifications import Alert, AlertSeverity, DetailField

from .errors import AlertConstructionError


def pair_fields(fields: Sequence[str]) -> List[DetailField]:
    if len(fields) % 2 != 0:
        raise AlertConstructionError(len(fields))
    return [DetailField(title=str(fields[i]), value=str(fields[i + 1])) for i in range(0, len(fields), 2)]


def build_alert(
    severity: AlertSeverity,
    origin_label: str,
    description: str,
    primary_text: str,
    fields: Sequence[str] = (),
) -> Alert:
    """Build an alert whose ``fields`` (title, value, title, value, ...) become threaded replies.

    Raises ``AlertConstructionError`` when ``fields`` has an odd length.
    """
    return Alert(
        severity=AlertSeverity(severity),
        origin_label=origin_label,
        description=description,
        primary_text=primary_text,
        detail_fields=pair_fields(fields),
    )


def primary_fields(alert: Alert) -> List[Tuple[str, str]]:
    # caller supplied fields never go on the root message
    return [
        (alert.severity.origin_field, alert.origin_label),
        ("Description", alert.description),
    ]


def mention_prefix(mentions: Iterable[str], render: Callable[[str], str]) -> str:
    return "".join(f"{render(user)} " for user in mentions if user)
