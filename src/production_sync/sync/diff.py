"""Snapshot translation and difference detection for the pull leg.

``translate_snapshot`` turns the peer's wire records into local records,
keeping local ids and creation times for records both sides already
know.  A peer record is matched to a local one by, in order:

1. the local record's ``peer_id`` equal to the peer record's ``id``;
2. the peer record's ``peer_id`` (its view of our id) equal to a local id;
3. the identity key.

``detect_differences`` then compares the translated set against the
current local set by local id.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, NamedTuple

from ..errors import RecordValidationError
from ..mapper import parse_id, parse_timestamp, record_from_wire
from ..models import ProductionRecord
from .models import SnapshotDiff

logger = logging.getLogger(__name__)


class SnapshotTranslation(NamedTuple):
    """Translated peer snapshot.

    Attributes:
        records: Records ready for ``replace_all``.
        failures: ``(peer_id, error)`` for each peer record that could
            not be translated.
    """

    records: list[ProductionRecord]
    failures: list[tuple[int | None, str]]


def translate_snapshot(
    local: list[ProductionRecord],
    peer_records: list[dict[str, Any]],
    synced_at: datetime,
) -> SnapshotTranslation:
    """Translate the peer's snapshot into local records.

    Every translated record is marked synced at *synced_at* (or at its
    own ``updated_at`` if the peer's clock runs ahead).  A peer record
    that fails validation is reported in ``failures``; if it was mapped
    to a local record, that local record is carried over unchanged so a
    bad payload never deletes local data.

    Args:
        local: Current local records.
        peer_records: Wire dicts from the peer's export.
        synced_at: Timestamp of this pass.

    Returns:
        ``SnapshotTranslation`` with the new record set and failures.
    """
    by_id = {r.id: r for r in local}
    by_peer = {r.peer_id: r for r in local if r.peer_id is not None}
    by_key = {r.identity_key: r for r in local}

    claimed: set[int] = set()
    records: list[ProductionRecord] = []
    failures: list[tuple[int | None, str]] = []

    for data in peer_records:
        remote_id: int | None = None
        try:
            remote_id = parse_id(data.get("id"))
            known_as = parse_id(data.get("peer_id"), field="peer_id")
            fields = record_from_wire(data)
            updated_at = parse_timestamp(data.get("updated_at")) or synced_at
            created_at = parse_timestamp(data.get("created_at")) or updated_at
        except RecordValidationError as exc:
            logger.warning("Skipping invalid peer record %s: %s", remote_id, exc)
            failures.append((remote_id, str(exc)))
            kept = by_peer.get(remote_id) if remote_id is not None else None
            if kept is not None and kept.id not in claimed:
                claimed.add(kept.id)
                records.append(kept)
            continue

        match = by_peer.get(remote_id) if remote_id is not None else None
        if match is None and known_as is not None:
            match = by_id.get(known_as)
        if match is None:
            match = by_key.get(fields.identity_key)
        if match is not None and match.id in claimed:
            match = None

        if match is not None:
            claimed.add(match.id)
            created_at = match.created_at

        records.append(
            ProductionRecord(
                **fields.model_dump(),
                id=match.id if match is not None else None,
                peer_id=remote_id,
                created_at=created_at,
                updated_at=updated_at,
                last_synced_at=max(synced_at, updated_at),
            )
        )

    return SnapshotTranslation(records, failures)


def detect_differences(
    local: list[ProductionRecord], incoming: list[ProductionRecord]
) -> SnapshotDiff:
    """Compare *incoming* against *local* by local id.

    Records in *incoming* without an id are new.  Two records with the
    same id differ when their business fields or peer ids differ.
    """
    local_by_id = {r.id: r for r in local}
    seen: set[int] = set()
    added: list[ProductionRecord] = []
    updated: list[ProductionRecord] = []
    unchanged = 0

    for record in incoming:
        current = local_by_id.get(record.id) if record.id is not None else None
        if current is None:
            added.append(record)
            continue
        seen.add(current.id)
        if (
            current.business_fields() != record.business_fields()
            or current.peer_id != record.peer_id
        ):
            updated.append(record)
        else:
            unchanged += 1

    removed = [r for r in local if r.id not in seen]
    return SnapshotDiff(
        added=added, updated=updated, removed=removed, unchanged=unchanged
    )
