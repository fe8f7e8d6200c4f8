"""Tests for the lease, event and watch result wire formats."""

import ipaddress
import json
from datetime import datetime, timezone

import pytest

from kohakunet.models.enums import EventType
from kohakunet.models.wire import (
    decode_event,
    decode_lease,
    decode_watch_result,
    encode_event,
    encode_lease,
    encode_watch_result,
)
from kohakunet.subnet.errors import WireDecodeError
from kohakunet.subnet.lease import Event, Lease, LeaseAttrs, LeaseWatchResult

EXPIRATION = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_lease(subnet: str = "10.5.1.0/24", public_ip: str = "192.0.2.10") -> Lease:
    return Lease(
        subnet=ipaddress.ip_network(subnet),
        attrs=LeaseAttrs(
            public_ip=ipaddress.ip_address(public_ip),
            backend_type="vxlan",
            backend_data=b'{"VtepMAC":"aa:bb:cc:dd:ee:ff"}',
        ),
        expiration=EXPIRATION,
        asof=7,
    )


class TestEvent:
    def test_encode_shape(self):
        doc = json.loads(encode_event(Event(EventType.ADDED, make_lease())))
        assert doc["type"] == "added"
        assert doc["lease"]["subnet"] == "10.5.1.0/24"
        assert doc["lease"]["attrs"]["public_ip"] == "192.0.2.10"
        assert doc["lease"]["attrs"]["backend_data"] == {"VtepMAC": "aa:bb:cc:dd:ee:ff"}
        assert doc["lease"]["asof"] == 7

    def test_round_trip(self):
        event = Event(EventType.REMOVED, make_lease("fd00::100/120", "2001:db8::1"))
        assert decode_event(encode_event(event)) == event

    def test_unknown_type_is_rejected(self):
        doc = json.loads(encode_event(Event(EventType.ADDED, make_lease())))
        doc["type"] = "modified"
        with pytest.raises(WireDecodeError, match="invalid event") as exc_info:
            decode_event(json.dumps(doc))
        assert "modified" not in str(exc_info.value)

    def test_malformed_json(self):
        with pytest.raises(WireDecodeError):
            decode_event("{")

    def test_bad_subnet(self):
        doc = json.loads(encode_event(Event(EventType.ADDED, make_lease())))
        doc["lease"]["subnet"] = "10.5.1.1/24"
        with pytest.raises(WireDecodeError):
            decode_event(json.dumps(doc))


class TestLease:
    def test_naive_expiration_is_utc(self):
        doc = json.loads(encode_lease(make_lease()))
        doc["expiration"] = "2026-01-01T12:00:00"
        lease = decode_lease(json.dumps(doc))
        assert lease.expiration == EXPIRATION
        assert lease.expiration.utcoffset().total_seconds() == 0

    def test_missing_backend_data(self):
        lease = make_lease()
        lease.attrs.backend_data = None
        assert decode_lease(encode_lease(lease)).attrs.backend_data is None

    def test_backend_data_must_be_json(self):
        lease = make_lease()
        lease.attrs.backend_data = b"not json"
        with pytest.raises(WireDecodeError, match="backend_data"):
            encode_lease(lease)


class TestWatchResult:
    def test_events_round_trip(self):
        result = LeaseWatchResult.from_events([Event(EventType.ADDED, make_lease())], 12)
        decoded = decode_watch_result(encode_watch_result(result))
        assert not decoded.is_snapshot
        assert decoded.events == result.events
        assert decoded.cursor == 12

    def test_empty_snapshot(self):
        decoded = decode_watch_result('{"events": null, "snapshot": [], "cursor": 3}')
        assert decoded.is_snapshot
        assert decoded.snapshot == []
        assert decoded.cursor == 3

    def test_events_and_snapshot_together_rejected(self):
        lease_doc = json.loads(encode_lease(make_lease()))
        doc = {
            "events": [{"type": "added", "lease": lease_doc}],
            "snapshot": [lease_doc],
            "cursor": 1,
        }
        with pytest.raises(WireDecodeError, match="both events and a snapshot"):
            decode_watch_result(json.dumps(doc))

    def test_event_result_needs_events(self):
        with pytest.raises(ValueError):
            LeaseWatchResult.from_events([], 1)
