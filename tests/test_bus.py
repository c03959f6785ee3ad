"""Tests for the in-memory event bus."""

from zgw_vrijbrp_sync.bus import InMemoryBus


class TestInMemoryBus:
    def test_publish_does_not_deliver_inline(self):
        bus = InMemoryBus()
        received = []
        bus.subscribe("zaak.created", received.append)

        bus.publish("zaak.created", {"body": {"_id": "1"}})

        assert received == []
        assert bus.pending == [("zaak.created", {"body": {"_id": "1"}})]

    def test_drain_delivers_in_order(self):
        bus = InMemoryBus()
        received = []
        bus.subscribe("zaak.created", received.append)
        bus.publish("zaak.created", {"n": 1})
        bus.publish("zaak.created", {"n": 2})

        assert bus.drain() == 2
        assert received == [{"n": 1}, {"n": 2}]
        assert bus.pending == []

    def test_payload_is_copied(self):
        bus = InMemoryBus()
        received = []
        bus.subscribe("t", received.append)
        payload = {"body": {"status": "new"}}
        bus.publish("t", payload)
        payload["body"]["status"] = "changed"

        bus.drain()
        assert received[0]["body"]["status"] == "new"

    def test_events_published_while_draining_are_delivered(self):
        bus = InMemoryBus()
        received = []
        bus.subscribe("first", lambda event: bus.publish("second", event))
        bus.subscribe("second", received.append)
        bus.publish("first", {"n": 1})

        assert bus.drain() == 2
        assert received == [{"n": 1}]

    def test_failing_handler_does_not_stop_delivery(self, caplog):
        bus = InMemoryBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("t", broken)
        bus.subscribe("t", received.append)
        bus.publish("t", {"n": 1})
        bus.publish("t", {"n": 2})

        with caplog.at_level("ERROR"):
            bus.drain()

        assert received == [{"n": 1}, {"n": 2}]
        assert "Handler for topic t failed" in caplog.text

    def test_unsubscribed_topic_is_dropped_with_warning(self, caplog):
        bus = InMemoryBus()
        bus.publish("nobody", {})
        with caplog.at_level("WARNING"):
            assert bus.drain() == 1
        assert "No subscribers for topic nobody" in caplog.text
