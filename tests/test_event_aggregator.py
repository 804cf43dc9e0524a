from __future__ import annotations

import unittest

from event_aggregator import EventAggregator


class TestEventAggregator(unittest.TestCase):
    def test_delivers_in_subscription_order_once_each(self) -> None:
        bus = EventAggregator()
        calls = []
        bus.subscribe("topic", lambda p: calls.append(("first", p)))
        bus.subscribe("topic", lambda p: calls.append(("second", p)))
        bus.subscribe("other", lambda p: calls.append(("other", p)))

        bus.publish("topic", {"n": 1})
        self.assertEqual(calls, [("first", {"n": 1}), ("second", {"n": 1})])
        self.assertEqual(bus.subscriber_count("topic"), 2)
        self.assertEqual(bus.subscriber_count("missing"), 0)

    def test_publish_without_subscribers_is_a_no_op(self) -> None:
        EventAggregator().publish("nobody", None)

    def test_nested_publish_runs_synchronously(self) -> None:
        bus = EventAggregator()
        order = []
        bus.subscribe("outer", lambda p: (order.append("outer-start"), bus.publish("inner"), order.append("outer-end")))
        bus.subscribe("inner", lambda p: order.append("inner"))
        bus.publish("outer")
        self.assertEqual(order, ["outer-start", "inner", "outer-end"])


if __name__ == "__main__":
    unittest.main()
