import asyncio
import threading

from app.schemas.response import ServiceResult
from app.utils.events import NotificationDispatcher


class RecordingAutomation:
    def __init__(self, result: ServiceResult = None, gate: threading.Event = None):
        self.calls = []
        self.threads = set()
        self.result = result or ServiceResult.ok()
        self.gate = gate

    def trigger_notification(self, event_type, event_data=None, options=None):
        if self.gate is not None:
            self.gate.wait(timeout=5)
        self.calls.append((event_type, event_data, options))
        self.threads.add(threading.current_thread().name)
        return self.result


def test_publish_before_start_is_dropped():
    dispatcher = NotificationDispatcher(RecordingAutomation())

    assert dispatcher.publish("booking_created", {"user_id": "u1"}) is False


def test_published_events_reach_the_engine_off_the_event_loop():
    automation = RecordingAutomation()

    async def scenario():
        dispatcher = NotificationDispatcher(automation, workers=2)
        dispatcher.start()
        assert dispatcher.publish("booking_created", {"user_id": "u1"}, {"sender_id": "s1"})
        assert dispatcher.publish("payment_success", {"user_id": "u2"})
        await dispatcher.join()
        await dispatcher.stop()
        return threading.current_thread().name

    loop_thread = asyncio.run(scenario())

    assert sorted(call[0] for call in automation.calls) == ["booking_created", "payment_success"]
    assert ("booking_created", {"user_id": "u1"}, {"sender_id": "s1"}) in automation.calls
    assert loop_thread not in automation.threads


def test_full_queue_drops_instead_of_blocking():
    gate = threading.Event()
    automation = RecordingAutomation(gate=gate)

    async def scenario():
        dispatcher = NotificationDispatcher(automation, max_queue_size=1, workers=1)
        dispatcher.start()
        dispatcher.publish("first")
        # Let the worker pick up "first" and block on the gate
        await asyncio.sleep(0.05)
        accepted = dispatcher.publish("second")
        dropped = dispatcher.publish("third")
        gate.set()
        await dispatcher.stop()
        return accepted, dropped

    accepted, dropped = asyncio.run(scenario())

    assert accepted is True
    assert dropped is False
    assert [call[0] for call in automation.calls] == ["first", "second"]


def test_failed_results_do_not_stop_the_workers():
    automation = RecordingAutomation(result=ServiceResult.fail("boom", "persistence_error"))

    async def scenario():
        dispatcher = NotificationDispatcher(automation, workers=1)
        dispatcher.start()
        for i in range(3):
            dispatcher.publish(f"event-{i}")
        await dispatcher.join()
        running = dispatcher.running
        await dispatcher.stop()
        return running, dispatcher.running

    running_before, running_after = asyncio.run(scenario())

    assert len(automation.calls) == 3
    assert running_before is True
    assert running_after is False
