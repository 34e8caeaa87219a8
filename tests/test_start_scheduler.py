from quiz_sync.core.services.start_scheduler import StartScheduler


def test_due_starts_pop_in_time_order():
    scheduler = StartScheduler()
    scheduler.schedule("late", 300)
    scheduler.schedule("early", 100)
    scheduler.schedule("middle", 200)

    assert scheduler.pop_due(50) == []
    assert scheduler.pop_due(250) == ["early", "middle"]
    assert scheduler.next_due_time() == 300
    assert len(scheduler) == 1


def test_unschedule_and_reschedule_discard_stale_entries():
    scheduler = StartScheduler()
    scheduler.schedule("a", 100)
    scheduler.schedule("b", 150)
    scheduler.schedule("a", 500)
    assert scheduler.unschedule("b") is True
    assert scheduler.unschedule("b") is False

    assert scheduler.next_due_time() == 500
    assert scheduler.pop_due(400) == []
    assert scheduler.pop_due(500) == ["a"]
    assert scheduler.is_scheduled("a") is False
    assert scheduler.next_due_time() is None
