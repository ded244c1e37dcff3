import threading

import pytest

from safe.tree import OpKind, WorkOrder, WorkQueue


def order(path):
    return WorkOrder([], path, OpKind.LIST)


def test_queue_hands_out_orders_first_in_first_out():
    queue = WorkQueue(1)
    for path in ["a", "b", "c"]:
        queue.push(order(path))
    assert len(queue) == 3
    popped = []
    while True:
        o, done = queue.pop()
        if done:
            break
        assert queue.awake == 1
        popped.append(o.path)
    assert popped == ["a", "b", "c"]


def test_queue_closes_itself_when_the_only_worker_idles():
    queue = WorkQueue(1)
    o, done = queue.pop()
    assert o is None
    assert done
    assert queue.closed
    assert queue.awake == 0


def test_queue_stays_done_once_closed():
    queue = WorkQueue(1)
    assert queue.pop()[1]
    assert queue.pop() == (None, True)


def test_push_after_close_is_dropped():
    queue = WorkQueue(2)
    queue.close()
    queue.push(order("a"))
    assert len(queue) == 0
    assert queue.pop() == (None, True)


@pytest.mark.timeout(10)
def test_close_wakes_all_waiting_workers():
    queue = WorkQueue(3)
    results = []

    def worker():
        results.append(queue.pop())

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    # The third worker is still awake, so nobody may return yet.
    for thread in threads:
        thread.join(0.1)
        assert thread.is_alive()
    queue.close()
    for thread in threads:
        thread.join()
    assert results == [(None, True), (None, True)]


@pytest.mark.timeout(10)
def test_parked_worker_receives_order_pushed_by_busy_worker():
    queue = WorkQueue(2)
    received = []
    got_order = threading.Event()

    def parked():
        o, done = queue.pop()
        received.append((o.path if o else None, done))
        got_order.set()
        received.append(queue.pop())

    thread = threading.Thread(target=parked)
    thread.start()
    queue.push(order("child"))
    got_order.wait()
    # Both workers idle now: whoever parks last closes the queue.
    assert queue.pop() == (None, True)
    thread.join()
    assert received == [("child", False), (None, True)]
    assert queue.closed
    assert queue.awake == 0
