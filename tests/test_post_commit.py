from unittest.mock import Mock

import pytest
from sqlalchemy.orm import Session

from contentgraph.services.cms.post_commit import PostCommitQueue


@pytest.fixture
def mock_db_session():
    return Mock(spec=Session)


def test_drain_runs_tasks_in_enqueue_order(mock_db_session):
    calls = []
    queue = PostCommitQueue(mock_db_session)
    queue.enqueue("first", lambda name: calls.append(name), name="first")
    queue.enqueue("second", lambda name: calls.append(name), name="second")

    assert queue.drain() == 2

    assert calls == ["first", "second"]
    assert [task.name for task in queue.completed] == ["first", "second"]
    assert queue.pending == []
    mock_db_session.rollback.assert_not_called()


def test_failed_attempt_is_retried_after_rollback(mock_db_session):
    flaky = Mock(side_effect=[RuntimeError("deadlock"), "ok"])
    queue = PostCommitQueue(mock_db_session, max_attempts=2)
    task = queue.enqueue("flaky", flaky, entry_id="e1")

    assert queue.drain() == 1

    assert task.attempts == 2
    assert queue.failed == []
    flaky.assert_called_with(entry_id="e1")
    mock_db_session.rollback.assert_called_once()


def test_exhausted_task_is_kept_on_failed(mock_db_session):
    broken = Mock(side_effect=RuntimeError("boom"))
    after = Mock()
    queue = PostCommitQueue(mock_db_session, max_attempts=3)
    queue.enqueue("broken", broken)
    queue.enqueue("after", after)

    assert queue.drain() == 1

    assert broken.call_count == 3
    after.assert_called_once_with()
    assert [task.name for task in queue.failed] == ["broken"]
    assert str(queue.failed[0].error) == "boom"


def test_max_attempts_is_at_least_one(mock_db_session):
    broken = Mock(side_effect=ValueError("nope"))
    queue = PostCommitQueue(mock_db_session, max_attempts=0)
    queue.enqueue("broken", broken)

    assert queue.drain() == 0
    assert broken.call_count == 1


def test_task_kwargs_may_reuse_enqueue_parameter_names(mock_db_session):
    received = []
    queue = PostCommitQueue(mock_db_session)
    queue.enqueue("mirror", lambda name, fn: received.append((name, fn)), name="authorName", fn="seoTitle")

    assert queue.drain() == 1
    assert received == [("authorName", "seoTitle")]
