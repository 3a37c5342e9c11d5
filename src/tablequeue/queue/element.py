"""
Element handle returned by queue retrieval.
"""

import time
from typing import Any


class QueueElement:
    """
    One element pulled from a WorkQueue.

    The handle is a snapshot: ``data`` and ``requeue_count`` are what was
    read at retrieval time (``requeue_count`` is bumped locally after a
    successful requeue). The row itself is only ever changed through the
    conditional writes below, each of which touches a single row and
    reports whether this caller won.
    """

    def __init__(self, queue, data: Any, element_id: int, requeue_count: int):
        self._queue = queue
        self._data = data
        self._id = element_id
        self._requeue_count = requeue_count

    @property
    def queue(self):
        """The WorkQueue this element was retrieved from."""
        return self._queue

    @property
    def data(self) -> Any:
        return self._data

    @property
    def id(self) -> int:
        return self._id

    @property
    def requeue_count(self) -> int:
        return self._requeue_count

    def lock(self) -> bool:
        """
        Lock the element so that no other process can work on it.

        Returns:
            True if this call took the lock, False if the element was
            already locked or has been removed
        """
        verbosity = self._queue.verbosity
        verbosity.step("Entering lock().")

        rows = self._queue.store.execute_conditional_write(
            f"UPDATE {self._queue.elements_table} SET lock_time = :lock_time "
            f"WHERE element_id = :element_id AND lock_time IS NULL",
            {'lock_time': int(time.time()), 'element_id': self._id},
        )

        locked = rows == 1
        verbosity.step("Element %d locked: %s.", self._id,
                       'success' if locked else 'already locked or gone')
        return locked

    def requeue(self) -> bool:
        """
        Release the lock and count one more requeue, after a failed attempt.

        The element may have been requeued, relocked or removed by another
        process since we retrieved it; that is a lost race, not an error.

        Returns:
            True if this call requeued the element
        """
        verbosity = self._queue.verbosity
        verbosity.step("Entering requeue().")

        rows = self._queue.store.execute_conditional_write(
            f"UPDATE {self._queue.elements_table} "
            f"SET lock_time = NULL, requeue_count = requeue_count + 1 "
            f"WHERE element_id = :element_id AND lock_time IS NOT NULL",
            {'element_id': self._id},
        )

        requeued = rows == 1
        if requeued:
            self._requeue_count += 1
        verbosity.step("Element %d requeued: %s.", self._id,
                       'done' if requeued else 'already requeued or gone')
        return requeued

    def success(self) -> bool:
        """
        Remove the element after it was processed successfully.

        Deletes the locked row first. If none matched, deletes the row
        regardless of its lock: the work is done, but someone else is
        probably processing the same element, which is worth a warning.

        Returns:
            True if this call removed the row, False if it was already gone
        """
        verbosity = self._queue.verbosity
        verbosity.step("Entering success().")
        store = self._queue.store

        rows = store.execute_conditional_write(
            f"DELETE FROM {self._queue.elements_table} "
            f"WHERE element_id = :element_id AND lock_time IS NOT NULL",
            {'element_id': self._id},
        )
        if rows == 1:
            verbosity.step("Found a LOCKED element %d and deleted it. "
                           "Element successfully processed.", self._id)
            return True

        rows = store.execute_conditional_write(
            f"DELETE FROM {self._queue.elements_table} WHERE element_id = :element_id",
            {'element_id': self._id},
        )
        if rows == 1:
            # Lock probably timed out, got cleaned up and the element was
            # picked up by another process.
            verbosity.warning(
                "Another process is probably working on element %d, as it was found "
                "UNLOCKED when we deleted it. Check parallelization issues in your code!",
                self._id,
            )
            return True

        verbosity.notice(
            "Another process has probably worked on element %d and already deleted it "
            "after completing its operations. Check parallelization issues in your code!",
            self._id,
        )
        return False

    def __repr__(self) -> str:
        return f"QueueElement(id={self._id}, requeue_count={self._requeue_count})"
