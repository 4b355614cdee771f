import threading
import weakref


class KeyedLocks:
    """Thread-safe registry handing out one lock per key.

    Used to serialize read-merge-write cycles on a (user, contest) record
    inside one process. Entries are held weakly: a key's lock lives as long
    as some caller still references it, so the registry stays as small as
    the set of records being updated right now.
    """

    def __init__(self):
        self._locks = weakref.WeakValueDictionary()
        self._registry_lock = threading.Lock()

    def get(self, key) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def __len__(self):
        with self._registry_lock:
            return len(self._locks)


_contest_result_locks = KeyedLocks()


def get_contest_result_lock(user_id, contest_id) -> threading.Lock:
    """Process-wide lock for one user's contest result.

    Hold the returned lock in a local for the whole read-merge-write cycle.
    """
    return _contest_result_locks.get((str(user_id), str(contest_id)))
