from __future__ import annotations

import threading
from typing import Any, Callable

import requests


class ThreadLocalSession:
    """
    requests.Session stand-in that keeps one real Session per thread.

    Service objects are shared by Flask request threads and the reminder
    sweep's worker pool, and a single requests.Session is not safe to use
    from several threads at once.
    """

    def __init__(self, factory: Callable[[], requests.Session] = requests.Session):
        self._factory = factory
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._factory()
            self._local.session = session
        return session

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        return self.session.request(method, url, **kwargs)
