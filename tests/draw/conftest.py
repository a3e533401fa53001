from __future__ import annotations

import pytest


class FakeSession:
    def __init__(self) -> None:
        self.added: list[object] = []

    def add(self, instance: object) -> None:
        self.added.append(instance)

    async def flush(self) -> None:
        return None


class _FakeSessionContext:
    def __init__(self, factory: FakeSessionFactory) -> None:
        self._factory = factory

    async def __aenter__(self) -> FakeSession:
        session = FakeSession()
        self._factory.sessions.append(session)
        return session

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._factory.commits += 1
        else:
            self._factory.rollbacks += 1
        return False


class FakeSessionFactory:
    """Stands in for ``async_sessionmaker``: ``factory()`` and ``factory.begin()``."""

    def __init__(self) -> None:
        self.sessions: list[FakeSession] = []
        self.commits = 0
        self.rollbacks = 0

    def __call__(self) -> _FakeSessionContext:
        return _FakeSessionContext(self)

    def begin(self) -> _FakeSessionContext:
        return _FakeSessionContext(self)


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()
