from datetime import datetime, timedelta, timezone

import pytest

from immidir.config.settings import Settings, get_settings
from immidir.directory.registry import build_registry
from immidir.directory.service import ResourceDirectory


class TickingClock:
    """Deterministic clock: every call advances by `step`."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now


def memory_settings(**query_overrides) -> Settings:
    settings = get_settings()
    return settings.model_copy(
        update={
            "store": settings.store.model_copy(update={"backend": "memory"}),
            "query": settings.query.model_copy(update=query_overrides),
        }
    )


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def directory(clock) -> ResourceDirectory:
    settings = memory_settings()
    return ResourceDirectory(build_registry(settings, clock=clock), settings)
