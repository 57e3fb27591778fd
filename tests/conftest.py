import pytest

T = 1704067200000  # 2024-01-01T00:00:00Z


class FrozenClock:
    def __init__(self, now: int = T):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()
