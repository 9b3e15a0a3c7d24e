import copy
from typing import Any, Callable, Dict, List

import pytest

from idlesave.platform import MemoryLocalStorage
from idlesave.player import DEFAULT_START
from idlesave.storage_manager import GameHooks, GameStorage

NOW_MS = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = NOW_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def messages() -> List[str]:
    return []


@pytest.fixture()
def local_storage() -> MemoryLocalStorage:
    return MemoryLocalStorage()


@pytest.fixture()
def storage(local_storage, clock, messages) -> GameStorage:
    hooks = GameHooks(clock=clock)
    return GameStorage(local_storage, hooks=hooks, print_func=messages.append)


@pytest.fixture()
def make_player() -> Callable[..., Dict[str, Any]]:
    def _make(**overrides: Any) -> Dict[str, Any]:
        player = copy.deepcopy(DEFAULT_START)
        player["lastUpdate"] = NOW_MS
        player["records"]["gameCreatedTime"] = NOW_MS - 1000
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(player.get(key), dict):
                player[key].update(value)
            else:
                player[key] = value
        return player

    return _make
