"""
Shared fixtures: a deterministic clock and a wired recovery system
"""

import pytest
from datetime import datetime, timedelta, timezone

from loan_recovery.config import RecoveryConfig
from loan_recovery.employees import EmployeeRole
from loan_recovery.storage import InMemoryStorage
from loan_recovery.system import RecoverySystem


class TickingClock:
    """Returns a strictly increasing time on every call"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
                 step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        self.current = self.current + self.step
        return self.current


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def config():
    return RecoveryConfig(storage_backend="memory", log_level="WARNING")


@pytest.fixture
def system(config, clock):
    recovery = RecoverySystem(storage=InMemoryStorage(), config=config, clock=clock)
    recovery.tenant_manager.create_tenant("Acme Recoveries", "acme", tenant_id="t1")
    yield recovery
    recovery.close()


@pytest.fixture
def telecaller(system):
    return system.employees.create_employee("t1", "Priya Singh", "EMP001", EmployeeRole.TELECALLER)


@pytest.fixture
def second_telecaller(system):
    return system.employees.create_employee("t1", "Arjun Mehta", "EMP002", EmployeeRole.TELECALLER)


@pytest.fixture
def team(system):
    return system.teams.create_team("t1", "North Zone")
