"""
Employee & Team Directory Module

Telecallers and team incharges per tenant, and the teams they belong to.
The reconciliation processor reads the active telecaller roster from here;
the assignment engine resolves telecaller ids to their employee-id strings.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .tenancy import TenantScopedStorage
from .errors import (
    DuplicateEmployee, TeamNotFound, TelecallerNotFound, ValidationError
)
from .logging_config import get_logger, log_action


logger = get_logger("loan_recovery.employees")


class EmployeeRole(Enum):
    """Roles the engine distinguishes"""
    TEAM_INCHARGE = "TeamIncharge"
    TELECALLER = "Telecaller"


class EmployeeStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class Employee(StorageRecord):
    """Company staff member"""
    tenant_id: str
    name: str
    emp_id: str
    role: EmployeeRole
    mobile: Optional[str] = None
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    team_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == EmployeeStatus.ACTIVE

    @property
    def is_telecaller(self) -> bool:
        return self.role == EmployeeRole.TELECALLER

    @classmethod
    def from_dict(cls, data: Dict) -> 'Employee':
        data = dict(data)
        data['role'] = EmployeeRole(data['role'])
        data['status'] = EmployeeStatus(data.get('status', 'active'))
        return super().from_dict(data)


@dataclass
class Team(StorageRecord):
    """A team of telecallers run by one incharge"""
    tenant_id: str
    name: str
    team_incharge_id: Optional[str] = None
    product_name: Optional[str] = None
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    telecaller_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Team':
        data = dict(data)
        data['status'] = EmployeeStatus(data.get('status', 'active'))
        data['telecaller_ids'] = list(data.get('telecaller_ids') or [])
        return super().from_dict(data)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmployeeDirectory:
    """Tenant-scoped employee lookups"""

    def __init__(self, storage: StorageInterface,
                 clock: Callable[[], datetime] = _utcnow):
        self.storage = storage
        self.clock = clock
        self.employees_table = "employees"

    def _scoped(self, tenant_id: str) -> TenantScopedStorage:
        return TenantScopedStorage(self.storage, tenant_id)

    def create_employee(self, tenant_id: str, name: str, emp_id: str,
                        role: EmployeeRole, mobile: Optional[str] = None,
                        team_id: Optional[str] = None) -> Employee:
        """Register an employee; emp_id is unique per tenant"""
        emp_id = (emp_id or "").strip()
        if not emp_id:
            raise ValidationError("emp_id is required")
        if not name or not name.strip():
            raise ValidationError("name is required")
        if self._scoped(tenant_id).find(self.employees_table, {"emp_id": emp_id}):
            raise DuplicateEmployee(f"Employee '{emp_id}' already exists", emp_id)

        now = self.clock()
        employee = Employee(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tenant_id=tenant_id,
            name=name.strip(),
            emp_id=emp_id,
            role=role,
            mobile=mobile,
            team_id=team_id
        )
        self._scoped(tenant_id).save(self.employees_table, employee.id, employee.to_dict())
        log_action(logger, "info", "Employee created", action="create_employee",
                   resource=employee.id, tenant_id=tenant_id,
                   extra={"emp_id": emp_id, "role": role.value})
        return employee

    def get_employee(self, tenant_id: str, employee_id: str) -> Optional[Employee]:
        """Get employee by internal id"""
        data = self._scoped(tenant_id).load(self.employees_table, employee_id)
        if data:
            return Employee.from_dict(data)
        return None

    def get_by_emp_id(self, tenant_id: str, emp_id: str,
                      role: Optional[EmployeeRole] = None,
                      active_only: bool = False) -> Optional[Employee]:
        """Get employee by employee-id string"""
        filters = {"emp_id": emp_id}
        if role is not None:
            filters["role"] = role.value
        if active_only:
            filters["status"] = EmployeeStatus.ACTIVE.value
        records = self._scoped(tenant_id).find(self.employees_table, filters)
        if records:
            return Employee.from_dict(records[0])
        return None

    def get_telecaller(self, tenant_id: str, telecaller_id: str) -> Employee:
        """Resolve an active telecaller by internal id or raise TelecallerNotFound"""
        employee = self.get_employee(tenant_id, telecaller_id)
        if not employee or not employee.is_telecaller or not employee.is_active:
            raise TelecallerNotFound(f"Telecaller {telecaller_id} not found", telecaller_id)
        return employee

    def list_employees(self, tenant_id: str, role: Optional[EmployeeRole] = None,
                       active_only: bool = False) -> List[Employee]:
        filters = {}
        if role is not None:
            filters["role"] = role.value
        if active_only:
            filters["status"] = EmployeeStatus.ACTIVE.value
        return [
            Employee.from_dict(data)
            for data in self._scoped(tenant_id).find(self.employees_table, filters)
        ]

    def active_telecaller_roster(self, tenant_id: str) -> List[Tuple[str, Employee]]:
        """
        Active telecallers as (emp_id, employee) pairs in storage order.

        A list rather than a dict so that duplicate emp ids stay visible to
        the caller's conflict policy.
        """
        return [
            (employee.emp_id, employee)
            for employee in self.list_employees(
                tenant_id, role=EmployeeRole.TELECALLER, active_only=True
            )
        ]

    def names_by_id(self, tenant_id: str, employee_ids: List[str]) -> Dict[str, str]:
        """Map internal ids to display names, skipping unknown ids"""
        names = {}
        for employee_id in set(employee_ids):
            employee = self.get_employee(tenant_id, employee_id)
            if employee:
                names[employee_id] = employee.name
        return names

    def set_status(self, tenant_id: str, employee_id: str,
                   status: EmployeeStatus) -> Employee:
        employee = self.get_employee(tenant_id, employee_id)
        if not employee:
            raise TelecallerNotFound(f"Employee {employee_id} not found", employee_id)
        employee.status = status
        employee.updated_at = self.clock()
        self._scoped(tenant_id).save(self.employees_table, employee.id, employee.to_dict())
        return employee

    def deactivate_employee(self, tenant_id: str, employee_id: str) -> Employee:
        return self.set_status(tenant_id, employee_id, EmployeeStatus.INACTIVE)


class TeamDirectory:
    """Teams and their telecaller membership"""

    def __init__(self, storage: StorageInterface,
                 clock: Callable[[], datetime] = _utcnow):
        self.storage = storage
        self.clock = clock
        self.teams_table = "teams"

    def _scoped(self, tenant_id: str) -> TenantScopedStorage:
        return TenantScopedStorage(self.storage, tenant_id)

    def _save_team(self, team: Team) -> None:
        team.updated_at = self.clock()
        self._scoped(team.tenant_id).save(self.teams_table, team.id, team.to_dict())

    def create_team(self, tenant_id: str, name: str,
                    team_incharge_id: Optional[str] = None,
                    product_name: Optional[str] = None) -> Team:
        if not name or not name.strip():
            raise ValidationError("Team name is required")
        now = self.clock()
        team = Team(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tenant_id=tenant_id,
            name=name.strip(),
            team_incharge_id=team_incharge_id,
            product_name=product_name
        )
        self._save_team(team)
        return team

    def get_team(self, tenant_id: str, team_id: str) -> Optional[Team]:
        data = self._scoped(tenant_id).load(self.teams_table, team_id)
        if data:
            return Team.from_dict(data)
        return None

    def require_team(self, tenant_id: str, team_id: str) -> Team:
        """Resolve a team or raise TeamNotFound"""
        team = self.get_team(tenant_id, team_id)
        if not team:
            raise TeamNotFound(f"Team {team_id} not found", team_id)
        return team

    def list_teams(self, tenant_id: str) -> List[Team]:
        return [Team.from_dict(data) for data in self._scoped(tenant_id).load_all(self.teams_table)]

    def add_telecaller(self, tenant_id: str, team_id: str, telecaller_id: str) -> Team:
        team = self.require_team(tenant_id, team_id)
        if telecaller_id not in team.telecaller_ids:
            team.telecaller_ids.append(telecaller_id)
            self._save_team(team)
        return team

    def remove_telecaller(self, tenant_id: str, team_id: str, telecaller_id: str) -> Team:
        team = self.require_team(tenant_id, team_id)
        if telecaller_id in team.telecaller_ids:
            team.telecaller_ids.remove(telecaller_id)
            self._save_team(team)
        return team

    def get_members(self, tenant_id: str, team_id: str) -> List[str]:
        return list(self.require_team(tenant_id, team_id).telecaller_ids)
