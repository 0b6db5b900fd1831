"""Employee repository - Database operations for organization employees"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from ...models import OrganizationEmployee, ServiceEmployee


class EmployeeRepository:
    """Repository for employee and service-assignment database operations"""

    @staticmethod
    def get_employees(db: Session, organization_id: str, include_removed: bool = False) -> list[OrganizationEmployee]:
        query = db.query(OrganizationEmployee).filter(OrganizationEmployee.organization_id == organization_id)
        if not include_removed:
            query = query.filter(OrganizationEmployee.is_removed.is_(False))
        return query.order_by(OrganizationEmployee.simpro_employee_name.asc()).all()

    @staticmethod
    def get_employee(db: Session, employee_id: str, organization_id: str) -> Optional[OrganizationEmployee]:
        return (
            db.query(OrganizationEmployee)
            .filter(
                OrganizationEmployee.id == employee_id,
                OrganizationEmployee.organization_id == organization_id,
            )
            .first()
        )

    @staticmethod
    def get_employees_by_ids(db: Session, organization_id: str, employee_ids: list[str]) -> list[OrganizationEmployee]:
        if not employee_ids:
            return []
        return (
            db.query(OrganizationEmployee)
            .filter(
                OrganizationEmployee.organization_id == organization_id,
                OrganizationEmployee.id.in_(employee_ids),
            )
            .all()
        )

    @staticmethod
    def get_by_simpro_ids(db: Session, organization_id: str) -> dict[int, OrganizationEmployee]:
        rows = db.query(OrganizationEmployee).filter(OrganizationEmployee.organization_id == organization_id).all()
        return {row.simpro_employee_id: row for row in rows}

    @staticmethod
    def record_sync_error(db: Session, organization_id: str, message: str) -> None:
        db.query(OrganizationEmployee).filter(OrganizationEmployee.organization_id == organization_id).update(
            {OrganizationEmployee.sync_error: message}, synchronize_session=False
        )
        db.commit()

    @staticmethod
    def update_employee(db: Session, employee: OrganizationEmployee, **updates) -> OrganizationEmployee:
        for key, value in updates.items():
            if hasattr(employee, key):
                setattr(employee, key, value)
        db.commit()
        db.refresh(employee)
        return employee

    # ------------------------------------------------------------------
    # Service assignments
    # ------------------------------------------------------------------

    @staticmethod
    def get_service_assignments(
        db: Session, organization_id: str, service_id: str, active_only: bool = True
    ) -> list[ServiceEmployee]:
        query = (
            db.query(ServiceEmployee)
            .join(OrganizationEmployee, OrganizationEmployee.id == ServiceEmployee.organization_employee_id)
            .options(joinedload(ServiceEmployee.employee))
            .filter(
                ServiceEmployee.service_id == service_id,
                OrganizationEmployee.organization_id == organization_id,
            )
        )
        if active_only:
            query = query.filter(
                OrganizationEmployee.is_active.is_(True),
                OrganizationEmployee.is_removed.is_(False),
            )
        return query.order_by(
            ServiceEmployee.is_default.desc(), OrganizationEmployee.simpro_employee_id.asc()
        ).all()

    @staticmethod
    def replace_service_assignments(
        db: Session,
        organization_id: str,
        service_id: str,
        employee_ids: list[str],
        default_employee_id: Optional[str] = None,
    ) -> None:
        org_employee_ids = select(OrganizationEmployee.id).where(
            OrganizationEmployee.organization_id == organization_id
        )
        db.query(ServiceEmployee).filter(
            ServiceEmployee.service_id == service_id,
            ServiceEmployee.organization_employee_id.in_(org_employee_ids),
        ).delete(synchronize_session=False)

        for employee_id in dict.fromkeys(employee_ids):
            db.add(
                ServiceEmployee(
                    service_id=service_id,
                    organization_employee_id=employee_id,
                    is_default=employee_id == default_employee_id,
                )
            )
        db.commit()
