"""Booking form repository - Database operations for forms"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import BookingForm, Organization


class FormRepository:
    """Repository for booking form database operations"""

    @staticmethod
    def get_forms(
        db: Session,
        organization_id: str,
        limit: int = 50,
        offset: int = 0,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[list[BookingForm], int]:
        """Get non-deleted forms for an organization plus the total count"""
        query = db.query(BookingForm).filter(
            BookingForm.organization_id == organization_id,
            BookingForm.deleted_at.is_(None),
        )

        if is_active is not None:
            query = query.filter(BookingForm.is_active == is_active)

        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(BookingForm.name.ilike(pattern), BookingForm.description.ilike(pattern))
            )

        total = query.count()
        forms = query.order_by(BookingForm.updated_at.desc()).offset(offset).limit(limit).all()
        return forms, total

    @staticmethod
    def get_form(db: Session, form_id: str, organization_id: str) -> Optional[BookingForm]:
        """Get a live (non-deleted) form"""
        return (
            db.query(BookingForm)
            .filter(
                BookingForm.id == form_id,
                BookingForm.organization_id == organization_id,
                BookingForm.deleted_at.is_(None),
            )
            .first()
        )

    @staticmethod
    def get_deleted_form(db: Session, form_id: str, organization_id: str) -> Optional[BookingForm]:
        return (
            db.query(BookingForm)
            .filter(
                BookingForm.id == form_id,
                BookingForm.organization_id == organization_id,
                BookingForm.deleted_at.isnot(None),
            )
            .first()
        )

    @staticmethod
    def get_public_form(
        db: Session, organization_slug: str, form_slug: str
    ) -> Optional[tuple[BookingForm, Organization]]:
        return (
            db.query(BookingForm, Organization)
            .join(Organization, Organization.id == BookingForm.organization_id)
            .filter(
                Organization.slug == organization_slug,
                BookingForm.slug == form_slug,
                BookingForm.is_active.is_(True),
                BookingForm.deleted_at.is_(None),
            )
            .first()
        )

    @staticmethod
    def slug_taken(db: Session, organization_id: str, slug: str, exclude_form_id: Optional[str] = None) -> bool:
        query = db.query(BookingForm.id).filter(
            BookingForm.organization_id == organization_id, BookingForm.slug == slug
        )
        if exclude_form_id:
            query = query.filter(BookingForm.id != exclude_form_id)
        return query.first() is not None

    @staticmethod
    def create_form(db: Session, **form_data) -> BookingForm:
        form = BookingForm(**form_data)
        db.add(form)
        db.commit()
        db.refresh(form)
        return form

    @staticmethod
    def update_form(db: Session, form: BookingForm, **updates) -> BookingForm:
        """Update a form with provided fields"""
        for key, value in updates.items():
            if hasattr(form, key):
                setattr(form, key, value)

        db.commit()
        db.refresh(form)
        return form

    @staticmethod
    def soft_delete(db: Session, form: BookingForm, deleted_at: datetime) -> BookingForm:
        form.deleted_at = deleted_at
        db.commit()
        db.refresh(form)
        return form

    @staticmethod
    def restore(db: Session, form: BookingForm) -> BookingForm:
        form.deleted_at = None
        db.commit()
        db.refresh(form)
        return form

    @staticmethod
    def purge_deleted_before(db: Session, cutoff: datetime) -> int:
        """Hard-delete forms whose soft delete is older than cutoff"""
        deleted = (
            db.query(BookingForm)
            .filter(BookingForm.deleted_at.isnot(None), BookingForm.deleted_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted
