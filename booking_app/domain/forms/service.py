"""Booking form service - Business logic for form operations"""

import logging
from datetime import timedelta
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...auth import OrganizationContext
from ...config import FORM_UNDO_WINDOW_SECONDS
from ...errors import ConflictError, NotFoundError, ValidationFailedError
from ...models import BookingForm, generate_id, utcnow
from ...shared.validators import generate_slug, timestamped_slug
from . import tree as tree_ops
from .reducer import UpdateNode, parse_action, reduce_form_data
from .repository import FormRepository
from .schemas import (
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_THEME,
    BookingFlowData,
    FormCreate,
    FormUpdate,
    booking_flow_from_config,
    create_default_form_data,
)
from .validation import validate_form_config

logger = logging.getLogger(__name__)


class FormService:
    """Service layer for booking form business logic"""

    def __init__(self, db: Session, undo_window_seconds: int = FORM_UNDO_WINDOW_SECONDS):
        self.db = db
        self.repo = FormRepository()
        self.undo_window = timedelta(seconds=undo_window_seconds)

    def list_forms(
        self,
        context: OrganizationContext,
        limit: int = 50,
        offset: int = 0,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[list[BookingForm], int]:
        return self.repo.get_forms(self.db, context.organization_id, limit, offset, search, is_active)

    def get_form(self, form_id: str, context: OrganizationContext) -> BookingForm:
        form = self.repo.get_form(self.db, form_id, context.organization_id)
        if not form:
            raise NotFoundError.for_resource("Form", form_id)
        return form

    def get_booking_flow(self, form: BookingForm) -> BookingFlowData:
        return booking_flow_from_config(form.form_config, form.id, form.name, form.slug)

    def create_form(self, data: FormCreate, context: OrganizationContext) -> BookingForm:
        """Create a form with the default service tree; new forms start inactive"""
        logger.info(f"📥 Creating form '{data.name}' for organization {context.organization_id}")

        form_id = generate_id()
        slug = timestamped_slug(data.name)
        booking_flow = create_default_form_data(form_id, data.name, slug)

        return self.repo.create_form(
            self.db,
            id=form_id,
            organization_id=context.organization_id,
            name=data.name,
            slug=slug,
            description=data.description,
            form_config=booking_flow.to_json(),
            theme=DEFAULT_THEME,
            primary_color=DEFAULT_PRIMARY_COLOR,
            is_active=False,
            created_by=context.user.id,
        )

    def update_form(self, form_id: str, data: FormUpdate, context: OrganizationContext) -> BookingForm:
        """Autosave target: validates formConfig before anything is written"""
        form = self.get_form(form_id, context)
        updates = {}

        if data.name is not None:
            name = data.name.strip()
            if not name:
                raise ValidationFailedError(
                    "Form name cannot be empty", [{"code": "MISSING_NAME", "message": "Form name is required"}]
                )
            updates["name"] = name
        if data.description is not None:
            updates["description"] = data.description
        if data.slug is not None:
            slug = generate_slug(data.slug)
            if self.repo.slug_taken(self.db, context.organization_id, slug, exclude_form_id=form.id):
                raise ConflictError(f"Slug '{slug}' is already used by another form", code="SLUG_TAKEN")
            updates["slug"] = slug
        if data.isActive is not None:
            updates["is_active"] = data.isActive

        if data.formConfig is not None:
            result = validate_form_config(data.formConfig)
            if not result.is_valid:
                logger.warning(
                    f"⚠️ Rejected formConfig for form {form.id}: {len(result.errors)} validation error(s)"
                )
                raise ValidationFailedError(
                    "Form configuration is invalid", [issue.to_dict() for issue in result.errors]
                )
            booking_flow = booking_flow_from_config(
                data.formConfig,
                form.id,
                updates.get("name", form.name),
                updates.get("slug", form.slug),
            )
            updates["form_config"] = booking_flow.to_json()
            updates["theme"] = booking_flow.theme
            updates["primary_color"] = booking_flow.primaryColor

        if data.theme is not None:
            updates["theme"] = data.theme
        if data.primaryColor is not None:
            updates["primary_color"] = data.primaryColor

        if not updates:
            return form

        logger.info(f"💾 Saving form {form.id} ({', '.join(sorted(updates))})")
        return self.repo.update_form(self.db, form, **updates)

    def apply_action(self, form_id: str, payload: dict, context: OrganizationContext) -> BookingForm:
        """Run one editor action against the stored document and persist the result"""
        form = self.get_form(form_id, context)
        current = self.get_booking_flow(form)
        try:
            action = parse_action(payload)
            if isinstance(action, UpdateNode):
                node = tree_ops.find_node(current.serviceTree, action.nodeId)
                if node is not None:
                    tree_ops.merge_node_updates(node, action.updates)
        except PydanticValidationError as e:
            raise ValidationFailedError(
                "Invalid form action",
                [{"code": "INVALID_ACTION", "message": err.get("msg", "Invalid value")} for err in e.errors()],
            ) from e
        updated = reduce_form_data(current, action)

        if updated is current:
            logger.info(f"ℹ️ {action.type} on form {form.id} changed nothing")
            return form

        result = validate_form_config(updated.to_json())
        if not result.is_valid:
            raise ValidationFailedError(
                f"{action.type} would leave the form invalid", [issue.to_dict() for issue in result.errors]
            )

        return self.repo.update_form(
            self.db,
            form,
            form_config=updated.to_json(),
            theme=updated.theme,
            primary_color=updated.primaryColor,
        )

    def delete_form(self, form_id: str, context: OrganizationContext) -> dict:
        """Soft delete; the form can be restored until the undo window closes"""
        form = self.get_form(form_id, context)
        deleted_at = utcnow()
        self.repo.soft_delete(self.db, form, deleted_at)
        logger.info(f"🗑️ Form {form.id} soft-deleted by user {context.user.id}")
        return {
            "message": "Form deleted",
            "id": form.id,
            "undoExpiresAt": (deleted_at + self.undo_window).isoformat(),
        }

    def restore_form(self, form_id: str, context: OrganizationContext) -> BookingForm:
        form = self.repo.get_deleted_form(self.db, form_id, context.organization_id)
        if not form:
            raise NotFoundError.for_resource("Deleted form", form_id)

        if form.deleted_at + self.undo_window < utcnow():
            raise ConflictError("The undo window for this form has expired", code="UNDO_EXPIRED")

        logger.info(f"♻️ Form {form.id} restored by user {context.user.id}")
        return self.repo.restore(self.db, form)

    def duplicate_form(self, form_id: str, context: OrganizationContext) -> BookingForm:
        original = self.get_form(form_id, context)

        new_id = generate_id()
        name = f"Copy of {original.name}"
        slug = timestamped_slug(f"copy-of-{original.name}")
        booking_flow = self.get_booking_flow(original).model_copy(
            update={"id": new_id, "internalName": name, "slug": slug}
        )

        logger.info(f"📋 Duplicating form {original.id} as {new_id}")
        return self.repo.create_form(
            self.db,
            id=new_id,
            organization_id=context.organization_id,
            name=name,
            slug=slug,
            description=original.description,
            form_config=booking_flow.to_json(),
            theme=original.theme,
            primary_color=original.primary_color,
            is_active=False,
            created_by=context.user.id,
        )

    def get_public_form(self, organization_slug: str, form_slug: str):
        row = self.repo.get_public_form(self.db, organization_slug, form_slug)
        if not row:
            raise NotFoundError.for_resource("Form")
        return row

    def purge_expired_deletions(self) -> int:
        cutoff = utcnow() - self.undo_window
        purged = self.repo.purge_deleted_before(self.db, cutoff)
        if purged:
            logger.info(f"🧹 Purged {purged} soft-deleted form(s) older than {cutoff.isoformat()}")
        return purged
