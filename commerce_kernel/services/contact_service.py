"""
Service layer for contacts (customers and suppliers).

Flush-only: the caller owns commit.  Every mutation records an audit entry
that is delivered when the caller's unit commits.

Returns ContactInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from commerce_kernel.domain.dtos import ContactInfo
from commerce_kernel.domain.tax_id import normalize_tax_id
from commerce_kernel.domain.values import (
    AuditOperation,
    ContactRole,
    SubjectKind,
    TransactionKind,
)
from commerce_kernel.domain.workflow import get_workflow
from commerce_kernel.exceptions import (
    ContactNotFoundError,
    CounterpartyRoleError,
    DuplicateTaxIdError,
    InvalidContactError,
    InvalidInputError,
)
from commerce_kernel.logging_config import get_logger
from commerce_kernel.models.contact import Contact
from commerce_kernel.services.audit_service import AuditRecorder, AuditSink
from commerce_kernel.services.base import BaseService

logger = get_logger("services.contact")

_EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")

NAME_MAX_LENGTH = 100


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidContactError("name is required", field="name")
    if len(cleaned) > NAME_MAX_LENGTH:
        raise InvalidContactError(
            f"name cannot exceed {NAME_MAX_LENGTH} characters", field="name"
        )
    return cleaned


def _clean_email(email: str | None) -> str | None:
    if email is None:
        return None
    cleaned = email.strip().lower()
    if not cleaned:
        return None
    if not _EMAIL_PATTERN.match(cleaned):
        raise InvalidContactError(f"invalid email {email!r}", field="email")
    return cleaned


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _snapshot(contact: Contact) -> dict[str, Any]:
    return {
        "name": contact.name,
        "tax_id": contact.tax_id,
        "email": contact.email,
        "phone": contact.phone,
        "address": contact.address,
        "is_customer": contact.is_customer,
        "is_supplier": contact.is_supplier,
    }


class ContactService(BaseService[Contact]):
    """
    Contact directory.

    Rules:
        - tax_id is a valid RUT, stored normalized, unique across contacts.
        - A contact holds at least one role (customer, supplier).
        - Creating a contact whose tax id belongs to a deleted contact
          reactivates that contact with the new data.
        - needs_review is set only by ``bulk_import`` and cleared by
          ``update`` or ``mark_reviewed``.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        audit_sink: AuditSink | None = None,
    ):
        super().__init__(session)
        self._actor_id = actor_id
        self._audit = AuditRecorder.for_session(session, audit_sink)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_live(self, contact_id: UUID) -> Contact:
        contact = self.session.get(Contact, contact_id)
        if contact is None or contact.is_deleted:
            raise ContactNotFoundError(str(contact_id))
        return contact

    def _find_by_tax_id(self, tax_id: str) -> Contact | None:
        return self.session.execute(
            select(Contact).where(Contact.tax_id == tax_id)
        ).scalar_one_or_none()

    def get(self, contact_id: UUID) -> ContactInfo:
        """
        Raises:
            ContactNotFoundError: Missing or soft-deleted.
        """
        return ContactInfo.from_model(self._get_live(contact_id))

    def find_by_id(self, contact_id: UUID) -> ContactInfo | None:
        contact = self.session.get(Contact, contact_id)
        if contact is None or contact.is_deleted:
            return None
        return ContactInfo.from_model(contact)

    def search(self, term: str) -> list[ContactInfo]:
        """Case-insensitive substring match on name, tax id or email."""
        cleaned = (term or "").strip()
        if not cleaned:
            raise InvalidInputError("Search term is required", field="term")
        pattern = cleaned.lower()
        stmt = (
            select(Contact)
            .where(Contact.is_deleted == False)  # noqa: E712
            .where(
                or_(
                    Contact.name.icontains(pattern, autoescape=True),
                    Contact.tax_id.icontains(pattern, autoescape=True),
                    Contact.email.icontains(pattern, autoescape=True),
                )
            )
            .order_by(Contact.name)
        )
        return [ContactInfo.from_model(c) for c in self.session.execute(stmt).scalars()]

    def list_contacts(
        self,
        role: ContactRole | str | None = None,
        needs_review: bool | None = None,
        dual_only: bool = False,
    ) -> list[ContactInfo]:
        stmt = select(Contact).where(Contact.is_deleted == False)  # noqa: E712
        if role is not None:
            role = ContactRole(role)
            if role is ContactRole.CUSTOMER:
                stmt = stmt.where(Contact.is_customer == True)  # noqa: E712
            else:
                stmt = stmt.where(Contact.is_supplier == True)  # noqa: E712
        if dual_only:
            stmt = stmt.where(Contact.is_customer == True).where(  # noqa: E712
                Contact.is_supplier == True  # noqa: E712
            )
        if needs_review is not None:
            stmt = stmt.where(Contact.needs_review == needs_review)
        stmt = stmt.order_by(Contact.name)
        return [ContactInfo.from_model(c) for c in self.session.execute(stmt).scalars()]

    def require_counterparty(
        self,
        contact_id: UUID,
        kind: TransactionKind | str,
    ) -> ContactInfo:
        """
        Return the contact if it may be the counterparty of ``kind``.

        Raises:
            ContactNotFoundError: Missing or soft-deleted.
            CounterpartyRoleError: Lacks the customer/supplier role.
        """
        contact = self._get_live(contact_id)
        role = get_workflow(kind).counterparty_role
        has_role = contact.is_customer if role is ContactRole.CUSTOMER else contact.is_supplier
        if not has_role:
            raise CounterpartyRoleError(str(contact_id), role.value)
        return ContactInfo.from_model(contact)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        tax_id: str,
        is_customer: bool = False,
        is_supplier: bool = False,
        email: str | None = None,
        phone: str | None = None,
        address: str | None = None,
        needs_review: bool = False,
    ) -> ContactInfo:
        """
        Create a contact, or reactivate a deleted one with the same tax id.

        Raises:
            InvalidTaxIdError: Bad RUT.
            InvalidContactError: No role, bad email or name.
            DuplicateTaxIdError: A live contact already has this tax id.
        """
        normalized = normalize_tax_id(tax_id)
        if not is_customer and not is_supplier:
            raise InvalidContactError(
                "a contact must be a customer, a supplier or both", field="roles"
            )
        values = {
            "name": _clean_name(name),
            "email": _clean_email(email),
            "phone": _clean_optional(phone),
            "address": _clean_optional(address),
            "is_customer": bool(is_customer),
            "is_supplier": bool(is_supplier),
            "needs_review": needs_review,
        }

        existing = self._find_by_tax_id(normalized)
        if existing is not None and not existing.is_deleted:
            raise DuplicateTaxIdError(normalized)

        reactivated = existing is not None
        if reactivated:
            contact = existing
            for key, value in values.items():
                setattr(contact, key, value)
            contact.is_deleted = False
            contact.updated_by_id = self._actor_id
        else:
            contact = Contact(tax_id=normalized, created_by_id=self._actor_id, **values)
            self.session.add(contact)
        self.session.flush()

        self._audit.record(
            AuditOperation.CREATE,
            SubjectKind.CONTACT,
            contact.id,
            self._actor_id,
            {**_snapshot(contact), "reactivated": reactivated},
        )
        logger.info(
            "contact_created",
            extra={
                "contact_id": str(contact.id),
                "tax_id": normalized,
                "reactivated": reactivated,
            },
        )
        return ContactInfo.from_model(contact)

    def bulk_import(self, records: Iterable[Mapping[str, Any]]) -> list[ContactInfo]:
        """
        Create many contacts flagged ``needs_review``.

        Each record takes the keyword arguments of ``create``.  One bad
        record fails the whole import (the caller's unit rolls back).
        """
        created = []
        for record in records:
            fields = {k: v for k, v in record.items() if k != "needs_review"}
            created.append(self.create(needs_review=True, **fields))
        logger.info("contacts_imported", extra={"count": len(created)})
        return created

    def update(
        self,
        contact_id: UUID,
        name: str | None = None,
        tax_id: str | None = None,
        is_customer: bool | None = None,
        is_supplier: bool | None = None,
        email: str | None = None,
        phone: str | None = None,
        address: str | None = None,
    ) -> ContactInfo:
        """
        Update the given fields (None = unchanged) and clear needs_review.

        Raises:
            ContactNotFoundError, InvalidTaxIdError, InvalidContactError,
            DuplicateTaxIdError.
        """
        contact = self._get_live(contact_id)
        before = _snapshot(contact)

        # Validate everything before touching the row
        normalized = None
        if tax_id is not None:
            normalized = normalize_tax_id(tax_id)
            if normalized != contact.tax_id and self._find_by_tax_id(normalized) is not None:
                raise DuplicateTaxIdError(normalized)

        final_customer = contact.is_customer if is_customer is None else bool(is_customer)
        final_supplier = contact.is_supplier if is_supplier is None else bool(is_supplier)
        if not final_customer and not final_supplier:
            raise InvalidContactError(
                "a contact must be a customer, a supplier or both", field="roles"
            )
        clean_name = _clean_name(name) if name is not None else None
        clean_email = _clean_email(email) if email is not None else None

        if normalized is not None:
            contact.tax_id = normalized
        if clean_name is not None:
            contact.name = clean_name
        if email is not None:
            contact.email = clean_email
        if phone is not None:
            contact.phone = _clean_optional(phone)
        if address is not None:
            contact.address = _clean_optional(address)
        contact.is_customer = final_customer
        contact.is_supplier = final_supplier
        contact.needs_review = False
        contact.updated_by_id = self._actor_id
        self.session.flush()

        self._audit.record(
            AuditOperation.UPDATE,
            SubjectKind.CONTACT,
            contact.id,
            self._actor_id,
            {"before": before, "after": _snapshot(contact)},
        )
        logger.info("contact_updated", extra={"contact_id": str(contact.id)})
        return ContactInfo.from_model(contact)

    def mark_reviewed(self, contact_id: UUID) -> ContactInfo:
        contact = self._get_live(contact_id)
        if contact.needs_review:
            contact.needs_review = False
            contact.updated_by_id = self._actor_id
            self.session.flush()
            self._audit.record(
                AuditOperation.UPDATE,
                SubjectKind.CONTACT,
                contact.id,
                self._actor_id,
                {"action": "marked_reviewed"},
            )
        return ContactInfo.from_model(contact)

    def delete(self, contact_id: UUID) -> None:
        """Soft delete."""
        contact = self._get_live(contact_id)
        contact.is_deleted = True
        contact.updated_by_id = self._actor_id
        self.session.flush()
        self._audit.record(
            AuditOperation.DELETE,
            SubjectKind.CONTACT,
            contact.id,
            self._actor_id,
            {
                "name": contact.name,
                "tax_id": contact.tax_id,
                "was_customer": contact.is_customer,
                "was_supplier": contact.is_supplier,
                "action": "deleted",
            },
        )
        logger.info("contact_deleted", extra={"contact_id": str(contact.id)})

    def remove_role(self, contact_id: UUID, role: ContactRole | str) -> ContactInfo:
        """
        Drop one role.  A contact left with no role is soft-deleted.
        """
        role = ContactRole(role)
        contact = self._get_live(contact_id)
        was_customer, was_supplier = contact.is_customer, contact.is_supplier
        holds = was_customer if role is ContactRole.CUSTOMER else was_supplier
        if not holds:
            raise CounterpartyRoleError(str(contact_id), role.value)

        keeps_other = was_supplier if role is ContactRole.CUSTOMER else was_customer
        if keeps_other:
            if role is ContactRole.CUSTOMER:
                contact.is_customer = False
            else:
                contact.is_supplier = False
            action = "role_removed"
        else:
            contact.is_deleted = True
            action = "deleted"
        contact.updated_by_id = self._actor_id
        self.session.flush()

        self._audit.record(
            AuditOperation.DELETE,
            SubjectKind.CONTACT,
            contact.id,
            self._actor_id,
            {
                "name": contact.name,
                "tax_id": contact.tax_id,
                "was_customer": was_customer,
                "was_supplier": was_supplier,
                "role": role.value,
                "action": action,
            },
        )
        logger.info(
            "contact_role_removed",
            extra={"contact_id": str(contact.id), "role": role.value, "action": action},
        )
        return ContactInfo.from_model(contact)
