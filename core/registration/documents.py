"""
Document Verification Workflow

Owners upload documents; officials verify, reject, or ask for an update.
Each transition recomputes the owning application's derived state in the
same store transaction.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from core.access import OFFICIALS, OWNER_ONLY, OWNER_OR_OFFICIAL
from core.actors import Actor
from core.audit import AuditAction
from core.context import Transition, WorkflowContext
from core.errors import ConflictError, NotFoundError, ValidationError, require_text
from core.registration.aggregate import documents_for, load_application, refresh_application
from core.registration.schema import (
    Document,
    DocumentStatus,
    DocumentType,
    PropertyApplication,
)
from core.store import Collection, Transaction


logger = logging.getLogger(__name__)


def _parse_document_type(value: Union[DocumentType, str]) -> DocumentType:
    if isinstance(value, DocumentType):
        return value
    try:
        return DocumentType(value)
    except ValueError:
        raise ValidationError(f"Unknown document type '{value}'", field="document_type")


def _load_document(tx: Transaction, document_id: str) -> Document:
    record = tx.get(Collection.DOCUMENTS, document_id)
    if record is None:
        raise NotFoundError("Document", document_id)
    return Document.from_dict(record)


def _require_open_application(application: PropertyApplication) -> None:
    if application.is_terminal:
        raise ConflictError(
            f"Application {application.property_id} is already {application.status.value}",
            status=application.status.value,
        )


class DocumentWorkflow:
    """Per-document review state for property applications."""

    def __init__(self, ctx: WorkflowContext):
        self.ctx = ctx

    def upload_document(
        self,
        actor: Actor,
        property_id: str,
        document_type: Union[DocumentType, str],
        file_name: str,
        file_size: int,
        mime_type: str,
    ) -> Document:
        """
        Attach document metadata to an application, in pending.

        Raises:
            NotFoundError: Unknown property
            ForbiddenError: Caller does not own the application
            ValidationError: Bad type, size, or mime type
            ConflictError: Application already approved or rejected
        """
        with self.ctx.store.transaction() as tx:
            application = load_application(tx, property_id)
            OWNER_ONLY.for_action("upload documents").check(actor, [application.owner_id])
            document = Document(
                property_id=property_id,
                document_type=_parse_document_type(document_type),
                file_name=file_name,
                file_size=file_size,
                mime_type=mime_type,
                uploaded_by=actor.actor_id,
                uploaded_at=self.ctx.now(),
            )
            _require_open_application(application)

            tx.insert(Collection.DOCUMENTS, document.document_id, document.to_dict())
            _, derived = refresh_application(tx, property_id, self.ctx.now())

        logger.info(
            "Document %s (%s) uploaded to %s",
            document.document_id,
            document.document_type.value,
            property_id,
        )
        self.ctx.emit(
            [
                Transition(
                    entity_type="document",
                    entity_id=document.document_id,
                    property_id=property_id,
                    action=AuditAction.DOCUMENT_UPLOADED,
                    to_status=document.status.value,
                    metadata={
                        "document_type": document.document_type.value,
                        "file_name": document.file_name,
                    },
                ),
                *derived,
            ],
            actor,
        )
        return document

    def verify_document(
        self,
        actor: Actor,
        document_id: str,
        notes: Optional[str] = None,
        reverify: bool = False,
    ) -> Document:
        """Mark a document verified. See _review for errors."""
        return self._review(
            actor, document_id, DocumentStatus.VERIFIED, notes, reverify,
            AuditAction.DOCUMENT_VERIFIED, "verify documents",
        )

    def reject_document(
        self,
        actor: Actor,
        document_id: str,
        notes: Optional[str],
        reverify: bool = False,
    ) -> Document:
        """Mark a document rejected. Notes are required so the owner knows what to fix."""
        return self._review(
            actor, document_id, DocumentStatus.REJECTED, notes, reverify,
            AuditAction.DOCUMENT_REJECTED, "reject documents",
        )

    def request_document_update(self, actor: Actor, document_id: str, notes: Optional[str]) -> Document:
        """Send a pending document back to the owner for a new file."""
        return self._review(
            actor, document_id, DocumentStatus.NEEDS_UPDATE, notes, False,
            AuditAction.DOCUMENT_UPDATE_REQUESTED, "request document updates",
        )

    def _review(
        self,
        actor: Actor,
        document_id: str,
        target: DocumentStatus,
        notes: Optional[str],
        reverify: bool,
        action: AuditAction,
        action_label: str,
    ) -> Document:
        """
        Shared official review transition.

        Raises:
            NotFoundError: Unknown document
            ForbiddenError: Caller is not a land officer or admin
            ValidationError: Missing notes where they are required
            ConflictError: Document already verified/rejected without reverify,
                or its application is terminal
        """
        with self.ctx.store.transaction() as tx:
            document = _load_document(tx, document_id)
            OFFICIALS.for_action(action_label).check(actor)
            if target != DocumentStatus.VERIFIED:
                notes = require_text(notes, "notes")
            elif notes is not None:
                notes = notes.strip() or None

            if document.is_terminal and not reverify:
                raise ConflictError(
                    f"Document {document_id} is already {document.status.value}; "
                    "pass reverify to review it again",
                    status=document.status.value,
                )
            application = load_application(tx, document.property_id)
            _require_open_application(application)

            previous = document.status
            document.status = target
            document.notes = notes
            document.reviewed_by = actor.actor_id
            document.reviewed_at = self.ctx.now()
            tx.put(Collection.DOCUMENTS, document_id, document.to_dict())
            _, derived = refresh_application(tx, document.property_id, self.ctx.now())

        logger.info(
            "Document %s %s -> %s by %s",
            document_id,
            previous.value,
            target.value,
            actor.actor_id,
        )
        self.ctx.emit(
            [
                Transition(
                    entity_type="document",
                    entity_id=document_id,
                    property_id=document.property_id,
                    action=action,
                    from_status=previous.value,
                    to_status=target.value,
                    notes=notes,
                    metadata={"reverify": reverify} if reverify else {},
                ),
                *derived,
            ],
            actor,
        )
        return document

    def replace_document(
        self,
        actor: Actor,
        document_id: str,
        file_name: str,
        file_size: int,
        mime_type: str,
    ) -> Document:
        """
        Swap in a new file for a pending or needs_update document.

        The document goes back to pending for review.
        """
        with self.ctx.store.transaction() as tx:
            document = _load_document(tx, document_id)
            application = load_application(tx, document.property_id)
            OWNER_ONLY.for_action("replace documents").check(actor, [application.owner_id])
            replacement = Document(
                document_id=document.document_id,
                property_id=document.property_id,
                document_type=document.document_type,
                file_name=file_name,
                file_size=file_size,
                mime_type=mime_type,
                uploaded_by=actor.actor_id,
                uploaded_at=self.ctx.now(),
            )
            if document.is_terminal:
                raise ConflictError(
                    f"Document {document_id} is already {document.status.value}; upload a new document instead",
                    status=document.status.value,
                )
            _require_open_application(application)

            tx.put(Collection.DOCUMENTS, document_id, replacement.to_dict())
            _, derived = refresh_application(tx, document.property_id, self.ctx.now())

        logger.info("Document %s replaced by %s", document_id, actor.actor_id)
        self.ctx.emit(
            [
                Transition(
                    entity_type="document",
                    entity_id=document_id,
                    property_id=document.property_id,
                    action=AuditAction.DOCUMENT_REPLACED,
                    from_status=document.status.value,
                    to_status=replacement.status.value,
                    metadata={"file_name": replacement.file_name},
                ),
                *derived,
            ],
            actor,
        )
        return replacement

    def get_document(self, actor: Actor, document_id: str) -> Document:
        with self.ctx.store.transaction() as tx:
            document = _load_document(tx, document_id)
            application = load_application(tx, document.property_id)
        OWNER_OR_OFFICIAL.for_action("view this document").check(actor, [application.owner_id])
        return document

    def list_documents(self, actor: Actor, property_id: str) -> list[Document]:
        with self.ctx.store.transaction() as tx:
            application = load_application(tx, property_id)
            OWNER_OR_OFFICIAL.for_action("view these documents").check(
                actor, [application.owner_id]
            )
            documents = documents_for(tx, property_id)
        return sorted(documents, key=lambda d: d.uploaded_at)
