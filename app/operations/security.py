"""Password protection and removal."""

from __future__ import annotations

import structlog
from pypdf.constants import UserAccessPermissions

from app.errors import UnsupportedTypeError, ValidationError
from app.operations.registry import InputKind, OperationResult, OutputFile, SourceFile, registry
from app.schemas.options import Permissions, ProtectOptions, UnlockOptions
from app.services.document import Document
from app.services.naming import stem_of

logger = structlog.get_logger(__name__)

_ALL_PERMISSIONS = (
    UserAccessPermissions.R7
    | UserAccessPermissions.R8
    | UserAccessPermissions.PRINT
    | UserAccessPermissions.PRINT_TO_REPRESENTATION
    | UserAccessPermissions.MODIFY
    | UserAccessPermissions.ASSEMBLE_DOC
    | UserAccessPermissions.EXTRACT
    | UserAccessPermissions.EXTRACT_TEXT_AND_GRAPHICS
    | UserAccessPermissions.ADD_OR_MODIFY
    | UserAccessPermissions.FILL_FORM_FIELDS
)

# Each client-facing permission maps to the PDF permission bits it grants.
PERMISSION_BITS = {
    "printing": UserAccessPermissions.PRINT | UserAccessPermissions.PRINT_TO_REPRESENTATION,
    "copying": UserAccessPermissions.EXTRACT | UserAccessPermissions.EXTRACT_TEXT_AND_GRAPHICS,
    "modifying": UserAccessPermissions.MODIFY | UserAccessPermissions.ASSEMBLE_DOC,
    "annotating": UserAccessPermissions.ADD_OR_MODIFY | UserAccessPermissions.FILL_FORM_FIELDS,
}


def permission_flags(permissions: Permissions) -> UserAccessPermissions:
    """Translate the permission set into a PDF permissions flag."""
    flags = _ALL_PERMISSIONS
    for name, bits in PERMISSION_BITS.items():
        if not getattr(permissions, name):
            flags &= ~bits
    return flags


@registry.register("protect", ProtectOptions)
def protect(doc: Document, options: ProtectOptions) -> OperationResult:
    """Encrypt a PDF with a user password and a permission set."""
    if doc.was_encrypted:
        raise ValidationError(f"'{doc.name}' is already password protected")

    content = doc.save(encrypt={
        "user_password": options.password,
        "owner_password": options.owner_password or options.password,
        "permissions_flag": permission_flags(options.permissions),
        "algorithm": options.algorithm,
    })
    logger.info("pdf_protected", name=doc.name, algorithm=options.algorithm)
    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_protected.pdf", content)],
        report={
            "algorithm": options.algorithm,
            "permissions": options.permissions.model_dump(),
            "owner_password_set": options.owner_password is not None,
        },
        message="Password protection applied",
    )


@registry.register("unlock", UnlockOptions, inputs=InputKind.RAW)
def unlock(source: SourceFile, options: UnlockOptions) -> OperationResult:
    """Remove password protection using the current password."""
    if not source.looks_like_pdf():
        raise UnsupportedTypeError(f"'{source.name}' is not a PDF file")

    doc = Document.load(source.content, name=source.name, password=options.password)
    if not doc.was_encrypted:
        raise ValidationError(f"'{source.name}' is not password protected")

    logger.info("pdf_unlocked", name=source.name, pages=doc.page_count)
    return OperationResult(
        outputs=[OutputFile(f"{stem_of(source.name)}_unlocked.pdf", doc.save())],
        report={"encryption_removed": True, "pages": doc.page_count},
        message="Password protection removed",
    )
