import asyncio
import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core import tiers as tier_rules
from casewatch.core.config import settings
from casewatch.core.security import get_password_hash
from casewatch.db.session import AsyncSessionLocal, run_migrations
from casewatch.models.document import DocumentTemplate, DocumentType
from casewatch.models.tier import TierPermission
from casewatch.models.user import Tier, User, UserRole
from casewatch.services.pdf_forms import REQUIRED_FIELDS

logger = logging.getLogger(__name__)

TEMPLATE_VERSION = "2024.1"

# (template_name, form_type, description)
TEMPLATES = [
    ("N240 Request for Information", DocumentType.n240, "Request for further information in county court claims"),
    ("N1 Claim Form", DocumentType.n1, "Claim form for starting court proceedings"),
    ("ET1 Employment Tribunal", DocumentType.et1, "Employment tribunal claim form"),
]


async def init_superuser(session: AsyncSession) -> None:
    if not (settings.FIRST_SUPERUSER_EMAIL and settings.FIRST_SUPERUSER_PASSWORD):
        return

    email = str(settings.FIRST_SUPERUSER_EMAIL).lower()
    result = await session.exec(select(User).where(User.email == email))
    if result.one_or_none():
        return

    session.add(
        User(
            email=email,
            password_hash=get_password_hash(settings.FIRST_SUPERUSER_PASSWORD),
            tier=Tier.tier_4,
            role=UserRole.admin,
            first_name="System",
            last_name="Administrator",
            email_verified=True,
        )
    )
    await session.commit()
    logger.info("Created initial admin %s", email)


async def init_tier_permissions(session: AsyncSession) -> None:
    existing = {
        (Tier(row.tier), row.permission_name)
        for row in (await session.exec(select(TierPermission))).all()
    }
    added = 0
    for row in tier_rules.default_permission_rows():
        if (row["tier"], row["permission_name"]) in existing:
            continue
        session.add(TierPermission(**row))
        added += 1
    if added:
        await session.commit()
        logger.info("Seeded %d tier permissions", added)


async def init_document_templates(session: AsyncSession) -> None:
    existing = set((await session.exec(select(DocumentTemplate.template_name))).all())
    added = 0
    for name, form_type, description in TEMPLATES:
        if name in existing:
            continue
        fields = REQUIRED_FIELDS[form_type]
        session.add(
            DocumentTemplate(
                template_name=name,
                form_type=form_type,
                version=TEMPLATE_VERSION,
                field_mappings={field: field.replace("_", " ").title() for field in fields},
                validation_rules={"required_fields": list(fields)},
                description=description,
            )
        )
        added += 1
    if added:
        await session.commit()
        logger.info("Seeded %d document templates", added)


async def init() -> None:
    await run_migrations()
    async with AsyncSessionLocal() as session:
        await init_superuser(session)
        await init_tier_permissions(session)
        await init_document_templates(session)


if __name__ == "__main__":  # pragma: no cover
    asyncio.run(init())
