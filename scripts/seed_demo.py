from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
import sys

from solveur.persistence.db import SessionLocal
from solveur.persistence.repos import tenants as tenants_repo
from solveur.providers.embeddings.factory import get_embedding_client
from solveur.providers.vectors.factory import get_vector_client
from solveur.services.ingestion import UploadedText, create_knowledge_base, ingest_document
from solveur.services.onboarding import TenantSignup, onboard_tenant


DEMO_TENANT_SLUG = "demo-company"
DEMO_TENANT_NAME = "Demo Business Solutions"
DEMO_OWNER_EMAIL = "owner@demo-company.example"
DEMO_KNOWLEDGE_BASE = "Company Knowledge"


@dataclass(frozen=True)
class DemoDocument:
    title: str
    text: str


def build_demo_documents() -> tuple[DemoDocument, ...]:
    return (
        DemoDocument(
            title="Company information",
            text=(
                "Our company specializes in innovative software solutions for small and medium businesses. "
                "We offer 24/7 customer support and have been in business for over 10 years."
            ),
        ),
        DemoDocument(
            title="Products",
            text=(
                "Our main products include CRM software, inventory management systems, and automated billing "
                "solutions. All products integrate seamlessly with existing business workflows."
            ),
        ),
        DemoDocument(
            title="Support",
            text=(
                "Customer support is available Monday through Friday 9 AM to 6 PM EST. For urgent issues, our "
                "emergency hotline is available 24/7. Average response time is under 2 hours."
            ),
        ),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed the demo tenant and its knowledge base")
    parser.add_argument("--owner-password", default="demo-password", help="Password for the demo owner")
    return parser


async def seed_demo(owner_password: str) -> int:
    # Same providers as the API so the demo vectors land where chat searches.
    embedder = get_embedding_client()
    vectors = get_vector_client()
    async with SessionLocal() as session:
        if await tenants_repo.get_tenant_by_slug(session, DEMO_TENANT_SLUG) is not None:
            print("Demo tenant already seeded; skipping.")
            return 0

        result = await onboard_tenant(
            session,
            TenantSignup(
                name=DEMO_TENANT_NAME,
                slug=DEMO_TENANT_SLUG,
                owner_email=DEMO_OWNER_EMAIL,
                owner_name="Demo Owner",
                owner_password=owner_password,
                industry="technology",
                size="small",
            ),
        )
        tenant = result.tenant
        kb = await create_knowledge_base(session, tenant.id, DEMO_KNOWLEDGE_BASE, "Seeded demo content")
        failed = 0
        for document in build_demo_documents():
            stored = await ingest_document(
                session,
                tenant=tenant,
                knowledge_base_id=kb.id,
                upload=UploadedText(title=document.title, content=document.text),
                embedder=embedder,
                vectors=vectors,
            )
            if stored.status != "active":
                failed += 1
                print(f"Document '{document.title}' failed: {stored.error_message}", file=sys.stderr)
        print(f"Seeded tenant {tenant.slug} ({tenant.id}) with {len(build_demo_documents()) - failed} indexed documents.")
        return 1 if failed else 0


def main() -> int:
    args = _build_parser().parse_args()
    # Surface clear failures and exit non-zero so CI/dev scripts can detect issues.
    try:
        return asyncio.run(seed_demo(args.owner_password))
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
