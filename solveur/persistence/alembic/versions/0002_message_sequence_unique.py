"""unique message sequence per conversation

Revision ID: 0002_message_sequence_unique
Revises: 0001_init
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op


revision = "0002_message_sequence_unique"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Concurrent turns racing on max(sequence)+1 now fail instead of writing duplicates.
    op.create_unique_constraint(
        "uq_messages_conversation_sequence", "messages", ["conversation_id", "sequence"]
    )


def downgrade() -> None:
    op.drop_constraint("uq_messages_conversation_sequence", "messages", type_="unique")
