"""Student contact, health and school fields

Revision ID: 7d2f4e91c8a5
Revises: 3c1e9a7b2d40
Create Date: 2026-04-14 10:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7d2f4e91c8a5'
down_revision = '3c1e9a7b2d40'
branch_labels = None
depends_on = None


PROFILE_COLUMNS = (
    ('address', sa.Text()),
    ('emergency_contact', sa.String(length=200)),
    ('date_of_birth', sa.Date()),
    ('gender', sa.String(length=20)),
    ('blood_type', sa.String(length=5)),
    ('allergies', sa.Text()),
    ('medical_conditions', sa.Text()),
    ('school_year', sa.String(length=20)),
    ('school_level', sa.String(length=50)),
    ('department', sa.String(length=100)),
)


def upgrade():
    with op.batch_alter_table('students', schema=None) as batch_op:
        for name, column_type in PROFILE_COLUMNS:
            batch_op.add_column(sa.Column(name, column_type, nullable=True))
        batch_op.create_index(batch_op.f('ix_students_department'), ['department'], unique=False)


def downgrade():
    with op.batch_alter_table('students', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_students_department'))
        for name, _ in reversed(PROFILE_COLUMNS):
            batch_op.drop_column(name)
