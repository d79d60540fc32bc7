"""Create quiz, question, option, attempt and answer tables

Revision ID: a20261016quiz
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a20261016quiz"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'quizzes',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('entity_type', sa.String(20), nullable=True),
        sa.Column('entity_id', sa.Integer, nullable=False),
        sa.Column('time_limit_sec', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('display_order', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('entity_id > 0', name='ck_quizzes_entity_id_positive'),
        sa.CheckConstraint(
            "entity_type IN ('Lesson', 'Chapter', 'Course', 'Subject')",
            name='ck_quizzes_entity_type'
        ),
    )
    op.create_index('ix_quizzes_entity', 'quizzes', ['entity_type', 'entity_id'])
    op.create_index('ix_quizzes_is_active', 'quizzes', ['is_active'])

    # correct_option_id gets its foreign key once options exists
    op.create_table(
        'questions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('quiz_id', sa.Integer, sa.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('text', sa.Text, nullable=False),
        sa.Column('points', sa.Numeric(6, 2), nullable=False, server_default='1.00'),
        sa.Column('display_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('correct_option_id', sa.Integer, nullable=True),
        *_timestamps(),
        sa.CheckConstraint('points > 0', name='ck_questions_points_positive'),
    )
    op.create_index('ix_questions_quiz_id', 'questions', ['quiz_id'])

    op.create_table(
        'options',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('question_id', sa.Integer, sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('text', sa.Text, nullable=False),
        sa.Column('display_order', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('ix_options_question_id', 'options', ['question_id'])

    op.create_foreign_key(
        'fk_questions_correct_option_id',
        'questions', 'options',
        ['correct_option_id'], ['id']
    )

    op.create_table(
        'quiz_attempts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('quiz_id', sa.Integer, sa.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.Integer, nullable=False),
        sa.Column('score', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('duration_sec', sa.Integer, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_quiz_attempts_quiz_id', 'quiz_attempts', ['quiz_id'])
    op.create_index('ix_quiz_attempts_student_id', 'quiz_attempts', ['student_id'])

    op.create_table(
        'attempt_answers',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('attempt_id', sa.Integer, sa.ForeignKey('quiz_attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.Integer, sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('selected_option_id', sa.Integer, sa.ForeignKey('options.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_correct', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('points_awarded', sa.Numeric(6, 2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_answers_attempt_question'),
    )
    op.create_index('ix_attempt_answers_question_id', 'attempt_answers', ['question_id'])


def downgrade() -> None:
    op.drop_index('ix_attempt_answers_question_id', table_name='attempt_answers')
    op.drop_table('attempt_answers')

    op.drop_index('ix_quiz_attempts_student_id', table_name='quiz_attempts')
    op.drop_index('ix_quiz_attempts_quiz_id', table_name='quiz_attempts')
    op.drop_table('quiz_attempts')

    op.drop_constraint('fk_questions_correct_option_id', 'questions', type_='foreignkey')
    op.drop_index('ix_options_question_id', table_name='options')
    op.drop_table('options')

    op.drop_index('ix_questions_quiz_id', table_name='questions')
    op.drop_table('questions')

    op.drop_index('ix_quizzes_is_active', table_name='quizzes')
    op.drop_index('ix_quizzes_entity', table_name='quizzes')
    op.drop_table('quizzes')
