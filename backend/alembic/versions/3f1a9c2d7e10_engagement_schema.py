"""Courses, progress, points and feed tables

Revision ID: 3f1a9c2d7e10
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from core.database import GUID

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # === Identity mirror ===

    op.create_table(
        'users',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('email', sa.String(255)),
        sa.Column('first_name', sa.String(100)),
        sa.Column('last_name', sa.String(100)),
        sa.Column('profile_image_url', sa.String(500)),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # === Courses ===

    op.create_table(
        'courses',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('thumbnail_url', sa.String(500)),
        sa.Column('instructor_id', GUID(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('is_published', sa.Boolean, default=False),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
    )

    op.create_table(
        'course_modules',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('course_id', GUID(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('order_index', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime),
    )
    op.create_index('ix_course_modules_course_order', 'course_modules', ['course_id', 'order_index'])

    op.create_table(
        'lessons',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('module_id', GUID(), sa.ForeignKey('course_modules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('content', sa.Text),
        sa.Column('video_url', sa.String(500)),
        sa.Column('duration', sa.Integer),
        sa.Column('order_index', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime),
    )
    op.create_index('ix_lessons_module_order', 'lessons', ['module_id', 'order_index'])

    op.create_table(
        'enrollments',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('user_id', GUID(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', GUID(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('enrolled_at', sa.DateTime),
    )
    op.create_index('ix_enrollments_user_course', 'enrollments', ['user_id', 'course_id'], unique=True)

    op.create_table(
        'lesson_progress',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('user_id', GUID(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lesson_id', GUID(), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_completed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('first_completed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_lesson_progress_user_lesson', 'lesson_progress', ['user_id', 'lesson_id'], unique=True)

    # === Gamification ===

    op.create_table(
        'points_accounts',
        sa.Column('user_id', GUID(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('points', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.CheckConstraint('points >= 0', name='ck_points_accounts_non_negative'),
    )
    op.create_index('ix_points_accounts_ranking', 'points_accounts', ['points', 'created_at'])

    op.create_table(
        'point_events',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('user_id', GUID(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('reason', sa.String(50), nullable=False),
        sa.Column('reference_id', GUID()),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_point_events_positive'),
    )
    op.create_index('ix_point_events_user_created', 'point_events', ['user_id', 'created_at'])

    # === Feed ===

    op.create_table(
        'posts',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('author_id', GUID(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255)),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('category', sa.String(50)),
        sa.Column('created_at', sa.DateTime),
    )

    op.create_table(
        'post_likes',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('post_id', GUID(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', GUID(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime),
    )
    op.create_index('ix_post_likes_post_user', 'post_likes', ['post_id', 'user_id'], unique=True)

    op.create_table(
        'comments',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('post_id', GUID(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', GUID(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_id', GUID(), sa.ForeignKey('comments.id', ondelete='CASCADE')),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime),
    )
    op.create_index('ix_comments_post_created', 'comments', ['post_id', 'created_at'])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('comments')
    op.drop_table('post_likes')
    op.drop_table('posts')
    op.drop_table('point_events')
    op.drop_table('points_accounts')
    op.drop_table('lesson_progress')
    op.drop_table('enrollments')
    op.drop_table('lessons')
    op.drop_table('course_modules')
    op.drop_table('courses')
    op.drop_table('users')
