from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum, ForeignKeyConstraint, Index, Integer, PrimaryKeyConstraint, Table, Text, Uuid, false
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import uuid

from ..common.clock import utc_now
from .db_enums import LessonTypeEnum, PaymentTypeEnum, CancellationOutcomeEnum

class Base(DeclarativeBase):
    pass


class Students(Base):
    __tablename__ = 'students'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='students_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(Text)
    parent_name: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    # Cached ledger balance, always rewritten from a full recomputation.
    balance: Mapped[int] = mapped_column(Integer, default=0, server_default='0')
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utc_now)

    lessons: Mapped[list['Lessons']] = relationship(
        'Lessons',
        back_populates='student',
        cascade='all, delete-orphan'
    )
    payments: Mapped[list['Payments']] = relationship(
        'Payments',
        back_populates='student',
        cascade='all, delete-orphan'
    )


t_payment_lessons = Table(
    'payment_lessons', Base.metadata,
    Column('payment_id', Uuid, primary_key=True, nullable=False),
    Column('lesson_id', Uuid, primary_key=True, nullable=False),
    ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE', name='payment_lessons_payment_id_fkey'),
    ForeignKeyConstraint(['lesson_id'], ['lessons.id'], ondelete='CASCADE', name='payment_lessons_lesson_id_fkey'),
    PrimaryKeyConstraint('payment_id', 'lesson_id', name='payment_lessons_pkey'),
    Index('idx_payment_lessons_lesson_id', 'lesson_id')
)


class Lessons(Base):
    __tablename__ = 'lessons'
    __table_args__ = (
        CheckConstraint('cost >= 0', name='lessons_non_negative_cost'),
        ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE', name='lessons_student_id_fkey'),
        PrimaryKeyConstraint('id', name='lessons_pkey'),
        Index('idx_lessons_student_id', 'student_id'),
        Index('idx_lessons_start_time', 'start_time')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    start_time: Mapped[datetime.datetime] = mapped_column(DateTime(True))
    end_time: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))
    cost: Mapped[int] = mapped_column(Integer)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    notes: Mapped[Optional[str]] = mapped_column(Text)
    lesson_type: Mapped[str] = mapped_column(
        Enum(*LessonTypeEnum.get_all_names(), name='lesson_type_enum'),
        default=LessonTypeEnum.INDIVIDUAL.value
    )
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utc_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utc_now, onupdate=utc_now)

    student: Mapped['Students'] = relationship('Students', back_populates='lessons')
    payments: Mapped[list['Payments']] = relationship(
        'Payments',
        secondary='payment_lessons',
        back_populates='lessons'
    )
    cancellation: Mapped[Optional['LessonCancellations']] = relationship(
        'LessonCancellations',
        back_populates='lesson',
        cascade='all, delete-orphan',
        uselist=False
    )


class Payments(Base):
    __tablename__ = 'payments'
    __table_args__ = (
        CheckConstraint('amount > 0', name='payments_positive_amount'),
        ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE', name='payments_student_id_fkey'),
        PrimaryKeyConstraint('id', name='payments_pkey'),
        Index('idx_payments_student_id', 'student_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    amount: Mapped[int] = mapped_column(Integer)
    payment_date: Mapped[datetime.datetime] = mapped_column(DateTime(True))
    description: Mapped[Optional[str]] = mapped_column(Text)
    payment_type: Mapped[str] = mapped_column(
        Enum(*PaymentTypeEnum.get_all_names(), name='payment_type_enum'),
        default=PaymentTypeEnum.REGULAR.value
    )
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utc_now)

    student: Mapped['Students'] = relationship('Students', back_populates='payments')
    lessons: Mapped[list['Lessons']] = relationship(
        'Lessons',
        secondary='payment_lessons',
        back_populates='payments'
    )


class LessonCancellations(Base):
    __tablename__ = 'lesson_cancellations'
    __table_args__ = (
        ForeignKeyConstraint(['lesson_id'], ['lessons.id'], ondelete='CASCADE', name='lesson_cancellations_lesson_id_fkey'),
        PrimaryKeyConstraint('lesson_id', name='lesson_cancellations_pkey')
    )

    lesson_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    cancelled_at: Mapped[datetime.datetime] = mapped_column(DateTime(True))
    outcome: Mapped[str] = mapped_column(Enum(*CancellationOutcomeEnum.get_all_names(), name='cancellation_outcome_enum'))
    amount: Mapped[int] = mapped_column(Integer)
    was_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    hours_notice: Mapped[int] = mapped_column(Integer)

    lesson: Mapped['Lessons'] = relationship('Lessons', back_populates='cancellation')
