from typing import Optional

from sqlalchemy import CheckConstraint, Date, DateTime, Enum, ForeignKeyConstraint, Index, Integer, Numeric, PrimaryKeyConstraint, Text, UniqueConstraint, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

class Base(DeclarativeBase):
    pass


class Parents(Base):
    __tablename__ = 'parents'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='parents_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, server_default=text('gen_random_uuid()'))
    name: Mapped[str] = mapped_column(Text)
    # Subjects this family prepays for; empty means legacy all-subjects billing
    prepaid_subjects: Mapped[list] = mapped_column(JSONB, server_default=text("'[]'::jsonb"))

    payments: Mapped[list['Payments']] = relationship('Payments', back_populates='parent')


class Payments(Base):
    __tablename__ = 'payments'
    __table_args__ = (
        CheckConstraint('sessions_used >= 0', name='payments_sessions_used_non_negative'),
        CheckConstraint('sessions_prepaid >= 0 AND sessions_rolled_over >= 0', name='payments_sessions_non_negative'),
        CheckConstraint('amount_due >= 0 AND amount_paid >= 0', name='payments_amounts_non_negative'),
        ForeignKeyConstraint(['parent_id'], ['parents.id'], ondelete='CASCADE', name='payments_parent_id_fkey'),
        PrimaryKeyConstraint('id', name='payments_pkey'),
        Index('idx_payments_parent_month', 'parent_id', 'month')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, server_default=text('gen_random_uuid()'))
    parent_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    month: Mapped[datetime.date] = mapped_column(Date)
    payment_type: Mapped[str] = mapped_column(Enum('invoice', 'prepaid', name='payment_type_enum'), server_default=text("'invoice'::payment_type_enum"))
    status: Mapped[str] = mapped_column(Enum('unpaid', 'partial', 'paid', name='payment_status_enum'), server_default=text("'unpaid'::payment_status_enum"))
    amount_due: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), server_default=text('0'))
    amount_paid: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), server_default=text('0'))
    sessions_prepaid: Mapped[int] = mapped_column(Integer, server_default=text('0'))
    sessions_used: Mapped[int] = mapped_column(Integer, server_default=text('0'))
    sessions_rolled_over: Mapped[int] = mapped_column(Integer, server_default=text('0'))
    subject: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=text('now()'))

    parent: Mapped['Parents'] = relationship('Parents', back_populates='payments')
    lessons: Mapped[list['PaymentLessons']] = relationship('PaymentLessons', back_populates='payment', cascade='all, delete-orphan')


class PaymentLessons(Base):
    __tablename__ = 'payment_lessons'
    __table_args__ = (
        ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE', name='payment_lessons_payment_id_fkey'),
        PrimaryKeyConstraint('payment_id', 'lesson_id', name='payment_lessons_pkey'),
        Index('idx_payment_lessons_lesson', 'lesson_id')
    )

    payment_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    lesson_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    amount: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2))

    payment: Mapped['Payments'] = relationship('Payments', back_populates='lessons')


class PrepaidConsumptions(Base):
    """One row per lesson currently drawing a session from a prepaid payment."""
    __tablename__ = 'prepaid_consumptions'
    __table_args__ = (
        ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE', name='prepaid_consumptions_payment_id_fkey'),
        PrimaryKeyConstraint('lesson_id', name='prepaid_consumptions_pkey'),
        UniqueConstraint('lesson_id', 'payment_id', name='prepaid_consumptions_lesson_payment_key')
    )

    lesson_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    payment_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    consumed_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=text('now()'))
