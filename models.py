import uuid
from datetime import datetime

from extensions import db


def _uuid() -> str:
    return str(uuid.uuid4())


class Student(db.Model):
    __tablename__ = 'students'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    school_id = db.Column(db.String(36), index=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    admission_date = db.Column(db.Date, nullable=True)
    class_group_id = db.Column(db.String(36), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    fee_cycles = db.relationship('StudentFeeCycle', backref='student', lazy='dynamic')
    periods = db.relationship('FeeBillPeriod', backref='student', lazy='dynamic')

    def __repr__(self):
        return f'<Student {self.name} ({self.id})>'


class StudentFeeCycle(db.Model):
    __tablename__ = 'student_fee_cycles'
    __table_args__ = (
        db.UniqueConstraint('student_id', 'fee_cycle', 'effective_from', name='uq_student_fee_cycles_student_cycle_from'),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), nullable=False, index=True)
    school_id = db.Column(db.String(36), nullable=False, index=True)
    fee_cycle = db.Column(db.String(16), nullable=False)  # monthly/quarterly/yearly/one-time
    effective_from = db.Column(db.Date, nullable=False)
    effective_to = db.Column(db.Date, nullable=True)  # NULL == open-ended
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<StudentFeeCycle {self.student_id} {self.fee_cycle} from={self.effective_from}>'


class FeeBillPeriod(db.Model):
    __tablename__ = 'fee_bill_periods'
    __table_args__ = (
        db.UniqueConstraint(
            'student_id', 'period_type', 'period_year', 'period_month', 'period_quarter',
            name='uq_fee_bill_periods_natural_key',
        ),
        db.Index('ix_fee_bill_periods_student_status', 'student_id', 'status'),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), nullable=False)
    school_id = db.Column(db.String(36), nullable=False, index=True)
    period_type = db.Column(db.String(16), nullable=False)
    period_year = db.Column(db.Integer, nullable=False)
    # 0 == not applicable; NULLs would defeat the unique constraint
    period_month = db.Column(db.Integer, nullable=False, default=0, server_default='0')
    period_quarter = db.Column(db.Integer, nullable=False, default=0, server_default='0')
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')
    expected_amount = db.Column(db.Numeric(12, 2), nullable=True)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=True)
    balance_amount = db.Column(db.Numeric(12, 2), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    bill = db.relationship('FeeBill', backref='period', uselist=False)

    def __repr__(self):
        return f'<FeeBillPeriod {self.student_id} {self.period_type} {self.period_year}/{self.period_month or self.period_quarter}>'


class FeeBill(db.Model):
    __tablename__ = 'fee_bills'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    period_id = db.Column(db.String(36), db.ForeignKey('fee_bill_periods.id'), nullable=False, unique=True)
    due_date = db.Column(db.Date, nullable=False)
    net_amount = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    payments = db.relationship('FeePayment', backref='bill', cascade="all, delete-orphan")

    def __repr__(self):
        return f'<FeeBill Period={self.period_id} Due={self.due_date} Net={self.net_amount}>'


class FeePayment(db.Model):
    __tablename__ = 'fee_payments'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    bill_id = db.Column(db.String(36), db.ForeignKey('fee_bills.id'), nullable=False, index=True)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=True)

    def __repr__(self):
        return f'<FeePayment Bill={self.bill_id} Paid={self.amount_paid}>'
