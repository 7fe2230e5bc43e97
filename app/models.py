from enum import Enum
from flask_security import UserMixin, RoleMixin
from app.extensions import db
from app.utils import utcnow

# Association table for many-to-many relationship between users and roles
roles_users = db.Table('roles_users',
    db.Column('user_id', db.Integer(), db.ForeignKey('user.id')),
    db.Column('role_id', db.Integer(), db.ForeignKey('role.id'))
)

# ========== Enums para Estados ==========

class DonationStatus(str, Enum):
    """Estados posibles para donaciones"""
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    REFUNDED = 'refunded'
    CANCELED = 'canceled'

    @classmethod
    def all(cls):
        return [status.value for status in cls]

    @classmethod
    def transitions(cls):
        """Allowed edges of the donation lifecycle"""
        return {
            cls.PENDING: {cls.COMPLETED, cls.FAILED, cls.CANCELED},
            cls.COMPLETED: {cls.REFUNDED},
            cls.FAILED: set(),
            cls.REFUNDED: set(),
            cls.CANCELED: set(),
        }

    @classmethod
    def can_transition(cls, source, target):
        return cls(target) in cls.transitions()[cls(source)]

class DonationKind(str, Enum):
    ONE_TIME = 'one_time'
    RECURRING = 'recurring'

class PaymentMethod(str, Enum):
    CARD = 'card'
    OFFLINE = 'offline'

class RecurrenceStatus(str, Enum):
    """Estados posibles para donaciones recurrentes"""
    ACTIVE = 'active'
    PAUSED = 'paused'
    CANCELED = 'canceled'
    EXPIRED = 'expired'

    @classmethod
    def all(cls):
        return [status.value for status in cls]

    @classmethod
    def terminal_statuses(cls):
        """Estados de los que una recurrencia ya no sale"""
        return [cls.CANCELED.value, cls.EXPIRED.value]

    @classmethod
    def can_be_canceled_from(cls):
        return [cls.ACTIVE.value, cls.PAUSED.value]

class RecurrenceFrequency(str, Enum):
    MONTHLY = 'monthly'
    QUARTERLY = 'quarterly'
    YEARLY = 'yearly'

    @property
    def months(self):
        return {'monthly': 1, 'quarterly': 3, 'yearly': 12}[self.value]

class ReceiptStatus(str, Enum):
    GENERATED = 'generated'
    CANCELED = 'canceled'

class ReceiptKind(str, Enum):
    SINGLE = 'single'
    ANNUAL = 'annual'

class ProjectStatus(str, Enum):
    """Estados posibles para proyectos"""
    DRAFT = 'draft'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    ARCHIVED = 'archived'

    @classmethod
    def accepting_funds(cls):
        """Estados en los que un proyecto acepta donaciones"""
        return [cls.ACTIVE.value]

class Role(db.Model, RoleMixin):
    id = db.Column(db.Integer(), primary_key=True)
    name = db.Column(db.String(80), unique=True)
    description = db.Column(db.String(255))

    def __repr__(self):
        return f'<Role {self.name}>'

class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    username = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    address_line1 = db.Column(db.String(255))
    postal_code = db.Column(db.String(10))
    city = db.Column(db.String(100))
    password = db.Column(db.String(255))
    active = db.Column(db.Boolean(), default=True)
    fs_uniquifier = db.Column(db.String(255), unique=True, nullable=False)
    confirmed_at = db.Column(db.DateTime())
    created_at = db.Column(db.DateTime(), default=utcnow)

    # Relationships
    roles = db.relationship('Role', secondary=roles_users, backref=db.backref('users', lazy='dynamic'))

    @property
    def full_name(self):
        name = f'{self.first_name or ""} {self.last_name or ""}'.strip()
        return name or self.username

    def __repr__(self):
        return f'<User {self.username}>'

class Project(db.Model):
    """Fundraising project (managed by the projects module, only the fund counter lives here)"""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(250), unique=True, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=ProjectStatus.DRAFT.value)
    goal_amount = db.Column(db.Integer)  # Amount in cents
    collected_amount = db.Column(db.Integer, nullable=False, default=0)  # Amount in cents
    created_at = db.Column(db.DateTime(), default=utcnow)

    @property
    def is_accepting_funds(self):
        return self.status in ProjectStatus.accepting_funds()

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'status': self.status,
            'goal_amount': self.goal_amount / 100 if self.goal_amount is not None else None,
            'collected_amount': self.collected_amount / 100,
        }

    def __repr__(self):
        return f'<Project {self.slug} - {self.collected_amount / 100}€>'

class DonorSnapshotMixin:
    """Inline donor identity for gifts made without an account"""
    donor_email = db.Column(db.String(255))
    donor_first_name = db.Column(db.String(100))
    donor_last_name = db.Column(db.String(100))
    donor_address = db.Column(db.String(255))
    donor_postal_code = db.Column(db.String(10))
    donor_city = db.Column(db.String(100))

    @property
    def donor_name(self):
        if self.user is not None:
            return self.user.full_name
        return f'{self.donor_first_name or ""} {self.donor_last_name or ""}'.strip()

    @property
    def contact_email(self):
        if self.user is not None:
            return self.user.email
        return self.donor_email

class Donation(DonorSnapshotMixin, db.Model):
    """A single monetary gift, one-time or generated by a billing cycle"""
    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Integer, nullable=False)  # Amount in cents
    currency = db.Column(db.String(3), default='eur')
    kind = db.Column(db.String(20), nullable=False, default=DonationKind.ONE_TIME.value)
    status = db.Column(db.String(20), nullable=False, default=DonationStatus.PENDING.value, index=True)
    payment_method = db.Column(db.String(20), default=PaymentMethod.CARD.value)
    is_anonymous = db.Column(db.Boolean(), default=False)
    receipt_requested = db.Column(db.Boolean(), default=True)
    receipt_number = db.Column(db.String(40))

    # Gateway correlation
    gateway_intent_id = db.Column(db.String(255), unique=True)
    gateway_charge_id = db.Column(db.String(255), index=True)
    gateway_invoice_id = db.Column(db.String(255), unique=True)

    created_at = db.Column(db.DateTime(), default=utcnow)
    updated_at = db.Column(db.DateTime(), default=utcnow, onupdate=utcnow)
    paid_at = db.Column(db.DateTime())  # Set once, on completion

    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=True)
    recurrence_id = db.Column(db.Integer, db.ForeignKey('donation_recurrence.id'), nullable=True)

    # Relationships
    user = db.relationship('User', backref=db.backref('donations', lazy='dynamic'))
    project = db.relationship('Project', backref=db.backref('donations', lazy='dynamic'))
    recurrence = db.relationship('DonationRecurrence', backref=db.backref('donations', lazy='dynamic'))

    @property
    def amount_euros(self):
        """Return amount in euros"""
        return self.amount / 100

    def to_dict(self):
        return {
            'id': self.id,
            'amount': self.amount_euros,
            'currency': self.currency,
            'kind': self.kind,
            'status': self.status,
            'payment_method': self.payment_method,
            'is_anonymous': self.is_anonymous,
            'project_id': self.project_id,
            'recurrence_id': self.recurrence_id,
            'receipt_requested': self.receipt_requested,
            'receipt_number': self.receipt_number,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
        }

    def __repr__(self):
        return f'<Donation {self.amount_euros}€ from {self.contact_email or "anonymous"} - {self.status}>'

class DonationRecurrence(DonorSnapshotMixin, db.Model):
    """Standing subscription producing one donation per billing cycle"""
    __tablename__ = 'donation_recurrence'

    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Integer, nullable=False)  # Amount in cents, per cycle
    currency = db.Column(db.String(3), default='eur')
    frequency = db.Column(db.String(20), nullable=False, default=RecurrenceFrequency.MONTHLY.value)
    status = db.Column(db.String(20), nullable=False, default=RecurrenceStatus.ACTIVE.value, index=True)
    gateway_subscription_id = db.Column(db.String(255), unique=True)
    gateway_customer_id = db.Column(db.String(255))
    payment_count = db.Column(db.Integer, nullable=False, default=0)
    last_payment_date = db.Column(db.DateTime())
    next_payment_date = db.Column(db.DateTime())
    canceled_at = db.Column(db.DateTime())
    created_at = db.Column(db.DateTime(), default=utcnow)
    updated_at = db.Column(db.DateTime(), default=utcnow, onupdate=utcnow)

    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=True)

    user = db.relationship('User', backref=db.backref('recurrences', lazy='dynamic'))
    project = db.relationship('Project')

    @property
    def amount_euros(self):
        return self.amount / 100

    @property
    def monthly_amount(self):
        """Amount normalized to one month, in cents"""
        return self.amount / RecurrenceFrequency(self.frequency).months

    def to_dict(self):
        return {
            'id': self.id,
            'amount': self.amount_euros,
            'currency': self.currency,
            'frequency': self.frequency,
            'status': self.status,
            'project_id': self.project_id,
            'payment_count': self.payment_count,
            'last_payment_date': self.last_payment_date.isoformat() if self.last_payment_date else None,
            'next_payment_date': self.next_payment_date.isoformat() if self.next_payment_date else None,
            'canceled_at': self.canceled_at.isoformat() if self.canceled_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<DonationRecurrence {self.amount_euros}€/{self.frequency} - {self.status}>'

class DonationReceipt(db.Model):
    """Immutable fiscal receipt, canceled (never deleted) when its donation is refunded"""
    __tablename__ = 'donation_receipt'

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(20), nullable=False, default=ReceiptKind.SINGLE.value)
    receipt_number = db.Column(db.String(60), unique=True, nullable=False)
    fiscal_year = db.Column(db.Integer, nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)  # Snapshot, in cents
    donations_count = db.Column(db.Integer, nullable=False, default=1)
    artifact_ref = db.Column(db.String(300))
    status = db.Column(db.String(20), nullable=False, default=ReceiptStatus.GENERATED.value)
    created_at = db.Column(db.DateTime(), default=utcnow)
    canceled_at = db.Column(db.DateTime())

    donation_id = db.Column(db.Integer, db.ForeignKey('donation.id'), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)

    donation = db.relationship('Donation', backref=db.backref('receipts', lazy='dynamic'))
    user = db.relationship('User')

    @property
    def amount_euros(self):
        return self.amount / 100

    def to_dict(self):
        return {
            'id': self.id,
            'kind': self.kind,
            'receipt_number': self.receipt_number,
            'fiscal_year': self.fiscal_year,
            'amount': self.amount_euros,
            'donations_count': self.donations_count,
            'status': self.status,
            'donation_id': self.donation_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<DonationReceipt {self.receipt_number} - {self.status}>'

class ReceiptSequence(db.Model):
    """Per (scope, fiscal year) receipt counter, only ever bumped with an atomic UPDATE"""
    __tablename__ = 'receipt_sequence'

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(64), nullable=False)
    fiscal_year = db.Column(db.Integer, nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (db.UniqueConstraint('scope', 'fiscal_year', name='unique_receipt_sequence_scope_year'),)

    def __repr__(self):
        return f'<ReceiptSequence {self.scope}/{self.fiscal_year}: {self.last_value}>'

class WebhookEvent(db.Model):
    """Gateway events already applied; the unique event id is the idempotency gate"""
    __tablename__ = 'webhook_event'

    id = db.Column(db.Integer, primary_key=True)
    gateway_event_id = db.Column(db.String(255), unique=True, nullable=False)
    event_type = db.Column(db.String(255), nullable=False)
    received_at = db.Column(db.DateTime(), default=utcnow)

    def __repr__(self):
        return f'<WebhookEvent {self.gateway_event_id} ({self.event_type})>'


class AuditLog(db.Model):
    """Administrative actions on donations, with the state before and after"""
    __tablename__ = 'audit_log'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    action = db.Column(db.String(50), nullable=False, index=True)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(50))
    old_values = db.Column(db.JSON)
    new_values = db.Column(db.JSON)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    created_at = db.Column(db.DateTime(), default=utcnow, index=True)

    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'action': self.action,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'old_values': self.old_values,
            'new_values': self.new_values,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<AuditLog {self.action} {self.entity_type}:{self.entity_id}>'
