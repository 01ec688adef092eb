from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

def get_now_utc():
    """Naive UTC timestamp (SQLite drops tzinfo anyway)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

db = SQLAlchemy()

# Roles (closed set, stored as plain strings)
ROLE_SUPERADMIN = 'superadmin'
ROLE_ADMIN = 'admin'
ROLE_USER = 'user'
ROLES = (ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_USER)


# Screen set of an AccessGrant. The composite key makes membership a set.
access_grant_screen = db.Table('access_grant_screen',
    db.Column('grant_id', db.Integer, db.ForeignKey('access_grant.id', ondelete='CASCADE'), primary_key=True),
    db.Column('screen_id', db.Integer, db.ForeignKey('screen.id', ondelete='CASCADE'), primary_key=True)
)


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_USER)
    created_at = db.Column(db.DateTime, default=get_now_utc)
    updated_at = db.Column(db.DateTime, default=get_now_utc, onupdate=get_now_utc)

    grants = db.relationship('AccessGrant', backref='user', lazy=True, cascade="all, delete-orphan")

    @property
    def is_superadmin(self):
        return self.role == ROLE_SUPERADMIN

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'role': self.role
        }


class Division(db.Model):
    # Ids key the validator cache, so a deleted id must never come back
    __table_args__ = {'sqlite_autoincrement': True}
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    code = db.Column(db.String(50), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=get_now_utc)
    updated_at = db.Column(db.DateTime, default=get_now_utc, onupdate=get_now_utc)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'code': self.code}


class Screen(db.Model):
    __table_args__ = {'sqlite_autoincrement': True}
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), unique=True, nullable=False) # e.g. "sales", "production"
    title = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=get_now_utc)
    updated_at = db.Column(db.DateTime, default=get_now_utc, onupdate=get_now_utc)

    def to_dict(self):
        return {'id': self.id, 'key': self.key, 'title': self.title}


class FormDefinition(db.Model):
    __tablename__ = 'form_definition'
    id = db.Column(db.Integer, primary_key=True)
    division_id = db.Column(db.Integer, db.ForeignKey('division.id'), nullable=False)
    screen_id = db.Column(db.Integer, db.ForeignKey('screen.id'), nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    schema = db.Column(db.JSON, nullable=False) # JSON Schema used to validate submissions
    ui_schema = db.Column(db.JSON, nullable=False, default=dict) # UI hints, never validated
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=get_now_utc)
    updated_at = db.Column(db.DateTime, default=get_now_utc, onupdate=get_now_utc)

    __table_args__ = (
        db.UniqueConstraint('division_id', 'screen_id', 'version', name='uq_form_definition_version'),
        db.Index('ix_form_definition_lookup', 'division_id', 'screen_id', 'is_active'),
        # At most one active row per pair, enforced by the database
        db.Index('uq_form_definition_active', 'division_id', 'screen_id', unique=True,
                 sqlite_where=db.text('is_active'), postgresql_where=db.text('is_active')),
    )

    division = db.relationship('Division', backref=db.backref('form_definitions', lazy='dynamic'))
    screen = db.relationship('Screen', backref=db.backref('form_definitions', lazy='dynamic'))

    def to_dict(self):
        return {
            'id': self.id,
            'division_id': self.division_id,
            'screen_id': self.screen_id,
            'version': self.version,
            'schema': self.schema,
            'ui_schema': self.ui_schema or {},
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


class Submission(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    division_id = db.Column(db.Integer, db.ForeignKey('division.id'), nullable=False)
    screen_id = db.Column(db.Integer, db.ForeignKey('screen.id'), nullable=False)
    form_version = db.Column(db.Integer, nullable=False) # Version validated against, never recomputed
    submitted_by_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True, index=True)
    data = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, default=get_now_utc, nullable=False)

    __table_args__ = (
        db.Index('ix_submission_recent', 'division_id', 'screen_id', 'created_at'),
    )

    submitted_by = db.relationship('User', backref=db.backref('submissions', lazy='dynamic', passive_deletes=True))

    def to_dict(self):
        submitter = None
        if self.submitted_by:
            submitter = {'id': self.submitted_by.id, 'full_name': self.submitted_by.full_name}
        return {
            'id': self.id,
            'division_id': self.division_id,
            'screen_id': self.screen_id,
            'form_version': self.form_version,
            'submitted_by': submitter,
            'data': self.data,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


class AccessGrant(db.Model):
    __tablename__ = 'access_grant'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    division_id = db.Column(db.Integer, db.ForeignKey('division.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=get_now_utc)
    updated_at = db.Column(db.DateTime, default=get_now_utc, onupdate=get_now_utc)

    __table_args__ = (db.UniqueConstraint('user_id', 'division_id', name='uq_access_grant_user_division'),)

    division = db.relationship('Division')
    screens = db.relationship('Screen', secondary=access_grant_screen, lazy='selectin', order_by='Screen.id')

    @property
    def screen_ids(self):
        return [s.id for s in self.screens]

    def to_dict(self, expand=False):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'division_id': self.division_id,
            'screen_ids': self.screen_ids
        }
        if expand:
            data['division'] = self.division.to_dict() if self.division else None
            data['screens'] = [s.to_dict() for s in self.screens]
        return data
