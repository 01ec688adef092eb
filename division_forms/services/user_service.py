import logging

from sqlalchemy import or_
from werkzeug.security import generate_password_hash

from division_forms.models import db, User, Submission, ROLES, ROLE_SUPERADMIN, ROLE_USER
from division_forms.errors import BadRequest, Conflict, NotFound, LastSuperadminProtected

logger = logging.getLogger(__name__)


def normalize_email(email):
    return str(email or '').strip().lower()


class UserService:
    @staticmethod
    def get_user(user_id):
        user = db.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    @staticmethod
    def search_users(q=None, page=1, limit=50):
        query = User.query
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
        total = query.count()
        items = query.order_by(User.full_name.asc()).offset((page - 1) * limit).limit(limit).all()
        return items, total

    @staticmethod
    def create_user(full_name, email, password, role=ROLE_USER):
        if role not in ROLES:
            raise BadRequest("Invalid role")
        email = normalize_email(email)
        if User.query.filter_by(email=email).first():
            raise Conflict("Email already in use")

        user = User(
            full_name=str(full_name).strip(),
            email=email,
            password_hash=generate_password_hash(password),
            role=role
        )
        db.session.add(user)
        db.session.commit()
        return user

    @staticmethod
    def update_profile(user_id, full_name=None, email=None):
        user = UserService.get_user(user_id)
        changed = False

        if isinstance(full_name, str) and full_name.strip():
            user.full_name = full_name.strip()
            changed = True

        if isinstance(email, str) and email.strip():
            email = normalize_email(email)
            taken = User.query.filter(User.email == email, User.id != user.id).first()
            if taken:
                raise Conflict("Email already in use")
            user.email = email
            changed = True

        if not changed:
            raise BadRequest("Nothing to update")
        db.session.commit()
        return user

    @staticmethod
    def reset_password(user_id, password):
        user = UserService.get_user(user_id)
        user.password_hash = generate_password_hash(password)
        db.session.commit()
        return user

    @staticmethod
    def _assert_not_last_superadmin(user, action):
        """
        Must run inside the transaction that performs the mutation.
        Superadmin rows are locked first so two concurrent demotions
        cannot both see a count of two.
        """
        if user.role != ROLE_SUPERADMIN:
            return
        superadmins = User.query.filter_by(role=ROLE_SUPERADMIN).with_for_update().all()
        if len(superadmins) <= 1:
            db.session.rollback()
            logger.warning("Blocked attempt to %s the last superadmin (user %s)", action, user.id)
            raise LastSuperadminProtected(f"Blocked: cannot {action} the last remaining superadmin")

    @staticmethod
    def change_role(user_id, role):
        if role not in ROLES:
            raise BadRequest("Invalid role")
        user = UserService.get_user(user_id)
        if role != ROLE_SUPERADMIN:
            UserService._assert_not_last_superadmin(user, 'change role of')
        user.role = role
        db.session.commit()
        return user

    @staticmethod
    def delete_user(user_id):
        user = UserService.get_user(user_id)
        UserService._assert_not_last_superadmin(user, 'delete')

        # Submissions outlive their submitter
        Submission.query.filter_by(submitted_by_id=user.id).update(
            {'submitted_by_id': None}, synchronize_session=False
        )
        db.session.delete(user)
        db.session.commit()
        return user_id
