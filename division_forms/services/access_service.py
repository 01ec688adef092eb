import logging

from sqlalchemy import delete, select, insert
from sqlalchemy.dialects import postgresql, sqlite, mysql

from division_forms.models import db, AccessGrant, Division, Screen, User, access_grant_screen, get_now_utc
from division_forms.errors import AccessDenied, BadRequest, NotFound

logger = logging.getLogger(__name__)

GRANT_OPS = ('set', 'add', 'remove')


def _insert_ignore(table):
    """INSERT that silently skips rows violating a unique key."""
    dialect = db.session.get_bind().dialect.name
    if dialect == 'postgresql':
        return postgresql.insert(table).on_conflict_do_nothing()
    if dialect == 'sqlite':
        return sqlite.insert(table).on_conflict_do_nothing()
    if dialect in ('mysql', 'mariadb'):
        return mysql.insert(table).prefix_with('IGNORE')
    return insert(table)


class AccessService:
    @staticmethod
    def check_access(user_id, division_id, screen_id):
        """May this user act on the division/screen pair? Raises AccessDenied."""
        grant = AccessGrant.query.filter_by(user_id=user_id, division_id=division_id).first()
        if not grant:
            logger.info("User %s denied on division %s", user_id, division_id)
            raise AccessDenied("No access to division")

        allowed = db.session.execute(
            select(access_grant_screen.c.screen_id).where(
                access_grant_screen.c.grant_id == grant.id,
                access_grant_screen.c.screen_id == screen_id
            )
        ).first()
        if not allowed:
            logger.info("User %s denied on screen %s of division %s", user_id, screen_id, division_id)
            raise AccessDenied("No access to screen")

    @staticmethod
    def _check_targets(user_id, division_id, screen_ids):
        if not db.session.get(User, user_id):
            raise NotFound("User not found")
        if not db.session.get(Division, division_id):
            raise NotFound("Division not found")
        if screen_ids:
            found = {row[0] for row in db.session.execute(select(Screen.id).where(Screen.id.in_(screen_ids)))}
            missing = sorted(set(screen_ids) - found)
            if missing:
                raise BadRequest("Unknown screen ids", details={'screen_ids': missing})

    @staticmethod
    def _lock_grant(user_id, division_id, create=False):
        """Returns the grant id, row-locked for the rest of the transaction."""
        if create:
            now = get_now_utc()
            db.session.execute(_insert_ignore(AccessGrant.__table__).values(
                user_id=user_id, division_id=division_id, created_at=now, updated_at=now
            ))
        return db.session.execute(
            select(AccessGrant.id)
            .where(AccessGrant.user_id == user_id, AccessGrant.division_id == division_id)
            .with_for_update()
        ).scalar()

    @staticmethod
    def _add_screens(grant_id, screen_ids):
        if screen_ids:
            db.session.execute(
                _insert_ignore(access_grant_screen),
                [{'grant_id': grant_id, 'screen_id': sid} for sid in screen_ids]
            )

    @staticmethod
    def update_grant_screens(user_id, division_id, op, screen_ids):
        """
        Mutates the screen set of a (user, division) grant in place:
        - set: replace with exactly screen_ids (creates the grant)
        - add: add each of screen_ids
        - remove: remove each of screen_ids
        Returns the grant, or None when add/remove target a missing grant.
        """
        if op not in GRANT_OPS:
            raise BadRequest(f"op must be one of {', '.join(GRANT_OPS)}")
        screen_ids = list(dict.fromkeys(screen_ids))
        AccessService._check_targets(user_id, division_id, screen_ids if op != 'remove' else [])

        try:
            grant_id = AccessService._lock_grant(user_id, division_id, create=(op == 'set'))
            if grant_id is None:
                db.session.rollback()
                return None

            if op == 'set':
                db.session.execute(delete(access_grant_screen).where(access_grant_screen.c.grant_id == grant_id))
                AccessService._add_screens(grant_id, screen_ids)
            elif op == 'add':
                AccessService._add_screens(grant_id, screen_ids)
            elif screen_ids:
                db.session.execute(delete(access_grant_screen).where(
                    access_grant_screen.c.grant_id == grant_id,
                    access_grant_screen.c.screen_id.in_(screen_ids)
                ))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        db.session.expire_all()
        return db.session.get(AccessGrant, grant_id)

    @staticmethod
    def replace_grant(user_id, division_id, screen_ids):
        return AccessService.update_grant_screens(user_id, division_id, 'set', screen_ids)

    @staticmethod
    def revoke_grant(user_id, division_id):
        grant = AccessGrant.query.filter_by(user_id=user_id, division_id=division_id).first()
        if not grant:
            return None
        grant_id = grant.id
        db.session.delete(grant)
        db.session.commit()
        return grant_id

    @staticmethod
    def grants_for_user(user_id):
        return AccessGrant.query.filter_by(user_id=user_id).order_by(AccessGrant.division_id).all()
