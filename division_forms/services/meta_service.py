from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from division_forms.models import db, Division, Screen, FormDefinition, Submission, AccessGrant, access_grant_screen
from division_forms.errors import BadRequest, Conflict, NotFound


class MetaService:
    """Divisions and screens, including their cascading deletes."""

    @staticmethod
    def _create(model, **fields):
        item = model(**fields)
        db.session.add(item)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict(f"{model.__name__} already exists")
        return item

    @staticmethod
    def create_division(name, code):
        if not name or not code:
            raise BadRequest("name and code are required")
        return MetaService._create(Division, name=str(name).strip(), code=str(code).strip())

    @staticmethod
    def create_screen(key, title):
        if not key or not title:
            raise BadRequest("key and title are required")
        return MetaService._create(Screen, key=str(key).strip(), title=str(title).strip())

    @staticmethod
    def delete_division(division_id):
        """
        Removes the division together with its form definitions,
        submissions and access grants.
        """
        division = db.session.get(Division, division_id)
        if not division:
            raise NotFound("Division not found")

        grant_ids = [g.id for g in AccessGrant.query.filter_by(division_id=division_id).all()]
        try:
            if grant_ids:
                db.session.execute(delete(access_grant_screen).where(access_grant_screen.c.grant_id.in_(grant_ids)))
            removed = {
                'form_definitions': FormDefinition.query.filter_by(division_id=division_id).delete(synchronize_session=False),
                'submissions': Submission.query.filter_by(division_id=division_id).delete(synchronize_session=False),
                'access_grants': AccessGrant.query.filter_by(division_id=division_id).delete(synchronize_session=False)
            }
            db.session.delete(division)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return removed

    @staticmethod
    def delete_screen(screen_id):
        """
        Removes the screen with its form definitions and submissions, and
        pulls it out of every grant's screen set.
        """
        screen = db.session.get(Screen, screen_id)
        if not screen:
            raise NotFound("Screen not found")

        try:
            pulled = db.session.execute(
                delete(access_grant_screen).where(access_grant_screen.c.screen_id == screen_id)
            ).rowcount
            removed = {
                'form_definitions': FormDefinition.query.filter_by(screen_id=screen_id).delete(synchronize_session=False),
                'submissions': Submission.query.filter_by(screen_id=screen_id).delete(synchronize_session=False),
                'pulled_from_grants': pulled
            }
            db.session.delete(screen)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        db.session.expire_all()
        return removed
