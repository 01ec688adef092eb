import json
import logging

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from division_forms.models import db, FormDefinition
from division_forms.errors import SchemaRejected, ConcurrentPublishConflict

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_MAX_SCHEMA_BYTES = 256 * 1024
DEFAULT_MAX_SCHEMA_DEPTH = 32


def _schema_depth(doc):
    depth = 0
    stack = [(doc, 1)]
    while stack:
        node, level = stack.pop()
        if isinstance(node, dict):
            children = node.values()
        elif isinstance(node, list):
            children = node
        else:
            continue
        depth = max(depth, level)
        stack.extend((child, level + 1) for child in children)
    return depth


class FormVersionService:
    @staticmethod
    def get_active(division_id, screen_id):
        return FormDefinition.query.filter_by(
            division_id=division_id,
            screen_id=screen_id,
            is_active=True
        ).first()

    @staticmethod
    def list_versions(division_id, screen_id):
        return FormDefinition.query.filter_by(
            division_id=division_id,
            screen_id=screen_id
        ).order_by(FormDefinition.version.desc()).all()

    @staticmethod
    def check_schema_bounds(schema):
        """Rejects documents that would make compilation pathological."""
        if not isinstance(schema, dict):
            raise SchemaRejected("Schema must be a JSON object")

        max_bytes = current_app.config.get('MAX_SCHEMA_BYTES', DEFAULT_MAX_SCHEMA_BYTES)
        max_depth = current_app.config.get('MAX_SCHEMA_DEPTH', DEFAULT_MAX_SCHEMA_DEPTH)

        size = len(json.dumps(schema))
        if size > max_bytes:
            raise SchemaRejected(f"Schema is {size} bytes, limit is {max_bytes}")
        depth = _schema_depth(schema)
        if depth > max_depth:
            raise SchemaRejected(f"Schema nesting depth {depth} exceeds {max_depth}")

    @staticmethod
    def _deactivate(definition):
        """Compare-and-swap: flips the row only if it is still the active one."""
        result = db.session.execute(
            update(FormDefinition)
            .where(FormDefinition.id == definition.id, FormDefinition.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def publish(division_id, screen_id, schema, ui_schema=None):
        """
        Publishes a new active version for the division/screen pair.

        The previous active row is deactivated and the new one inserted in
        one transaction. A lost race (swap hit no row, or the unique
        constraints fired) is rolled back and retried.
        """
        FormVersionService.check_schema_bounds(schema)
        if ui_schema is None:
            ui_schema = {}

        max_attempts = current_app.config.get('PUBLISH_MAX_ATTEMPTS', DEFAULT_MAX_ATTEMPTS)

        for attempt in range(1, max_attempts + 1):
            current = FormVersionService.get_active(division_id, screen_id)
            version = current.version + 1 if current else 1

            try:
                if current is not None and not FormVersionService._deactivate(current):
                    db.session.rollback()
                    logger.warning("Publish race on %s:%s (attempt %d), active v%d moved",
                                   division_id, screen_id, attempt, current.version)
                    continue

                definition = FormDefinition(
                    division_id=division_id,
                    screen_id=screen_id,
                    version=version,
                    schema=schema,
                    ui_schema=ui_schema,
                    is_active=True
                )
                db.session.add(definition)
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                logger.warning("Publish race on %s:%s (attempt %d), v%d already taken",
                               division_id, screen_id, attempt, version)
                continue

            logger.info("Published form %s:%s v%d", division_id, screen_id, version)
            return definition

        raise ConcurrentPublishConflict(details={'attempts': max_attempts})
