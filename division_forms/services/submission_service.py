import logging

from referencing.exceptions import Unresolvable

from division_forms.models import db, Submission
from division_forms.errors import FormUnavailable, SchemaCompileError, ValidationFailed
from division_forms.services.form_version_service import FormVersionService
from division_forms.services.schema_dialects import select_dialect, sanitize_schema
from division_forms.services.validator_cache import cache_key

logger = logging.getLogger(__name__)


class ValidationResult:
    def __init__(self, version, violations=None):
        self.version = version
        self.violations = violations or []

    @property
    def valid(self):
        return not self.violations


class SubmissionValidator:
    """
    Validates payloads against the active form definition of a
    division/screen pair, compiling through the injected cache.
    """

    def __init__(self, cache):
        self.cache = cache

    def compiled_for(self, definition):
        key = cache_key(definition.division_id, definition.screen_id, definition.version)
        validator = self.cache.get(key)
        if validator is None:
            schema = sanitize_schema(definition.schema or {})
            validator = self.cache.get_or_compile(key, schema, select_dialect(schema))
        return key, validator

    def validate(self, division_id, screen_id, payload):
        definition = FormVersionService.get_active(division_id, screen_id)
        if not definition:
            raise FormUnavailable()

        key, validator = self.compiled_for(definition)
        try:
            violations = validator.check(payload)
        except Unresolvable as e:
            # Broken $ref only shows up at evaluation time
            self.cache.discard(key)
            raise SchemaCompileError(details=str(e)) from e

        return ValidationResult(definition.version, violations)


class SubmissionService:
    @staticmethod
    def submit(validator, user, division_id, screen_id, payload):
        """Validates and stores a submission stamped with the version used."""
        result = validator.validate(division_id, screen_id, payload)
        if not result.valid:
            logger.info("Submission to %s:%s v%d rejected with %d violations",
                        division_id, screen_id, result.version, len(result.violations))
            raise ValidationFailed(result.violations)

        submission = Submission(
            division_id=division_id,
            screen_id=screen_id,
            form_version=result.version,
            submitted_by_id=user.id,
            data=payload
        )
        db.session.add(submission)
        db.session.commit()
        return submission

    @staticmethod
    def list_submissions(division_id, screen_id, page=1, limit=20, since=None, until=None, sort='desc'):
        query = Submission.query.filter_by(division_id=division_id, screen_id=screen_id)
        if since:
            query = query.filter(Submission.created_at >= since)
        if until:
            query = query.filter(Submission.created_at <= until)

        if sort == 'asc':
            query = query.order_by(Submission.created_at.asc(), Submission.id.asc())
        else:
            query = query.order_by(Submission.created_at.desc(), Submission.id.desc())

        total = query.count()
        items = query.offset((page - 1) * limit).limit(limit).all()
        return items, total
