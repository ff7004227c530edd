"""Document store backed by the Flask-SQLAlchemy models."""
import operator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import IntegrityError, OperationalError
from matchday.app import db
from matchday.errors import Conflict, InvalidState, NotFound, Timeout
from matchday.models import COLLECTION_MODELS, new_document_id
from matchday.store.base import (
    DocumentStore, check_collection, check_filters, check_order,
    expectation_failures,
)
from matchday.time_utils import to_naive_utc

_COMPARATORS = {
    '==': operator.eq,
    '!=': operator.ne,
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
}
_TIMEOUT_MARKERS = ('database is locked', 'timeout', 'canceling statement')


def _model_for(collection):
    check_collection(collection)
    return COLLECTION_MODELS[collection]


def _column(model, field):
    if field != 'id' and field not in model.FIELDS:
        raise ValueError(f'{model.__tablename__} has no field {field!r}')
    return getattr(model, field)


def _coerce(value):
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return value


def _to_document(row):
    document = {'id': row.id}
    for field in row.FIELDS:
        document[field] = getattr(row, field)
    return document


def _assign(row, data):
    for field, value in data.items():
        if field == 'id':
            continue
        if field not in row.FIELDS:
            raise ValueError(f'{row.__tablename__} has no field {field!r}')
        setattr(row, field, _coerce(value))


@contextmanager
def _translated_errors():
    try:
        yield
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict('A document with the same unique value already exists') from exc
    except OperationalError as exc:
        db.session.rollback()
        text = str(exc).lower()
        if any(marker in text for marker in _TIMEOUT_MARKERS):
            raise Timeout() from exc
        raise
    except Exception:
        db.session.rollback()
        raise


class SqlDocumentStore(DocumentStore):
    """Collections map onto tables; a batch is one database transaction."""
    name = 'sql'
    atomic_batches = True

    def new_id(self, collection):
        check_collection(collection)
        return new_document_id()

    def get(self, collection, doc_id):
        model = _model_for(collection)
        if not doc_id:
            return None
        with _translated_errors():
            row = db.session.get(model, doc_id)
            return _to_document(row) if row else None

    def query(self, collection, filters=None, order_by=None, limit=None, start_after=None):
        model = _model_for(collection)
        check_filters(filters)
        check_order(order_by)
        statement = model.query
        for field, op, value in filters or []:
            column = _column(model, field)
            if op == 'in':
                statement = statement.filter(column.in_([_coerce(v) for v in value]))
            elif value is None and op in ('==', '!='):
                statement = statement.filter(
                    column.is_(None) if op == '==' else column.isnot(None)
                )
            else:
                statement = statement.filter(_COMPARATORS[op](column, _coerce(value)))
        if start_after is not None:
            statement = statement.filter(model.id > start_after)
        for field, direction in order_by or []:
            column = _column(model, field)
            statement = statement.order_by(column.desc() if direction == 'desc' else column.asc())
        if limit:
            statement = statement.limit(int(limit))
        with _translated_errors():
            return [_to_document(row) for row in statement.all()]

    def create(self, collection, data, doc_id=None):
        with _translated_errors():
            new_id = self._stage_create(collection, data, doc_id)
            db.session.commit()
        return new_id

    def update(self, collection, doc_id, data, expect=None):
        with _translated_errors():
            self._stage_update(collection, doc_id, data, expect)
            db.session.commit()

    def delete(self, collection, doc_id, expect=None):
        with _translated_errors():
            deleted = self._stage_delete(collection, doc_id, expect)
            db.session.commit()
        return deleted

    def batch(self, ops):
        results = []
        with _translated_errors():
            for op in ops:
                if op.kind == 'create':
                    results.append(self._stage_create(op.collection, op.data, op.doc_id))
                elif op.kind == 'update':
                    self._stage_update(op.collection, op.doc_id, op.data, op.expect)
                    results.append(op.doc_id)
                else:
                    self._stage_delete(op.collection, op.doc_id, op.expect)
                    results.append(op.doc_id)
            db.session.commit()
        return results

    # ── staged writes (no commit) ──────────────────────────────────────

    def _stage_create(self, collection, data, doc_id):
        model = _model_for(collection)
        row = model(id=doc_id or data.get('id') or new_document_id())
        _assign(row, data)
        db.session.add(row)
        db.session.flush()
        return row.id

    def _stage_update(self, collection, doc_id, data, expect):
        model = _model_for(collection)
        row = db.session.get(model, doc_id, with_for_update=bool(expect)) if doc_id else None
        if row is None:
            raise NotFound(f'{collection}/{doc_id} not found')
        mismatched = expectation_failures(_to_document(row), expect)
        if mismatched:
            raise InvalidState(
                f'{collection}/{doc_id} changed since it was read ({", ".join(mismatched)})'
            )
        _assign(row, data)
        db.session.flush()

    def _stage_delete(self, collection, doc_id, expect=None):
        model = _model_for(collection)
        row = db.session.get(model, doc_id, with_for_update=bool(expect)) if doc_id else None
        if row is None:
            if expect:
                raise InvalidState(f'{collection}/{doc_id} no longer exists')
            return False
        mismatched = expectation_failures(_to_document(row), expect)
        if mismatched:
            raise InvalidState(
                f'{collection}/{doc_id} changed since it was read ({", ".join(mismatched)})'
            )
        db.session.delete(row)
        db.session.flush()
        return True
