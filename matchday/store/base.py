"""Document store boundary.

Every workflow talks to storage through this narrow interface:

    get(collection, doc_id)                 -> dict | None
    query(collection, filters, order_by, limit, start_after) -> list[dict]
    create(collection, data, doc_id=None)   -> id
    update(collection, doc_id, data, expect=None)
    delete(collection, doc_id, expect=None) -> bool
    scan(collection, filters)               -> list[dict], paged by id
    batch(ops)                              -> list[id | None]

Documents are plain dicts carrying their ``id``. ``filters`` is a list of
``(field, op, value)`` tuples, ``order_by`` a list of ``(field, direction)``.
"""
import logging

from matchday.errors import NotFound, PartialFailure, WorkflowError

logger = logging.getLogger(__name__)

COLLECTIONS = ('users', 'teams', 'requests', 'games', 'game_requests')
FILTER_OPS = ('==', '!=', '<', '<=', '>', '>=', 'in')
SORT_DIRECTIONS = ('asc', 'desc')


class WriteOp:
    """One write inside a batch."""

    __slots__ = ('kind', 'collection', 'doc_id', 'data', 'expect')

    def __init__(self, kind, collection, doc_id=None, data=None, expect=None):
        if kind not in ('create', 'update', 'delete'):
            raise ValueError(f'Unknown write kind: {kind}')
        self.kind = kind
        self.collection = collection
        self.doc_id = doc_id
        self.data = dict(data or {})
        self.expect = dict(expect) if expect else None

    def describe(self):
        return {'op': self.kind, 'path': f'{self.collection}/{self.doc_id}'}

    def __repr__(self):
        return f'WriteOp({self.kind!r}, {self.collection!r}, {self.doc_id!r})'


def create_op(collection, data, doc_id=None):
    return WriteOp('create', collection, doc_id=doc_id, data=data)


def update_op(collection, doc_id, data, expect=None):
    return WriteOp('update', collection, doc_id=doc_id, data=data, expect=expect)


def delete_op(collection, doc_id, expect=None):
    return WriteOp('delete', collection, doc_id=doc_id, expect=expect)


def check_collection(collection):
    if collection not in COLLECTIONS:
        raise ValueError(f'Unknown collection: {collection}')


def check_filters(filters):
    for field, op, _value in filters or []:
        if op not in FILTER_OPS:
            raise ValueError(f'Unsupported filter op {op!r} on {field}')


def check_order(order_by):
    for _field, direction in order_by or []:
        if direction not in SORT_DIRECTIONS:
            raise ValueError(f'Unsupported sort direction {direction!r}')


def expectation_failures(document, expect):
    """Return the fields of ``expect`` the document does not currently match."""
    if not expect:
        return []
    return [
        field for field, value in expect.items()
        if document.get(field) != value
    ]


class DocumentStore:
    """Interface implemented by every storage backend.

    ``atomic_batches`` tells workflows whether ``batch`` commits all-or-nothing.
    The default ``batch`` replays ops one at a time. A failure on the first op
    is raised as is; a later one becomes a ``PartialFailure`` manifest.
    """
    name = 'abstract'
    atomic_batches = False
    page_size = 500

    def new_id(self, collection):
        raise NotImplementedError

    def get(self, collection, doc_id):
        raise NotImplementedError

    def query(self, collection, filters=None, order_by=None, limit=None, start_after=None):
        """Matching documents. ``start_after`` is an id cursor for ``('id', 'asc')`` order."""
        raise NotImplementedError

    def create(self, collection, data, doc_id=None):
        raise NotImplementedError

    def update(self, collection, doc_id, data, expect=None):
        raise NotImplementedError

    def delete(self, collection, doc_id, expect=None):
        """Delete if present. With ``expect`` the document must exist and match."""
        raise NotImplementedError

    def scan(self, collection, filters=None, page_size=None):
        """Every matching document, read in id order one page at a time."""
        page_size = int(page_size or self.page_size)
        documents = []
        cursor = None
        while True:
            page = self.query(collection, filters, order_by=[('id', 'asc')],
                              limit=page_size, start_after=cursor)
            documents.extend(page)
            if len(page) < page_size:
                return documents
            cursor = page[-1]['id']

    def batch(self, ops):
        results = []
        applied = []
        for index, op in enumerate(ops):
            try:
                results.append(self.apply(op))
            except WorkflowError as exc:
                if not applied:
                    raise
                failed = [dict(op.describe(), error=exc.message)]
                failed.extend(o.describe() for o in ops[index + 1:])
                logger.warning('Batch stopped at %s: %s', op.describe()['path'], exc.message)
                raise PartialFailure(
                    f'Batch stopped after {len(applied)} of {len(ops)} writes',
                    applied=applied,
                    failed=failed,
                ) from exc
            applied.append(op.describe())
        return results

    def apply(self, op):
        if op.kind == 'create':
            return self.create(op.collection, op.data, doc_id=op.doc_id)
        if op.kind == 'update':
            self.update(op.collection, op.doc_id, op.data, expect=op.expect)
            return op.doc_id
        self.delete(op.collection, op.doc_id, expect=op.expect)
        return op.doc_id

    def require(self, collection, doc_id, label=None):
        """``get`` that raises ``NotFound`` instead of returning None."""
        document = self.get(collection, doc_id) if doc_id else None
        if document is None:
            raise NotFound(f'{label or collection.rstrip("s").capitalize()} not found')
        return document
