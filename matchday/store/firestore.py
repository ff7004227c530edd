"""Document store backed by the Firestore v1 REST API.

Field names are stored camelCase (``teamId``, ``isCoordinator``, ``startISO``)
and timestamps as ISO strings so documents stay readable by the mobile
clients. Every write goes through ``documents:commit``, which makes single
writes and batches equally atomic.
"""
import logging
import re
import secrets
import string
from datetime import datetime

import requests
from matchday.errors import (
    Conflict, InvalidState, NotFound, PermissionDenied, Timeout, WorkflowError,
)
from matchday.store.base import (
    DocumentStore, WriteOp, check_collection, check_filters, check_order,
    expectation_failures,
)
from matchday.time_utils import isoformat_utc, parse_iso_datetime

logger = logging.getLogger(__name__)

_API_ROOT = 'https://firestore.googleapis.com/v1'
_AUTO_ID_ALPHABET = string.ascii_letters + string.digits
_AUTO_ID_LENGTH = 20

_REMOTE_COLLECTIONS = {'game_requests': 'gameRequests'}
_REMOTE_FIELDS = {'start_time': 'startISO'}
_LOCAL_FIELDS = {remote: local for local, remote in _REMOTE_FIELDS.items()}
_DATETIME_FIELDS = {'start_time', 'created_at', 'resolved_at'}
_RETRYABLE_CODES = (429, 500, 502, 503, 504)
_RETRYABLE_STATUSES = ('UNAVAILABLE', 'ABORTED', 'RESOURCE_EXHAUSTED', 'INTERNAL', 'DEADLINE_EXCEEDED')

_FILTER_OPS = {
    '==': 'EQUAL',
    '!=': 'NOT_EQUAL',
    '<': 'LESS_THAN',
    '<=': 'LESS_THAN_OR_EQUAL',
    '>': 'GREATER_THAN',
    '>=': 'GREATER_THAN_OR_EQUAL',
    'in': 'IN',
}


def to_remote_field(field):
    if field in _REMOTE_FIELDS:
        return _REMOTE_FIELDS[field]
    head, *rest = field.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def to_local_field(field):
    if field in _LOCAL_FIELDS:
        return _LOCAL_FIELDS[field]
    return re.sub(r'(?<!^)(?=[A-Z])', '_', field).lower()


def encode_value(value):
    if value is None:
        return {'nullValue': None}
    if isinstance(value, bool):
        return {'booleanValue': value}
    if isinstance(value, int):
        return {'integerValue': str(value)}
    if isinstance(value, float):
        return {'doubleValue': value}
    if isinstance(value, datetime):
        return {'stringValue': isoformat_utc(value)}
    if isinstance(value, dict):
        return {'mapValue': {'fields': {k: encode_value(v) for k, v in value.items()}}}
    if isinstance(value, (list, tuple)):
        return {'arrayValue': {'values': [encode_value(v) for v in value]}}
    return {'stringValue': str(value)}


def decode_value(raw):
    if raw is None:
        return None
    if 'stringValue' in raw:
        return raw['stringValue']
    if 'integerValue' in raw:
        return int(raw['integerValue'])
    if 'doubleValue' in raw:
        return float(raw['doubleValue'])
    if 'booleanValue' in raw:
        return bool(raw['booleanValue'])
    if 'nullValue' in raw:
        return None
    if 'mapValue' in raw:
        fields = raw['mapValue'].get('fields') or {}
        return {k: decode_value(v) for k, v in fields.items()}
    if 'arrayValue' in raw:
        return [decode_value(v) for v in raw['arrayValue'].get('values') or []]
    if 'timestampValue' in raw:
        return parse_iso_datetime(raw['timestampValue'])
    if 'geoPointValue' in raw:
        point = raw['geoPointValue']
        return {'lat': float(point.get('latitude', 0)), 'lng': float(point.get('longitude', 0))}
    if 'referenceValue' in raw:
        return raw['referenceValue']
    return raw


def encode_fields(data):
    return {
        to_remote_field(field): encode_value(value)
        for field, value in data.items()
        if field != 'id'
    }


def decode_document(raw):
    if not raw:
        return None
    document = {'id': str(raw.get('name', '')).rsplit('/', 1)[-1]}
    for remote_field, value in (raw.get('fields') or {}).items():
        field = to_local_field(remote_field)
        decoded = decode_value(value)
        if field in _DATETIME_FIELDS and isinstance(decoded, str):
            decoded = parse_iso_datetime(decoded)
        document[field] = decoded
    return document


def _filter_clause(field, op, value):
    remote = {'fieldPath': to_remote_field(field)}
    if value is None and op in ('==', '!='):
        return {'unaryFilter': {'field': remote, 'op': 'IS_NULL' if op == '==' else 'IS_NOT_NULL'}}
    encoded = encode_value(list(value)) if op == 'in' else encode_value(value)
    return {'fieldFilter': {'field': remote, 'op': _FILTER_OPS[op], 'value': encoded}}


class FirestoreDocumentStore(DocumentStore):
    name = 'firestore'
    atomic_batches = True

    def __init__(self, project_id, api_key='', id_token='', timeout=10.0, session=None):
        if not project_id:
            raise RuntimeError('FIRESTORE_PROJECT_ID must be set to use the firestore store')
        self.project_id = project_id
        self.api_key = api_key or ''
        self.id_token = id_token or ''
        self.timeout = float(timeout)
        self.session = session or requests.Session()
        self.database_path = f'projects/{project_id}/databases/(default)/documents'
        self.root_url = f'{_API_ROOT}/{self.database_path}'

    # ── paths ──────────────────────────────────────────────────────────

    def _collection_id(self, collection):
        check_collection(collection)
        return _REMOTE_COLLECTIONS.get(collection, collection)

    def _document_name(self, collection, doc_id):
        return f'{self.database_path}/{self._collection_id(collection)}/{doc_id}'

    def _document_url(self, collection, doc_id):
        return f'{_API_ROOT}/{self._document_name(collection, doc_id)}'

    # ── transport ──────────────────────────────────────────────────────

    def _request(self, method, url, payload=None):
        headers = {}
        if self.id_token:
            headers['Authorization'] = f'Bearer {self.id_token}'
        params = {'key': self.api_key} if self.api_key else None
        try:
            response = self.session.request(
                method, url, params=params, json=payload,
                headers=headers, timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise Timeout() from exc
        except requests.ConnectionError as exc:
            raise Timeout('Could not reach the document store, try again') from exc
        except requests.RequestException as exc:
            raise WorkflowError('The document store request failed') from exc
        return response

    @staticmethod
    def _error_status(response):
        try:
            return str((response.json() or {}).get('error', {}).get('status') or '')
        except ValueError:
            return ''

    def _raise_for_response(self, response, path):
        if response.ok:
            return
        status = self._error_status(response)
        if response.status_code == 404 or status == 'NOT_FOUND':
            raise NotFound(f'{path} not found')
        if response.status_code in (401, 403):
            raise PermissionDenied('The document store refused this request')
        if response.status_code in _RETRYABLE_CODES or status in _RETRYABLE_STATUSES:
            raise Timeout()
        if response.status_code == 409 or status == 'ALREADY_EXISTS':
            raise Conflict(f'{path} already exists')
        if status == 'FAILED_PRECONDITION':
            raise InvalidState(f'{path} changed since it was read')
        logger.warning('Document store returned %s %s for %s', response.status_code, status, path)
        raise WorkflowError(f'The document store rejected the request for {path}')

    def _get_raw(self, collection, doc_id):
        response = self._request('GET', self._document_url(collection, doc_id))
        if response.status_code == 404:
            return None
        self._raise_for_response(response, f'{collection}/{doc_id}')
        return response.json()

    def _commit(self, writes, label):
        response = self._request('POST', f'{self.root_url}:commit', {'writes': writes})
        self._raise_for_response(response, label)
        return response.json()

    # ── writes ─────────────────────────────────────────────────────────

    def _pinned_update_time(self, op):
        raw = self._get_raw(op.collection, op.doc_id)
        if raw is None:
            if op.kind == 'delete':
                raise InvalidState(f'{op.collection}/{op.doc_id} no longer exists')
            raise NotFound(f'{op.collection}/{op.doc_id} not found')
        mismatched = expectation_failures(decode_document(raw), op.expect)
        if mismatched:
            raise InvalidState(
                f'{op.collection}/{op.doc_id} changed since it was read ({", ".join(mismatched)})'
            )
        return raw['updateTime']

    def _write_for(self, op):
        name = self._document_name(op.collection, op.doc_id)
        if op.kind == 'delete':
            if op.expect:
                return {'delete': name, 'currentDocument': {'updateTime': self._pinned_update_time(op)}}
            return {'delete': name}
        write = {'update': {'name': name, 'fields': encode_fields(op.data)}}
        if op.kind == 'create':
            write['currentDocument'] = {'exists': False}
            return write
        write['updateMask'] = {'fieldPaths': [to_remote_field(f) for f in op.data if f != 'id']}
        if op.expect:
            write['currentDocument'] = {'updateTime': self._pinned_update_time(op)}
        else:
            write['currentDocument'] = {'exists': True}
        return write

    def new_id(self, collection):
        check_collection(collection)
        return ''.join(secrets.choice(_AUTO_ID_ALPHABET) for _ in range(_AUTO_ID_LENGTH))

    def get(self, collection, doc_id):
        if not doc_id:
            return None
        return decode_document(self._get_raw(collection, doc_id))

    def query(self, collection, filters=None, order_by=None, limit=None, start_after=None):
        check_filters(filters)
        check_order(order_by)
        structured = {'from': [{'collectionId': self._collection_id(collection)}]}
        clauses = [_filter_clause(*f) for f in filters or []]
        if len(clauses) == 1:
            structured['where'] = clauses[0]
        elif clauses:
            structured['where'] = {'compositeFilter': {'op': 'AND', 'filters': clauses}}
        if order_by:
            structured['orderBy'] = [
                {
                    'field': {'fieldPath': '__name__' if field == 'id' else to_remote_field(field)},
                    'direction': 'DESCENDING' if direction == 'desc' else 'ASCENDING',
                }
                for field, direction in order_by
            ]
        if start_after is not None:
            structured['startAt'] = {
                'values': [{'referenceValue': self._document_name(collection, start_after)}],
                'before': False,
            }
        if limit:
            structured['limit'] = int(limit)
        response = self._request('POST', f'{self.root_url}:runQuery', {'structuredQuery': structured})
        self._raise_for_response(response, collection)
        return [
            decode_document(entry['document'])
            for entry in response.json() or []
            if entry.get('document')
        ]

    def create(self, collection, data, doc_id=None):
        doc_id = doc_id or data.get('id') or self.new_id(collection)
        self.batch([WriteOp('create', collection, doc_id=doc_id, data=data)])
        return doc_id

    def update(self, collection, doc_id, data, expect=None):
        self.batch([WriteOp('update', collection, doc_id=doc_id, data=data, expect=expect)])

    def delete(self, collection, doc_id, expect=None):
        if expect:
            self.batch([WriteOp('delete', collection, doc_id=doc_id, expect=expect)])
            return True
        name = self._document_name(collection, doc_id)
        response = self._request('POST', f'{self.root_url}:commit', {
            'writes': [{'delete': name, 'currentDocument': {'exists': True}}],
        })
        if response.status_code == 404 or self._error_status(response) == 'NOT_FOUND':
            return False
        self._raise_for_response(response, f'{collection}/{doc_id}')
        return True

    def batch(self, ops):
        if not ops:
            return []
        results = []
        for op in ops:
            if op.kind == 'create' and not op.doc_id:
                op.doc_id = op.data.get('id') or self.new_id(op.collection)
            results.append(op.doc_id)
        writes = [self._write_for(op) for op in ops]
        self._commit(writes, f'batch of {len(writes)} writes')
        logger.debug('Committed %d writes to firestore project %s', len(writes), self.project_id)
        return results
