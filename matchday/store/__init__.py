"""Document store backends, selected once at startup by ``DOCUMENT_STORE``."""
from matchday.store.base import (  # noqa: F401
    DocumentStore, WriteOp, create_op, update_op, delete_op,
)


def build_document_store(app):
    """Construct the configured store. Called once from ``create_app``."""
    backend = str(app.config.get('DOCUMENT_STORE') or 'sql').strip().lower()
    if backend == 'firestore':
        from matchday.store.firestore import FirestoreDocumentStore
        return FirestoreDocumentStore(
            project_id=app.config.get('FIRESTORE_PROJECT_ID'),
            api_key=app.config.get('FIRESTORE_API_KEY'),
            id_token=app.config.get('FIRESTORE_ID_TOKEN'),
            timeout=app.config.get('STORE_TIMEOUT_SECONDS', 10.0),
        )
    if backend == 'sql':
        from matchday.store.sql import SqlDocumentStore
        return SqlDocumentStore()
    raise RuntimeError(f'Unknown DOCUMENT_STORE {backend!r}')
