import copy
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from google.api_core import exceptions as g_exceptions

from facturacion.routers import dashboard, invoices, messages, quotes, receivables
from facturacion.services.observability import RecordingObserver
from facturacion.shared.auth import get_current_user
from facturacion.shared.error_handlers import register_exception_handlers

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FakeDocumentSnapshot:
    def __init__(self, path: Tuple[str, ...], data: Dict, exists: bool):
        self._path = path
        self._data = data
        self.exists = exists

    def to_dict(self) -> Dict:
        return copy.deepcopy(self._data)

    @property
    def id(self) -> str:
        return self._path[-1]


class FakeDocumentRef:
    def __init__(self, client: "FakeFirestoreClient", path: Tuple[str, ...]):
        self._client = client
        self._path = path

    @property
    def id(self) -> str:
        return self._path[-1]

    @property
    def path(self) -> str:
        return "/".join(self._path)

    def get(self, transaction: Optional["FakeTransaction"] = None, timeout=None) -> FakeDocumentSnapshot:
        self._client.timeouts.append(timeout)
        if transaction is not None:
            data, exists = transaction._get_doc(self._path)
            self._client._fire_read_hooks(self._path)
        else:
            data, exists = self._client._get_doc(self._path)
        return FakeDocumentSnapshot(self._path, data if exists else {}, exists)

    def set(self, data: Dict, merge: bool = False, timeout=None, **kwargs):
        self._client.timeouts.append(timeout)
        existing, exists = self._client._get_doc(self._path)
        if merge and exists:
            payload = _deep_merge(existing, data)
        else:
            payload = copy.deepcopy(data)
        self._client._set_doc(self._path, payload)

    def update(self, data: Dict, timeout=None):
        existing, exists = self._client._get_doc(self._path)
        if not exists:
            raise g_exceptions.NotFound(f"No document to update: {self.path}")
        existing.update(copy.deepcopy(data))
        self._client._set_doc(self._path, existing)


class FakeCollection:
    def __init__(self, client: "FakeFirestoreClient", path: Tuple[str, ...]):
        self._client = client
        self._path = path

    def document(self, doc_id: Optional[str] = None) -> FakeDocumentRef:
        if doc_id is None:
            doc_id = self._client._generate_id()
        return FakeDocumentRef(self._client, self._path + (doc_id,))

    def _iter_documents(self):
        prefix_len = len(self._path)
        for path, data in list(self._client._documents.items()):
            if len(path) == prefix_len + 1 and path[:prefix_len] == self._path and self._client._exists.get(path, False):
                yield FakeDocumentSnapshot(path, copy.deepcopy(data), True)

    def stream(self, timeout=None):
        return list(self._iter_documents())

    def where(self, field: str, op: str, value):
        return FakeQuery(self._client, self._path).where(field, op, value)


_OPERATORS: Dict[str, Callable] = {
    "==": lambda actual, expected: actual == expected,
    ">": lambda actual, expected: actual is not None and actual > expected,
}


class FakeQuery:
    def __init__(self, client: "FakeFirestoreClient", path: Tuple[str, ...], filters: Optional[List[tuple]] = None):
        self._client = client
        self._path = path
        self._filters = filters or []

    def where(self, field: str, op: str, value):
        if op not in _OPERATORS:
            raise NotImplementedError(f"FakeFirestoreClient does not support '{op}' filters")
        return FakeQuery(self._client, self._path, filters=self._filters + [(field, op, value)])

    def stream(self, timeout=None):
        self._client.timeouts.append(timeout)
        has_range = any(op != "==" for _, op, _ in self._filters)
        if has_range and self._client.missing_index:
            raise g_exceptions.FailedPrecondition("The query requires an index.")

        results = []
        collection = FakeCollection(self._client, self._path)
        for snapshot in collection._iter_documents():
            data = snapshot.to_dict()
            if all(_OPERATORS[op](data.get(field), expected) for field, op, expected in self._filters):
                results.append(FakeDocumentSnapshot(snapshot._path, data, True))
        return results


def _deep_merge(dest: Dict, updates: Dict) -> Dict:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(dest.get(key), dict):
            dest[key] = _deep_merge(dest[key], value)
        else:
            dest[key] = copy.deepcopy(value)
    return dest


class FakeTransaction:
    def __init__(self, client: "FakeFirestoreClient"):
        self._client = client
        self._write_buffer: Dict[Tuple[str, ...], Dict] = {}
        self._read_paths: set = set()
        self._base_versions: Dict[Tuple[str, ...], int] = {}

    def _get_doc(self, path: Tuple[str, ...]):
        if path in self._write_buffer:
            data, exists = copy.deepcopy(self._write_buffer[path]), True
        else:
            data, exists = self._client._get_doc(path)
        if path not in self._base_versions:
            self._base_versions[path] = self._client._versions.get(path, 0)
        self._read_paths.add(path)
        return data, exists

    def set(self, doc_ref: FakeDocumentRef, data: Dict, merge: bool = False, **kwargs):
        path = doc_ref._path
        if merge:
            base, _ = self._get_doc(path)
            self._write_buffer[path] = _deep_merge(base, data)
        else:
            self._write_buffer[path] = copy.deepcopy(data)

    def update(self, doc_ref: FakeDocumentRef, data: Dict):
        path = doc_ref._path
        base, exists = self._get_doc(path)
        if not exists:
            raise g_exceptions.NotFound(f"No document to update: {doc_ref.path}")
        base.update(copy.deepcopy(data))
        self._write_buffer[path] = base

    def commit(self):
        self._client.commit_attempts += 1
        if self._client._abort_plan:
            should_abort = self._client._abort_plan.pop(0)
            if should_abort:
                raise g_exceptions.Aborted("forced abort")

        for path in self._read_paths:
            if self._client._versions.get(path, 0) != self._base_versions.get(path, 0):
                raise g_exceptions.Aborted(f"conflict on {'/'.join(path)}")

        for path, data in self._write_buffer.items():
            self._client._set_doc(path, data)

        self.rollback()
        return []

    def rollback(self):
        self._write_buffer.clear()
        self._read_paths.clear()
        self._base_versions.clear()


class FakeFirestoreClient:
    def __init__(self):
        self._documents: Dict[Tuple[str, ...], Dict] = {}
        self._exists: Dict[Tuple[str, ...], bool] = {}
        self._versions: Dict[Tuple[str, ...], int] = {}
        self._auto_counter = 0
        self._abort_plan: List[bool] = []
        self._read_hooks: Dict[Tuple[str, ...], List[Callable]] = {}
        self.missing_index = False
        self.commit_attempts = 0
        self.timeouts: List[Optional[float]] = []

    def _generate_id(self) -> str:
        self._auto_counter += 1
        return f"auto{self._auto_counter}"

    def collection(self, *segments: str) -> FakeCollection:
        return FakeCollection(self, tuple(segments))

    def transaction(self, **kwargs) -> FakeTransaction:
        return FakeTransaction(self)

    def _get_doc(self, path: Tuple[str, ...]):
        exists = self._exists.get(path, False)
        data = copy.deepcopy(self._documents.get(path, {})) if exists else {}
        return data, exists

    def _set_doc(self, path: Tuple[str, ...], data: Dict):
        self._documents[path] = copy.deepcopy(data)
        self._exists[path] = True
        self._versions[path] = self._versions.get(path, 0) + 1

    def _fire_read_hooks(self, path: Tuple[str, ...]):
        hooks = self._read_hooks.get(path) or []
        if hooks:
            hooks.pop(0)(self)

    def seed_document(self, path: Iterable[str], data: Dict):
        self._set_doc(tuple(path), data)

    def plan_abort(self, pattern: Iterable[bool]):
        self._abort_plan.extend(pattern)

    def on_transactional_read(self, path: Iterable[str], hook: Callable[["FakeFirestoreClient"], None]):
        """Run ``hook`` once, right after the next transaction reads ``path``."""
        self._read_hooks.setdefault(tuple(path), []).append(hook)

    def get_document(self, path: Iterable[str]):
        tuple_path = tuple(path)
        exists = self._exists.get(tuple_path, False)
        data = copy.deepcopy(self._documents.get(tuple_path, {})) if exists else None
        return exists, data


class FakeFirestoreModule:
    SERVER_TIMESTAMP = object()

    def __init__(self):
        self._client = FakeFirestoreClient()

    def client(self) -> FakeFirestoreClient:
        return self._client

    @staticmethod
    def transactional(func):
        """Decorator that mimics @firestore.transactional."""
        def wrapper(transaction, *args, **kwargs):
            try:
                result = func(transaction, *args, **kwargs)
            except Exception:
                transaction.rollback()
                raise
            transaction.commit()
            return result
        return wrapper


def invoice_data(**overrides) -> Dict:
    data = {
        "userId": USER_ID,
        "invoiceNumber": "INV-000001",
        "clientId": "client-1",
        "clientName": "Ana Pérez",
        "clientEmail": "ana@example.com",
        "issueDate": "2026-10-05",
        "dueDate": "2026-11-04",
        "items": [{"productId": "p-1", "productName": "Shampoo", "quantity": 2, "unitPrice": 500}],
        "subtotal": 1000.0,
        "itbis": 0.0,
        "total": 1000.0,
        "balanceDue": 1000.0,
        "status": "pendiente",
        "payments": [],
        "currency": "DOP",
    }
    data.update(overrides)
    return data


def invoice_payload(**overrides) -> Dict:
    payload = {
        "clientId": "client-1",
        "clientName": "Ana Pérez",
        "clientEmail": "ana@example.com",
        "issueDate": "2026-10-05",
        "dueDate": "2026-11-04",
        "items": [{"productId": "p-1", "productName": "Shampoo", "quantity": 2, "unitPrice": 500}],
        "subtotal": 1000,
        "itbis": 180,
        "total": 1180,
        "currency": "DOP",
        "includeITBIS": True,
    }
    payload.update(overrides)
    return payload


def payment_payload(invoice_id: str = "inv-1", **overrides) -> Dict:
    payload = {
        "invoiceId": invoice_id,
        "amount": 400,
        "paymentDate": "2026-10-10",
        "method": "efectivo",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def fake_firestore():
    return FakeFirestoreModule()


@pytest.fixture
def observer():
    return RecordingObserver()


def seed_invoice(module: FakeFirestoreModule, invoice_id: str = "inv-1", **overrides) -> Dict:
    data = invoice_data(**overrides)
    module.client().seed_document(("invoices", invoice_id), data)
    return data


def seed_product(module: FakeFirestoreModule, product_id: str = "p-1", **overrides) -> Dict:
    data = {"userId": USER_ID, "name": "Shampoo", "productType": "good", "stock": 100}
    data.update(overrides)
    module.client().seed_document(("products", product_id), data)
    return data


def _build_test_app():
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(invoices.router, prefix="/api/invoices")
    app.include_router(quotes.router, prefix="/api/quotes")
    app.include_router(receivables.router, prefix="/api/receivables")
    app.include_router(dashboard.router, prefix="/api/dashboard")
    app.include_router(messages.router, prefix="/api/messages")
    return app


@pytest.fixture
def test_app(fake_firestore, monkeypatch):
    app = _build_test_app()

    async def owner():
        return {"uid": USER_ID, "email": "owner@example.com"}

    app.dependency_overrides[get_current_user] = owner
    for router_module in (invoices, quotes, receivables, dashboard):
        monkeypatch.setattr(router_module, "firestore", fake_firestore)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def test_client(test_app):
    return TestClient(test_app)
