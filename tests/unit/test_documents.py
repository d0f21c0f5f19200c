"""
Unit tests for rentdesk/storage/documents.py.

HttpDocumentStore is tested with requests.post / requests.delete patched at
rentdesk.storage.documents.requests; no network access.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from rentdesk.storage.documents import HttpDocumentStore, InMemoryDocumentStore

BASE = 'https://demo.supabase.co/storage/v1'


@pytest.fixture
def http_store():
    return HttpDocumentStore(BASE + '/', 'service-key', bucket='contract-pdfs', timeout=15)


def _ok():
    response = MagicMock()
    response.raise_for_status.return_value = None
    return response


# ---------------------------------------------------------------------------
# HttpDocumentStore
# ---------------------------------------------------------------------------

class TestHttpDocumentStore:

    def test_requires_base_url(self):
        with pytest.raises(ValueError, match='DOCUMENT_STORE_URL'):
            HttpDocumentStore('', 'key')

    def test_put_posts_bytes_to_bucket_path(self, http_store):
        with patch('rentdesk.storage.documents.requests.post', return_value=_ok()) as mock_post:
            path = http_store.put(b'%PDF-1.7', 'contracts/c-1-1700000000000.pdf')

        assert path == 'contracts/c-1-1700000000000.pdf'
        args, kwargs = mock_post.call_args
        assert args[0] == f'{BASE}/object/contract-pdfs/contracts/c-1-1700000000000.pdf'
        assert kwargs['data'] == b'%PDF-1.7'
        assert kwargs['headers']['Authorization'] == 'Bearer service-key'
        assert kwargs['headers']['Content-Type'] == 'application/pdf'
        assert kwargs['headers']['x-upsert'] == 'false'
        assert kwargs['timeout'] == (10, 15)

    def test_put_unknown_extension_is_octet_stream(self, http_store):
        with patch('rentdesk.storage.documents.requests.post', return_value=_ok()) as mock_post:
            http_store.put(b'x', 'contracts/c-1.zzz9')
        assert mock_post.call_args[1]['headers']['Content-Type'] == 'application/octet-stream'

    def test_put_http_error_propagates(self, http_store):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("413 Payload Too Large")
        with patch('rentdesk.storage.documents.requests.post', return_value=response):
            with pytest.raises(requests.HTTPError):
                http_store.put(b'x' * 10, 'contracts/c-1.pdf')

    def test_put_connection_error_propagates(self, http_store):
        with patch('rentdesk.storage.documents.requests.post',
                   side_effect=requests.ConnectionError("unreachable")):
            with pytest.raises(requests.ConnectionError):
                http_store.put(b'x', 'contracts/c-1.pdf')

    def test_remove_sends_prefixes(self, http_store):
        with patch('rentdesk.storage.documents.requests.delete', return_value=_ok()) as mock_delete:
            http_store.remove('contracts/c-1.pdf')
        args, kwargs = mock_delete.call_args
        assert args[0] == f'{BASE}/object/contract-pdfs'
        assert kwargs['json'] == {'prefixes': ['contracts/c-1.pdf']}

    def test_public_url(self, http_store):
        assert http_store.public_url('contracts/c-1.pdf') == \
            f'{BASE}/object/public/contract-pdfs/contracts/c-1.pdf'


# ---------------------------------------------------------------------------
# InMemoryDocumentStore
# ---------------------------------------------------------------------------

class TestInMemoryDocumentStore:

    def test_put_and_public_url(self):
        docs = InMemoryDocumentStore()
        path = docs.put(b'lease', 'contracts/c-1.pdf')
        assert docs.blobs[path] == b'lease'
        assert docs.public_url(path) == 'memory://documents/contracts/c-1.pdf'

    def test_put_never_overwrites(self):
        docs = InMemoryDocumentStore()
        first = docs.put(b'one', 'contracts/c-1.pdf')
        second = docs.put(b'two', 'contracts/c-1.pdf')
        third = docs.put(b'three', 'contracts/c-1.pdf')
        assert (first, second, third) == ('contracts/c-1.pdf', 'contracts/c-1-1.pdf', 'contracts/c-1-2.pdf')
        assert docs.blobs[first] == b'one'

    def test_remove(self):
        docs = InMemoryDocumentStore()
        path = docs.put(b'lease', 'contracts/c-1.pdf')
        docs.remove(path)
        assert docs.blobs == {}

    def test_remove_missing_raises(self):
        with pytest.raises(FileNotFoundError):
            InMemoryDocumentStore().remove('contracts/nope.pdf')
