"""
Tests for the FastAPI application
"""

import pytest
from fastapi.testclient import TestClient

from storage_quota.main import create_app
from storage_quota.providers import StaticEstimateProvider
from storage_quota.service import StorageService
from storage_quota.sizing import MB
from storage_quota.store import InMemoryDocumentStore

from conftest import fixed_clock


class UnreachableStore(InMemoryDocumentStore):
    """Store whose queries always fail"""

    async def find(self, selector=()):
        raise IOError("disk gone")


@pytest.fixture
def provider() -> StaticEstimateProvider:
    return StaticEstimateProvider(usage=850, quota=1000)


@pytest.fixture
def service(sample_store, provider) -> StorageService:
    return StorageService(store=sample_store, provider=provider, clock=fixed_clock)


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


class TestQuotaRoutes:

    def test_health(self, client):
        assert client.get('/health').json() == {'status': 'healthy'}

    def test_startup_check_populates_state(self, client):
        data = client.get('/quota').json()

        assert data['state']['percentage'] == 85
        assert data['state']['status'] == 'warning'
        assert data['storage_api_available'] is True
        assert data['monitoring'] is True

    def test_manual_check(self, client, provider):
        provider.usage = 950

        data = client.post('/quota/check').json()

        assert data['state']['status'] == 'critical'

    def test_update_config_reclassifies(self, client):
        response = client.patch('/quota/config', json={'warning_threshold': 90, 'critical_threshold': 95})

        assert response.status_code == 200
        assert client.get('/quota').json()['state']['status'] == 'normal'

    def test_update_interval_reschedules_monitoring(self, client, service):
        task = service.monitor._poll_task

        response = client.patch('/quota/config', json={'check_interval_ms': 60000})

        assert response.json()['check_interval_ms'] == 60000
        assert service.monitor._poll_task is not task
        assert client.get('/quota').json()['monitoring'] is True

    def test_update_config_rejects_inverted_thresholds(self, client):
        response = client.patch('/quota/config', json={'warning_threshold': 99})

        assert response.status_code == 400

    def test_no_provider(self, sample_store):
        with TestClient(create_app(StorageService(store=sample_store), monitor=False)) as client:
            assert client.get('/quota').json()['state'] is None
            data = client.post('/quota/check').json()

        assert data['state']['quota'] == 0
        assert data['state']['status'] == 'normal'


class TestBreakdownRoutes:

    def test_breakdown(self, client):
        data = client.get('/breakdown').json()

        assert data['total_emails'] == 7
        assert [entry['account_id'] for entry in data['by_account']] == ['account-b', 'account-a']
        assert data['by_age'][0]['bucket'] == '< 1 year'

    def test_estimate(self, client):
        data = client.post('/cleanup/estimate', json={'older_than_days': 365}).json()

        assert data['email_count'] == 5

    def test_estimate_rejects_negative_days(self, client):
        assert client.post('/cleanup/estimate', json={'older_than_days': -1}).status_code == 422


class TestCleanupRoutes:

    def test_cleanup_matches_estimate(self, client, sample_store):
        criteria = {'account_ids': ['account-b'], 'min_size_bytes': MB}
        estimate = client.post('/cleanup/estimate', json=criteria).json()

        data = client.post('/cleanup', json=criteria).json()

        assert data['status'] == 'completed'
        assert data['result']['deleted_count'] == estimate['email_count'] == 1
        assert len(sample_store) == 6

    def test_cleanup_by_age(self, client):
        data = client.post('/cleanup/age', json={'older_than_days': 365, 'account_id': 'account-a'}).json()

        assert data['result']['deleted_count'] == 2
        assert data['result']['accounts_affected'] == ['account-a']

    def test_cleanup_by_size(self, client):
        data = client.post('/cleanup/size', json={'min_size_bytes': 10 * MB}).json()

        assert data['result']['deleted_count'] == 1
        assert data['result']['freed_bytes'] == 12 * MB + 24

    def test_cleanup_by_account(self, client):
        data = client.post('/cleanup/account/account-b').json()

        assert data['result']['deleted_count'] == 3

    def test_websocket_receives_progress(self, client):
        with client.websocket_connect('/ws') as websocket:
            initial = websocket.receive_json()
            assert initial['type'] == 'quota_state'

            client.post('/cleanup/account/account-b')

            messages = [websocket.receive_json() for _ in range(5)]

        assert [m['type'] for m in messages] == ['cleanup_progress'] * 5
        assert [m['data']['phase'] for m in messages] == [
            'counting', 'deleting', 'deleting', 'deleting', 'complete'
        ]


class TestStoreFailures:

    @pytest.fixture
    def failing_client(self, provider):
        service = StorageService(store=UnreachableStore(), provider=provider, clock=fixed_clock)
        with TestClient(create_app(service)) as test_client:
            yield test_client

    def test_cleanup_failure_maps_to_500(self, failing_client):
        response = failing_client.post('/cleanup', json={'account_ids': ['account-a']})

        assert response.status_code == 500
        assert response.json() == {'detail': 'Cleanup failed: disk gone'}

    def test_breakdown_failure_maps_to_500(self, failing_client):
        response = failing_client.get('/breakdown')

        assert response.status_code == 500
        assert response.json()['detail'] == 'Breakdown failed: disk gone'
