"""Tests for the generation HTTP routes and error mapping."""

import pytest
from fastapi.testclient import TestClient

from app import app
from generation import get_orchestrator


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get('/health')

    assert resp.status_code == 200
    assert resp.json() == {'status': 'ok'}


def test_start_generation_returns_job_and_stages(client, completion, make_itinerary):
    itinerary = make_itinerary()

    resp = client.post(f'/itineraries/{itinerary.id}/generate',
                       json={'stages': ['tips', 'framework', 'tips'], 'provider': 'anthropic'})

    assert resp.status_code == 200
    body = resp.json()
    assert body['stages'] == ['tips', 'framework']
    assert isinstance(body['job_id'], int)
    assert {c['provider'] for c in completion.calls} == {'anthropic'}


def test_start_generation_without_body_runs_everything(client, make_itinerary):
    itinerary = make_itinerary()

    resp = client.post(f'/itineraries/{itinerary.id}/generate')

    assert resp.status_code == 200
    assert len(resp.json()['stages']) == 6


def test_unknown_provider_is_a_validation_error(client, make_itinerary):
    itinerary = make_itinerary()

    resp = client.post(f'/itineraries/{itinerary.id}/generate', json={'provider': 'mystery'})

    assert resp.status_code == 422


def test_unknown_itinerary_is_404(client):
    resp = client.post('/itineraries/404/generate', json={})

    assert resp.status_code == 404
    assert 'not found' in resp.json()['error']


def test_unknown_stage_is_400(client, make_itinerary):
    itinerary = make_itinerary()

    resp = client.post(f'/itineraries/{itinerary.id}/generate/bogus', json={})

    assert resp.status_code == 400
    assert resp.json() == {'error': 'Unsupported generation stage: bogus'}


def test_running_job_is_409(client, orchestrator, make_itinerary):
    itinerary = make_itinerary()
    orchestrator.jobs.create_running(itinerary.id)

    resp = client.post(f'/itineraries/{itinerary.id}/generate', json={})

    assert resp.status_code == 409
    assert 'already in progress' in resp.json()['error']


def test_stage_failure_is_502_with_job_id(client, completion, make_itinerary):
    itinerary = make_itinerary()
    completion.script(RuntimeError('provider exploded'))

    resp = client.post(f'/itineraries/{itinerary.id}/generate/transport',
                       json={'prompt': '  by train  '})

    assert resp.status_code == 502
    body = resp.json()
    assert body['error'] == 'provider exploded'
    assert body['stage'] == 'transport'

    status = client.get(f'/itineraries/{itinerary.id}/generate/status').json()
    assert status['job']['id'] == body['job_id']
    assert status['job']['status'] == 'failed'
    assert status['stages'] == ['transport']


def test_single_stage_route(client, completion, make_itinerary):
    itinerary = make_itinerary()

    resp = client.post(f'/itineraries/{itinerary.id}/generate/scenic_intro',
                       json={'prompt': '  focus on gardens  '})

    assert resp.status_code == 200
    assert resp.json()['stages'] == ['scenic_intro']
    assert completion.calls[0]['messages'][1]['content'].endswith(
        'Additional guidance: focus on gardens')


def test_status_and_logs(client, make_itinerary):
    itinerary = make_itinerary()
    assert client.get(f'/itineraries/{itinerary.id}/generate/status').json()['job']['status'] == 'none'

    client.post(f'/itineraries/{itinerary.id}/generate', json={'stages': ['framework', 'tips']})

    status = client.get(f'/itineraries/{itinerary.id}/generate/status').json()
    assert status['job']['status'] == 'completed'
    assert status['stages'] == ['framework', 'tips']

    logs = client.get(f'/itineraries/{itinerary.id}/ai/logs').json()['logs']
    assert [l['stage'] for l in logs] == ['tips', 'framework']
    assert all(l['status'] == 'success' for l in logs)


def test_wsgi_exposes_the_app():
    import wsgi

    assert wsgi.application is app
