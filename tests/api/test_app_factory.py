import pytest
import redis


def test_app_factory_creates_app(app):
    # App fixture comes from tests/conftest.py
    assert app is not None
    assert app.testing is True
    assert 'runners' in app.extensions


def test_routes_registered(client):
    rv = client.get('/')
    assert rv.status_code == 200
    assert rv.get_json() == {'status': 'active', 'service': 'Mock Interview API', 'redis': True}
    assert client.get('/question-sets').status_code == 200
    assert client.get('/feedback').status_code == 200


def test_missing_database_url_is_fatal(monkeypatch):
    import app as app_module
    monkeypatch.delenv('DATABASE_URL', raising=False)
    with pytest.raises(RuntimeError):
        app_module.create_app()


def test_session_routes_report_missing_redis(monkeypatch):
    import app as app_module

    def _down(*args, **kwargs):
        raise redis.exceptions.ConnectionError('connection refused')

    monkeypatch.setattr(redis, 'from_url', _down)
    application = app_module.create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
    client = application.test_client()

    assert client.get('/').get_json()['redis'] is False
    rv = client.post('/questions/generate', json={'job_title': 'Backend Engineer'})
    assert rv.status_code == 500
    assert rv.get_json() == {'error': 'Session store not available.'}
