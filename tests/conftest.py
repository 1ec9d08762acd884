import os
import sys
import pytest
import fakeredis

# Ensure repo root is on sys.path so tests can import top-level modules (e.g., question_generator.py)
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Ensure env for create_app
os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('REDIS_URL', 'redis://localhost:6379/0')


class FakeLLM:
    """Scripted stand-in for call_gemini_api.

    Returns queued responses in order (raising any queued exception), then
    `default` once the queue is empty. Every prompt is recorded.
    """

    def __init__(self, responses=None, default='Overall the candidate did well.'):
        self.responses = list(responses or [])
        self.default = default
        self.prompts = []

    def __call__(self, prompt, *args, **kwargs):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(scope='session')
def fake_redis_server():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(monkeypatch, fake_redis_server):
    import redis
    fake_redis_server.flushall()
    monkeypatch.setattr(redis, 'from_url', lambda *args, **kwargs: fake_redis_server)
    yield


@pytest.fixture()
def app():
    import app as app_module
    application = app_module.create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
    yield application
    application.extensions['runners'].close_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture()
def redis_conn(fake_redis_server):
    return fake_redis_server


@pytest.fixture()
def fake_llm():
    return FakeLLM()


@pytest.fixture()
def stub_gemini(monkeypatch, fake_llm):
    # Every RequestContext built by the routes talks to the fake
    import utilities.context as context
    monkeypatch.setattr(context, 'call_gemini_api', fake_llm)
    yield fake_llm


@pytest.fixture()
def ctx(fake_llm):
    from utilities.context import RequestContext
    return RequestContext(user_id='user-1', llm=fake_llm)
