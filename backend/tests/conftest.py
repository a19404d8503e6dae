import os, sys, pytest
# Ensure the backend directory is on path so 'permit_hub' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import permit_hub
from permit_hub import create_app
from permit_hub.models import Base  # registers every table before create_all


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'permit-hub-test-secret-key-long-enough-for-hs256',
        'TESTING': True,
    })
    Base.metadata.create_all(permit_hub.db_engine)
    yield app


@pytest.fixture(autouse=True)
def clean_db(app_instance):
    # every test starts from an empty schema; the engine is read at call time
    permit_hub.SessionLocal.remove()
    Base.metadata.drop_all(permit_hub.db_engine)
    Base.metadata.create_all(permit_hub.db_engine)
    yield
    permit_hub.SessionLocal.remove()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def session(app_context):
    return permit_hub.get_db()
