import pytest

from bucket_dashboard import db


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / 'buckets.db'


@pytest.fixture
def conn(db_path):
    connection = db.open_connection(db_path)
    db.init_db(connection)
    yield connection
    connection.close()
