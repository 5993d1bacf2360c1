import pytest
from flask import Flask
from utils import roles_required

@pytest.fixture
def app():
    app = Flask(__name__)
    app.secret_key = "test_secret"

    @app.route('/protected')
    @roles_required("principal", "clerk")
    def protected():
        return "Clerk Access"

    return app

@pytest.fixture
def client(app):
    return app.test_client()

def test_roles_required_rejects_anonymous(client):
    response = client.get('/protected')
    assert response.status_code == 401
    assert response.get_json()["error"] == "Not signed in"

def test_roles_required_rejects_other_roles(client):
    with client.session_transaction() as sess:
        sess['school_id'] = "school-1"
        sess['role'] = "parent"
    response = client.get('/protected')
    assert response.status_code == 403

def test_roles_required_allows_listed_role(client):
    with client.session_transaction() as sess:
        sess['school_id'] = "school-1"
        sess['role'] = "clerk"
    response = client.get('/protected')
    assert response.status_code == 200
    assert b"Clerk Access" in response.data
