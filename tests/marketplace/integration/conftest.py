import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture()
def client():
    from marketplace.api import ROUTERS, register_error_handlers

    app = FastAPI()
    register_error_handlers(app)
    for router in ROUTERS:
        app.include_router(router)
    return TestClient(app, raise_server_exceptions=False)
