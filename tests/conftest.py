import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from database import create_numbered_document, ensure_indexes, get_db
from errors import UpstreamError
from uploads import get_uploader


class FakeUploader:
    def __init__(self):
        self.folders = []
        self.fail = False

    def upload(self, data, folder):
        if self.fail:
            raise UpstreamError("Image upload failed")
        self.folders.append(folder)
        return f"https://cdn.test/{folder}/{data.decode()}.jpg"


@pytest.fixture
def db():
    database = mongomock.MongoClient()["elanstore_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def client(db, uploader):
    main.app.dependency_overrides[get_db] = lambda: db
    main.app.dependency_overrides[get_uploader] = lambda: uploader
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def tee(db):
    return create_numbered_document(db, "product", {
        "name": "Linen Tee",
        "price": 20.0,
        "stock": 10,
        "variants": [
            {"size": "M", "color": "Red", "price": 20.0, "stock": 5},
            {"size": "L", "color": "Red", "price": 22.0, "stock": 0},
        ],
    })
