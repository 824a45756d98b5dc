import io
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

import mongomock
import pytest
from fastapi.testclient import TestClient

from catalog import CatalogService
from config import Settings
from database import ensure_indexes
from main import create_app
from uploads import AssetStore

ADMIN = {"username": "admin", "password": "admin123"}
ADMIN_EMAIL = "admin@example.com"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@dataclass
class FakeUpload:
    filename: Optional[str] = "image.png"
    content_type: Optional[str] = "image/png"
    file: BinaryIO = field(default_factory=lambda: io.BytesIO(PNG))


def png(name="image.png", content=PNG):
    return (name, io.BytesIO(content), "image/png")


def files_in(directory):
    return sorted(p.name for p in directory.iterdir())


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_name="catalog_test",
        jwt_secret="test-secret",
        env="test",
        upload_dir=tmp_path / "uploads",
        admin_username=ADMIN["username"],
        admin_password=ADMIN["password"],
        admin_email=ADMIN_EMAIL,
        frontend_url="http://front.test",
    )


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient(tz_aware=True)


@pytest.fixture
def sent_mail():
    return []


@pytest.fixture
def app(settings, mongo_client, sent_mail):
    return create_app(settings, mongo_client, send_reset_mail=lambda to, url: sent_mail.append((to, url)))


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app):
    return app.state.db


@pytest.fixture
def upload_dir(app):
    return app.state.assets.upload_dir


@pytest.fixture
def admin_headers(client):
    response = client.post("/api/auth/admin/login", json=ADMIN)
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def make_store(client, admin_headers):
    def _make(name="Acme", description="desc", logo=None, **extra):
        data = {"name": name, "description": description, **extra}
        files = {"logo": logo} if logo else None
        response = client.post("/api/stores", data=data, files=files, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _make


@pytest.fixture
def product_data():
    return {
        "name": "10% Off",
        "description": "d",
        "price": "100",
        "stock": "5",
        "discountCode": "X1",
        "shopNowUrl": "http://x",
    }


@pytest.fixture
def make_product(client, admin_headers, product_data):
    def _make(store_id, images=(), **overrides):
        data = {**product_data, **overrides}
        files = [("images", img) for img in images] or None
        response = client.post(
            f"/api/products/stores/{store_id}/products", data=data, files=files, headers=admin_headers
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _make


# -- service level fixtures (no HTTP) --
@pytest.fixture
def service_db():
    return mongomock.MongoClient(tz_aware=True)["catalog_service_test"]


@pytest.fixture
def assets(tmp_path):
    return AssetStore(tmp_path / "assets", "/uploads", max_bytes=1024)


@pytest.fixture
def service(service_db, assets):
    ensure_indexes(service_db)
    return CatalogService(service_db, assets)
