import pytest

from core import cache_keys

URL = "/api/s3/clientes"


@pytest.fixture
def seeded(storage):
    storage.put_document(
        "Directorio/Main/clientes.json",
        [
            {"empresa": "Beta Textiles", "contacto": "Ana", "telefono": 5551234567},
            {"empresa": "acme", "email": "compras@acme.mx", "vendedor": None},
        ],
    )
    storage.put_document("Directorio/Main/extra.json", {"empresa": "Casa Lino"})
    return storage


class TestClientes:
    @pytest.mark.asyncio
    async def test_listing_is_normalized_and_sorted(self, client, seeded, seller_headers):
        response = await client.get(URL, headers=seller_headers)

        body = response.json()
        assert [c["empresa"] for c in body["data"]] == ["acme", "Beta Textiles", "Casa Lino"]
        beta = body["data"][1]
        assert beta["telefono"] == "5551234567"
        assert beta["direccion"] == ""
        assert body["data"][0]["vendedor"] == ""
        assert beta["fileKey"] == "Directorio/Main/clientes.json"

    @pytest.mark.asyncio
    async def test_cached_after_first_read(self, client, seeded, seller_headers):
        await client.get(URL, headers=seller_headers)
        seeded.put_document("Directorio/Main/nuevo.json", {"empresa": "Zeta"})

        response = await client.get(URL, headers=seller_headers)

        assert response.headers["X-Cache"] == "HIT"
        assert response.json()["total"] == 3

    @pytest.mark.asyncio
    async def test_admin_refresh_picks_up_new_documents(self, app, client, seeded, seller_headers, admin_headers):
        await client.get(URL, headers=seller_headers)
        seeded.put_document("Directorio/Main/nuevo.json", {"empresa": "Zeta"})

        refresh = await client.post(f"{URL}/refresh", headers=admin_headers)
        assert refresh.status_code == 200
        assert refresh.json()["cache"]["removed"] == 1
        await app.state.warmer.drain()

        response = await client.get(URL, headers=seller_headers)
        assert response.headers["X-Cache"] == "HIT"
        assert response.json()["total"] == 4

    @pytest.mark.asyncio
    async def test_sellers_cannot_refresh(self, client, seeded, seller_headers):
        response = await client.post(f"{URL}/refresh", headers=seller_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_cache_key(self, client, seeded, seller_headers):
        response = await client.get(URL, headers=seller_headers)
        assert response.headers["X-Cache-Key"] == cache_keys.CLIENTES.key()
