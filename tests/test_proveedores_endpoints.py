import pytest

from core import cache_keys

URL = "/api/s3/proveedores"


@pytest.fixture
def seeded(storage):
    storage.put_document(
        "Provedores/json/proveedores.json",
        [
            {"Empresa": "Textil Norte", "Nombre de contacto": "Luis", "Teléfono": "8112345678", "Correo": "ventas@norte.mx"},
            {"Empresa": None, "Nombre de contacto": None, "Correo": None},
            {"Empresa": "algodones del sur", "Correo": "hola@ads.mx"},
        ],
    )
    return storage


def _proveedor(**overrides):
    payload = {
        "Empresa": "Hilos Finos SA",
        "Nombre de contacto": " Marta ",
        "Teléfono": "5550001111",
        "Correo": "marta@hilos.mx",
        "Producto": "Seda",
    }
    payload.update(overrides)
    return payload


class TestProveedoresListing:
    @pytest.mark.asyncio
    async def test_blank_rows_are_dropped_and_listing_cached(self, client, seeded, seller_headers):
        first = await client.get(URL, headers=seller_headers)
        second = await client.get(URL, headers=seller_headers)

        body = first.json()
        assert [p["Empresa"] for p in body["data"]] == ["algodones del sur", "Textil Norte"]
        assert body["data"][0]["Teléfono"] == ""
        assert body["data"][1]["fileKey"] == "Provedores/json/proveedores.json"
        assert first.headers["X-Cache-Key"] == cache_keys.PROVEEDORES.key()
        assert second.headers["X-Cache"] == "HIT"

    @pytest.mark.asyncio
    async def test_unreadable_files_are_reported(self, client, seeded, seller_headers):
        seeded.put_raw("Provedores/json/roto.json", b"{not json")

        response = await client.get(URL, headers=seller_headers)

        assert response.status_code == 200
        assert response.json()["failedFiles"] == ["Provedores/json/roto.json"]
        assert response.json()["total"] == 2

    @pytest.mark.asyncio
    async def test_empty_folder_is_404(self, client, storage, seller_headers):
        response = await client.get(URL, headers=seller_headers)
        assert response.status_code == 404


class TestProveedoresWrites:
    @pytest.mark.asyncio
    async def test_create_refreshes_the_listing(self, app, client, seeded, seller_headers):
        await client.get(URL, headers=seller_headers)

        response = await client.post(URL, headers=seller_headers, json=_proveedor())

        assert response.status_code == 200
        key = response.json()["data"]["fileKey"]
        assert key.startswith("Provedores/json/proveedor_hilos_finos_sa_")
        assert seeded.document(key)["Nombre de contacto"] == "Marta"
        assert seeded.metadata[key]["created_by"] == "vendedor@telasluciana.mx"
        await app.state.warmer.drain()

        listing = await client.get(URL, headers=seller_headers)
        assert listing.headers["X-Cache"] == "HIT"
        assert listing.json()["total"] == 3

    @pytest.mark.asyncio
    async def test_invalid_email_is_rejected(self, client, seeded, seller_headers):
        response = await client.post(URL, headers=seller_headers, json=_proveedor(Correo="sin-arroba"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_replaces_the_file(self, client, seeded, seller_headers):
        created = await client.post(URL, headers=seller_headers, json=_proveedor())
        old_key = created.json()["data"]["fileKey"]

        response = await client.put(
            URL, headers=seller_headers, json={**_proveedor(Empresa="Hilos Gruesos"), "fileKey": old_key}
        )

        assert response.status_code == 200
        new_key = response.json()["data"]["fileKey"]
        assert response.json()["data"]["previousFileKey"] == old_key
        assert old_key not in seeded.objects
        assert seeded.document(new_key)["Empresa"] == "Hilos Gruesos"

    @pytest.mark.asyncio
    async def test_keys_outside_the_folder_are_refused(self, client, seeded, admin_headers):
        response = await client.request(
            "DELETE", URL, headers=admin_headers, json={"fileKey": "Directorio/Main/clientes.json"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_only_admins_delete(self, app, client, seeded, seller_headers, admin_headers):
        body = {"fileKey": "Provedores/json/proveedores.json"}
        forbidden = await client.request("DELETE", URL, headers=seller_headers, json=body)
        await client.get(URL, headers=seller_headers)

        deleted = await client.request("DELETE", URL, headers=admin_headers, json=body)

        assert forbidden.status_code == 403
        assert deleted.status_code == 200
        assert deleted.json()["cache"]["removed"] == 1
        assert "Provedores/json/proveedores.json" not in seeded.objects
