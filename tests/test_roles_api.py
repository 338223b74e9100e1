import pytest

from conftest import client, make_user, TestingSessionLocal
from library_api.models import User


def create_role(headers, name="librarian", permissions=(16, 17)):
    return client.post("/api/roles", json={"name": name, "permissions": list(permissions)}, headers=headers)


def test_list_roles(admin_headers):
    response = client.get("/api/roles", headers=admin_headers)
    assert response.status_code == 200
    assert [role["name"] for role in response.json()] == ["admin", "author", "reader"]

    second_page = client.get("/api/roles?page=2&perpage=2", headers=admin_headers).json()
    assert [role["name"] for role in second_page] == ["reader"]


def test_get_role(admin_headers):
    response = client.get("/api/roles/3", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["permissions"] == ["books.list", "books.show", "books.loan", "books.return"]
    assert client.get("/api/roles/999", headers=admin_headers).status_code == 404


def test_create_role(admin_headers):
    response = create_role(admin_headers)
    assert response.status_code == 201
    assert response.json()["name"] == "librarian"
    assert response.json()["permissions"] == ["books.list", "books.show"]


def test_create_role_validation(admin_headers):
    response = create_role(admin_headers, name="admin", permissions=())
    assert response.status_code == 400
    errors = {error["property"]: error["infos"] for error in response.json()["errors"]}
    assert "isUnique" in errors["name"]
    assert "arrayMinSize" in errors["permissions"]


def test_add_and_remove_permissions(admin_headers):
    role_id = create_role(admin_headers).json()["id"]

    added = client.post(f"/api/roles/{role_id}/permissions", json={"permissions": [17, 18]}, headers=admin_headers)
    assert added.status_code == 201
    assert added.json()["permissions"] == ["books.list", "books.show", "books.mine"]

    removed = client.put(f"/api/roles/{role_id}/permissions", json={"permissions": [16, 1]}, headers=admin_headers)
    assert removed.status_code == 200
    assert removed.json()["permissions"] == ["books.show", "books.mine"]


def test_permissions_must_exist(admin_headers):
    response = client.post("/api/roles/3/permissions", json={"permissions": [999]}, headers=admin_headers)
    assert response.status_code == 400
    assert "isAvailable" in response.json()["errors"][0]["infos"]


def test_update_role(admin_headers):
    role_id = create_role(admin_headers).json()["id"]
    response = client.put(f"/api/roles/{role_id}", json={"name": "archivist"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "archivist"

    taken = client.put(f"/api/roles/{role_id}", json={"name": "reader"}, headers=admin_headers)
    assert taken.status_code == 400
    assert client.put("/api/roles/999", json={"name": "ghost"}, headers=admin_headers).status_code == 404


@pytest.mark.parametrize("role_id", [1, 2, 3])
def test_reserved_roles_cannot_be_deleted(admin_headers, role_id):
    response = client.delete(f"/api/roles/{role_id}", headers=admin_headers)
    assert response.status_code == 403
    assert client.get(f"/api/roles/{role_id}", headers=admin_headers).status_code == 200


def test_delete_role_keeps_users(admin_headers):
    role_id = create_role(admin_headers).json()["id"]
    user_id = make_user("member@stone.com", [3])
    client.post(f"/api/users/{user_id}/roles", json={"roles": [role_id]}, headers=admin_headers)

    response = client.delete(f"/api/roles/{role_id}", headers=admin_headers)
    assert response.status_code == 200
    assert client.get(f"/api/roles/{role_id}", headers=admin_headers).status_code == 404

    db = TestingSessionLocal()
    try:
        user = db.get(User, user_id)
        assert user is not None
        assert user.role_ids == [3]
    finally:
        db.close()

    assert client.delete(f"/api/roles/{role_id}", headers=admin_headers).status_code == 404


def test_permission_catalog(admin_headers, reader):
    response = client.get("/api/permissions?perpage=50", headers=admin_headers)
    assert response.status_code == 200
    assert len(response.json()) == 25
    permission = client.get("/api/permissions/16", headers=admin_headers).json()
    assert permission == {"id": 16, "name": "books.list", "method": "GET", "url": r"^/api/books/?$"}
    assert client.get("/api/permissions/999", headers=admin_headers).status_code == 404
    assert client.get("/api/permissions", headers=reader["headers"]).status_code == 403
