from conftest import client, make_book, mailer, TestingSessionLocal
from library_api.models import Book, Loan, utcnow


BOOK = {"title": "Dune", "isbn": "9780441013593", "resume": "A desert planet.", "quantity": 2}


def create_book(headers, **overrides):
    payload = dict(BOOK)
    payload.update(overrides)
    return client.post("/api/books", json=payload, headers=headers)


def test_author_submits_pending_book(author):
    response = create_book(author["headers"])
    assert response.status_code == 201
    data = response.json()
    assert data["isValid"] is False
    assert data["publishedAt"] is None
    assert data["quantity"] == 2
    assert data["author"]["email"] == "author@stone.com"


def test_quantity_defaults_to_one(author):
    response = create_book(author["headers"], quantity=None)
    assert response.status_code == 201
    assert response.json()["quantity"] == 1


def test_duplicate_book_names_the_fields(author):
    assert create_book(author["headers"]).status_code == 201
    response = create_book(author["headers"])
    assert response.status_code == 400
    assert {error["property"] for error in response.json()["errors"]} == {"title", "isbn"}


def test_reader_cannot_submit_books(reader):
    assert create_book(reader["headers"]).status_code == 403


def test_status_filter(admin_headers, author):
    make_book(author["id"], title="Published", isbn="1", is_valid=True)
    make_book(author["id"], title="Pending", isbn="2", is_valid=False)

    pending = client.get("/api/books?status=pending", headers=admin_headers).json()
    validated = client.get("/api/books?status=validated", headers=admin_headers).json()
    everything = client.get("/api/books", headers=admin_headers).json()
    assert [book["title"] for book in pending] == ["Pending"]
    assert [book["title"] for book in validated] == ["Published"]
    assert len(everything) == 2


def test_reader_only_sees_validated_books(author, reader):
    published = make_book(author["id"], title="Published", isbn="1", is_valid=True)
    pending = make_book(author["id"], title="Pending", isbn="2", is_valid=False)

    listed = client.get("/api/books", headers=reader["headers"]).json()
    assert [book["id"] for book in listed] == [published]
    assert client.get(f"/api/books/{published}", headers=reader["headers"]).status_code == 200
    assert client.get(f"/api/books/{pending}", headers=reader["headers"]).status_code == 404

    # the author still sees their own submission
    assert client.get(f"/api/books/{pending}", headers=author["headers"]).status_code == 200


def test_get_missing_book(admin_headers):
    assert client.get("/api/books/999", headers=admin_headers).status_code == 404


def test_my_books(author):
    make_book(author["id"], title="Mine", isbn="1", is_valid=False)
    make_book(1, title="Not mine", isbn="2")
    response = client.get("/api/books/mine", headers=author["headers"])
    assert response.status_code == 200
    assert [book["title"] for book in response.json()] == ["Mine"]


def test_validate_book(admin_headers, author):
    book_id = make_book(author["id"], is_valid=False)

    response = client.put(f"/api/books/{book_id}/validate", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["isValid"] is True
    assert response.json()["publishedAt"] is not None

    # validating twice reports the book as not found
    assert client.put(f"/api/books/{book_id}/validate", headers=admin_headers).status_code == 404
    assert client.put("/api/books/999/validate", headers=admin_headers).status_code == 404


def test_author_cannot_validate(author):
    book_id = make_book(author["id"], is_valid=False)
    assert client.put(f"/api/books/{book_id}/validate", headers=author["headers"]).status_code == 403


def test_reject_book_mails_author(admin_headers, author):
    book_id = make_book(author["id"], is_valid=False)

    response = client.post(f"/api/books/{book_id}/reject", json={"message": "Too short"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Message sent to the author"}
    assert mailer.sent[-1]["to"] == "author@stone.com"
    assert mailer.sent[-1]["body"] == "Too short"

    # rejection leaves the book pending
    book = client.get(f"/api/books/{book_id}", headers=admin_headers).json()
    assert book["isValid"] is False


def test_reject_needs_a_message(admin_headers, author):
    book_id = make_book(author["id"], is_valid=False)
    response = client.post(f"/api/books/{book_id}/reject", json={}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["errors"][0]["property"] == "message"
    assert client.post("/api/books/999/reject", json={"message": "x"}, headers=admin_headers).status_code == 404


def test_update_book(author):
    book_id = make_book(author["id"])
    response = client.put(f"/api/books/{book_id}", json={"quantity": 5, "title": ""}, headers=author["headers"])
    assert response.status_code == 200
    assert response.json()["quantity"] == 5
    assert response.json()["title"] == "Dune"

    # keeping the same title is not a conflict with itself
    same = client.put(f"/api/books/{book_id}", json={"title": "Dune"}, headers=author["headers"])
    assert same.status_code == 200


def test_update_book_errors(author):
    book_id = make_book(author["id"])
    make_book(author["id"], title="Emma", isbn="222")

    empty = client.put(f"/api/books/{book_id}", json={}, headers=author["headers"])
    assert empty.status_code == 400
    assert empty.json() == {"message": "At least one field must be provided"}

    taken = client.put(f"/api/books/{book_id}", json={"isbn": "222"}, headers=author["headers"])
    assert taken.status_code == 400
    assert taken.json()["errors"][0]["property"] == "isbn"

    assert client.put("/api/books/999", json={"quantity": 1}, headers=author["headers"]).status_code == 404


def test_delete_book_removes_its_loans(admin_headers, reader):
    book_id = make_book(1)
    db = TestingSessionLocal()
    try:
        db.add(Loan(user_id=reader["id"], book_id=book_id, loan_at=utcnow(), supposed_return_at=utcnow()))
        db.commit()
    finally:
        db.close()

    response = client.delete(f"/api/books/{book_id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"message": "The book 'Dune' has been deleted"}

    db = TestingSessionLocal()
    try:
        assert db.get(Book, book_id) is None
        assert db.query(Loan).count() == 0
    finally:
        db.close()
    assert client.delete(f"/api/books/{book_id}", headers=admin_headers).status_code == 404


def test_reader_cannot_delete_books(reader):
    book_id = make_book(1)
    assert client.delete(f"/api/books/{book_id}", headers=reader["headers"]).status_code == 403
