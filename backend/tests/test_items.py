import io

from PIL import Image

from conftest import auth_headers, create_item, end_date


def _make_png() -> bytes:
    img = Image.new("RGB", (60, 40), "white")
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()


def test_create_item_defaults(client, seller):
    item = create_item(client, seller["token"])
    assert item["currentBid"] == 10
    assert item["startingPrice"] == 10
    assert item["bidCount"] == 0
    assert item["minBidIncrement"] == 1
    assert item["minimumNextBid"] == 11
    assert item["status"] == "active"
    assert item["isActive"] is True
    assert item["condition"] == "good"
    assert item["location"] == "Not specified"
    assert item["seller"]["name"] == "Sally Seller"


def test_create_item_requires_auth(client):
    r = client.post("/api/items", json={"name": "x"})
    assert r.status_code == 401


def test_create_item_rejects_bad_end_date(client, seller):
    headers = auth_headers(seller["token"])
    base = {"name": "Lamp", "description": "A perfectly fine lamp.", "startingPrice": 5, "category": "Home"}
    past = client.post("/api/items", json={**base, "auctionEndDate": end_date(-1)}, headers=headers)
    assert past.status_code == 400
    too_far = client.post("/api/items", json={**base, "auctionEndDate": end_date(31)}, headers=headers)
    assert too_far.status_code == 400
    bad_category = client.post("/api/items", json={**base, "category": "Cars", "auctionEndDate": end_date()},
                               headers=headers)
    assert bad_category.status_code == 400


def test_list_items_filters_and_sorts(client, seller):
    token = seller["token"]
    create_item(client, token, name="Calculus Textbook", category="Books", startingPrice=25,
                description="Stewart calculus, eighth edition.")
    create_item(client, token, name="Tennis Racket", category="Sports", startingPrice=40,
                description="Wilson racket with a cover.", condition="fair")
    create_item(client, token, name="Art Print", category="Art", startingPrice=5,
                description="Watercolour print of the library.")

    r = client.get("/api/items", params={"sort": "price-low"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert [i["currentBid"] for i in data["items"]] == [5, 25, 40]
    assert data["pagination"] == {"current": 1, "total": 1, "count": 3, "totalItems": 3}

    books = client.get("/api/items", params={"category": "Books"}).json()["data"]["items"]
    assert [i["name"] for i in books] == ["Calculus Textbook"]

    found = client.get("/api/items", params={"search": "WATERCOLOUR"}).json()["data"]["items"]
    assert [i["name"] for i in found] == ["Art Print"]

    priced = client.get("/api/items", params={"minPrice": 10, "maxPrice": 30}).json()["data"]["items"]
    assert [i["name"] for i in priced] == ["Calculus Textbook"]

    fair = client.get("/api/items", params={"condition": "fair"}).json()["data"]["items"]
    assert [i["name"] for i in fair] == ["Tennis Racket"]

    paged = client.get("/api/items", params={"sort": "alphabetical", "limit": 2, "page": 2}).json()["data"]
    assert [i["name"] for i in paged["items"]] == ["Tennis Racket"]
    assert paged["pagination"]["total"] == 2

    bad_sort = client.get("/api/items", params={"sort": "random"})
    assert bad_sort.status_code == 400


def test_featured_and_ending_soon(client, seller):
    token = seller["token"]
    create_item(client, token, name="Soon", auctionEndDate=end_date(0.5))
    create_item(client, token, name="Later", auctionEndDate=end_date(5))

    soon = client.get("/api/items/ending-soon").json()["data"]["items"]
    assert [i["name"] for i in soon] == ["Soon"]
    wider = client.get("/api/items/ending-soon", params={"hours": 24 * 6}).json()["data"]["items"]
    assert [i["name"] for i in wider] == ["Soon", "Later"]

    assert client.get("/api/items/featured").json()["data"]["items"] == []


def test_get_item_counts_views_and_unknown_ids(client, seller):
    item = create_item(client, seller["token"])
    first = client.get(f"/api/items/{item['id']}").json()["data"]["item"]
    second = client.get(f"/api/items/{item['id']}", headers=auth_headers(seller["token"])).json()["data"]["item"]
    assert second["views"] == first["views"] + 1
    assert first["isOwner"] is False
    assert second["isOwner"] is True

    missing = client.get("/api/items/9999")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Item not found"

    malformed = client.get("/api/items/not-a-number")
    assert malformed.status_code == 404
    assert malformed.json()["error"] == "INVALID_ID"


def test_update_and_delete_only_by_seller(client, seller, bidder):
    item = create_item(client, seller["token"])
    url = f"/api/items/{item['id']}"

    forbidden = client.put(url, json={"name": "Hijacked"}, headers=auth_headers(bidder["token"]))
    assert forbidden.status_code == 403

    r = client.put(url, json={"name": "Better Lamp", "startingPrice": 12}, headers=auth_headers(seller["token"]))
    assert r.status_code == 200
    updated = r.json()["data"]["item"]
    assert updated["name"] == "Better Lamp"
    assert updated["currentBid"] == 12

    assert client.delete(url, headers=auth_headers(bidder["token"])).status_code == 403
    r = client.delete(url, headers=auth_headers(seller["token"]))
    assert r.status_code == 200
    assert client.get(url).status_code == 404


def test_item_with_bids_cannot_be_edited_or_deleted(client, seller, bidder):
    item = create_item(client, seller["token"])
    r = client.post("/api/bids", json={"itemId": item["id"], "amount": 11}, headers=auth_headers(bidder["token"]))
    assert r.status_code == 201

    url = f"/api/items/{item['id']}"
    edit = client.put(url, json={"name": "Changed"}, headers=auth_headers(seller["token"]))
    assert edit.status_code == 400
    assert edit.json()["message"] == "Cannot edit item that has bids"
    delete = client.delete(url, headers=auth_headers(seller["token"]))
    assert delete.status_code == 400
    assert delete.json()["message"] == "Cannot delete item that has bids"


def test_item_report(client, seller, bidder, other_bidder):
    item = create_item(client, seller["token"])
    client.post("/api/bids", json={"itemId": item["id"], "amount": 11}, headers=auth_headers(bidder["token"]))
    client.post("/api/bids", json={"itemId": item["id"], "amount": 15}, headers=auth_headers(other_bidder["token"]))

    data = client.get(f"/api/items/{item['id']}/report").json()["data"]
    stats = data["statistics"]
    assert stats["totalBids"] == 2
    assert stats["uniqueBidders"] == 2
    assert stats["highestBid"] == 15
    assert stats["averageBid"] == 13
    assert stats["bidSpread"] == 4
    assert data["performance"]["priceIncrease"] == "50.00%"


def test_photo_upload_accepts_png(client, seller):
    item = create_item(client, seller["token"])
    files = {"file": ("lamp.png", _make_png(), "image/png")}
    r = client.post(f"/api/items/{item['id']}/photo", files=files, headers=auth_headers(seller["token"]))
    assert r.status_code == 200
    photo = r.json()["data"]["item"]["photo"]
    assert photo.startswith("/uploads/items/") and photo.endswith(".png")
    assert client.get(photo).status_code == 200


def test_photo_upload_rejects_non_images(client, seller, bidder):
    item = create_item(client, seller["token"])
    url = f"/api/items/{item['id']}/photo"
    files = {"file": ("notes.txt", b"just some text", "text/plain")}
    r = client.post(url, files=files, headers=auth_headers(seller["token"]))
    assert r.status_code == 415

    png = {"file": ("lamp.png", _make_png(), "image/png")}
    assert client.post(url, files=png, headers=auth_headers(bidder["token"])).status_code == 403
