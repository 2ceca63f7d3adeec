from conftest import auth, make_listing, make_product, make_user


def test_admin_creates_product(client, db, admin):
    resp = client.post("/api/products", headers=auth(admin),
                       data={"name": "Bournvita", "category": "Beverages", "description": "hot"},
                       files={"image": ("b.jpg", b"jpegbytes", "image/jpeg")})
    assert resp.status_code == 201
    assert resp.json()["image"].startswith("/uploads/")
    assert db.products.count_documents({}) == 1


def test_product_category_validated(client, admin):
    resp = client.post("/api/products", headers=auth(admin), data={"name": "Pizza", "category": "Meals"})
    assert resp.status_code == 400


def test_seller_cannot_create_product(client, seller):
    resp = client.post("/api/products", headers=auth(seller), data={"name": "Pizza", "category": "Snacks"})
    assert resp.status_code == 403


def test_create_listing_defaults_hostel(client, db, seller):
    product = make_product(db)
    resp = client.post(f"/api/seller/{product['_id']}", headers=auth(seller), json={"price": 30, "stock": 4})
    assert resp.status_code == 201
    assert resp.json()["hostel"] == "A"


def test_duplicate_listing_conflicts(client, db, seller):
    product = make_product(db)
    make_listing(db, product, seller)
    resp = client.post(f"/api/seller/{product['_id']}", headers=auth(seller), json={"price": 30, "stock": 4})
    assert resp.status_code == 409
    assert db.seller_products.count_documents({}) == 1


def test_listing_for_missing_product(client, seller):
    resp = client.post("/api/seller/64b000000000000000000000", headers=auth(seller), json={"price": 1, "stock": 1})
    assert resp.status_code == 404


def test_cannot_adjust_other_sellers_listing(client, db, seller):
    other = make_user(db, "seller")
    listing = make_listing(db, make_product(db), other)
    resp = client.patch(f"/api/seller/{listing['_id']}", headers=auth(seller), json={"stock": 0})
    assert resp.status_code == 403
    assert client.delete(f"/api/seller/{listing['_id']}", headers=auth(seller)).status_code == 403


def test_adjust_rejects_negative_stock(client, db, seller):
    listing = make_listing(db, make_product(db), seller)
    resp = client.patch(f"/api/seller/{listing['_id']}", headers=auth(seller), json={"stock": -1})
    assert resp.status_code == 400


def test_adjust_own_listing(client, db, seller):
    listing = make_listing(db, make_product(db), seller)
    resp = client.patch(f"/api/seller/{listing['_id']}", headers=auth(seller), json={"price": 65})
    assert resp.status_code == 200
    assert db.seller_products.find_one({"_id": listing["_id"]})["price"] == 65


def test_banned_seller_hidden_from_catalog(client, db, seller):
    product = make_product(db)
    make_listing(db, product, seller, price=30)
    banned = make_user(db, "seller", banned=True)
    make_listing(db, product, banned, price=10)

    products = client.get("/api/products").json()
    assert len(products) == 1
    assert [l["price"] for l in products[0]["listings"]] == [30]

    sellers = client.get(f"/api/seller/product/{product['_id']}").json()
    assert [s["seller"]["name"] for s in sellers] == ["Ravi"]


def test_catalog_filters_by_category(client, db, seller):
    make_listing(db, make_product(db, "Maggi", "Instant Food"), seller)
    make_listing(db, make_product(db, "Coke", "Beverages"), seller)
    names = [p["name"] for p in client.get("/api/products", params={"category": "Beverages"}).json()]
    assert names == ["Coke"]


def test_seller_info_hides_private_fields(client, seller):
    info = client.get(f"/api/seller/info/{seller['_id']}").json()
    assert info["shop_name"] == seller["shop_name"]
    assert "email" not in info and "upi_id" not in info


def test_delete_product_removes_listings(client, db, admin, seller):
    product = make_product(db)
    make_listing(db, product, seller)
    resp = client.delete(f"/api/products/{product['_id']}", headers=auth(admin))
    assert resp.json()["listings_removed"] == 1
    assert db.seller_products.count_documents({}) == 0
