from locust import HttpUser, task, between
import random

class ShopperUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Create an account for this simulated shopper
        email = f"shopper_{random.randint(1, 1_000_000)}@example.com"
        password = "load-test-pw"
        self.user_id = None
        self.client.post("/signup", json={"email": email, "password": password, "confirmPassword": password})
        r = self.client.post("/login", json={"email": email, "password": password})
        if r.status_code == 200:
            self.user_id = r.json()["user"]["id"]

    def _some_product(self):
        r = self.client.get("/api/products", name="/api/products")
        if r.status_code != 200 or not r.json():
            return None
        return random.choice(r.json())

    @task(3)
    def add_to_cart(self):
        product = self._some_product()
        if not (self.user_id and product):
            return
        self.client.post(
            "/cart/add",
            json={"user_id": self.user_id, "item_id": product["id"], "quantity": random.randint(1, 3)},
        )

    @task(1)
    def checkout(self):
        if not self.user_id:
            return
        r = self.client.get(f"/cart/{self.user_id}", name="/cart/[user_id]")
        lines = r.json().get("cart", []) if r.status_code == 200 else []
        if not lines:
            return
        items = [
            {"item_id": line["product_id"], "quantity": line["quantity"], "price_at_purchase": line["price"]}
            for line in lines
        ]
        total = sum(float(line["total_price"]) for line in lines)
        self.client.post(
            "/order/place",
            json={"user_id": self.user_id, "items": items, "total_price": f"{total:.2f}"},
        )

    @task(2)
    def browse(self):
        self.client.get("/api/products", params={"search": "lamp"}, name="/api/products?search")
