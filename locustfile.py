from locust import HttpUser, task, constant


class PriceWindowUser(HttpUser):
    # ~100 QPS with 100 users if each sends ~1 request/second
    wait_time = constant(1.0)

    @task(3)
    def get_numbers(self):
        # Window path: upstream fetch on every call
        self.client.get("/numbers/e")

    @task(1)
    def get_average(self):
        # Analytics path: mostly served from the cache
        self.client.get("/stocks/NVDA/average", params={"minutes": 50})
