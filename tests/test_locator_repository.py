"""Domain locator store tests against a temporary SQLite database."""

import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from monitra.models import get_engine, get_session_factory, init_db
from monitra.records import LocatorPair
from monitra.repositories import DomainLocatorStore, domain_from_url


class TestDomainFromUrl(unittest.TestCase):
    def test_normalization(self):
        self.assertEqual(domain_from_url("https://www.Amazon.in/dp/B0C1"), "amazon.in")
        self.assertEqual(domain_from_url("http://shop.example.com:8080/p?x=1"), "shop.example.com")
        self.assertEqual(domain_from_url("www.example.org/item"), "example.org")
        self.assertEqual(domain_from_url(""), "")


class TestDomainLocatorStore(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.tmp.close()

        config = {
            "storage": {
                "default_backend": "sqlite",
                "sqlite": {"database_path": self.tmp.name},
            }
        }
        self.engine = get_engine(config, "sqlite")
        init_db(self.engine)
        self.store = DomainLocatorStore(get_session_factory(self.engine))

    def tearDown(self):
        self.engine.dispose()
        Path(self.tmp.name).unlink(missing_ok=True)

    def test_missing_domain(self):
        self.assertIsNone(self.store.get("example.com"))

    def test_upsert_then_get(self):
        self.store.upsert("example.com", LocatorPair("h1", ".price"))
        self.assertEqual(self.store.get("example.com"), LocatorPair("h1", ".price"))

    def test_last_write_wins(self):
        self.store.upsert("example.com", LocatorPair("h1", ".price"))
        self.store.upsert("example.com", LocatorPair('[itemprop="name"]', '[itemprop="price"]'))
        self.assertEqual(
            self.store.get("example.com"), LocatorPair('[itemprop="name"]', '[itemprop="price"]')
        )
        self.assertEqual(len(self.store.list_all()), 1)

    def test_list_all_sorted(self):
        self.store.upsert("zeta.com", LocatorPair("h1", ".p"))
        self.store.upsert("alpha.com", LocatorPair("h2", ".q"))
        rows = self.store.list_all()
        self.assertEqual([row["domain"] for row in rows], ["alpha.com", "zeta.com"])
        self.assertEqual(rows[0]["name_locator"], "h2")
        self.assertIsNotNone(rows[0]["updated_at"])

    def test_persists_across_store_instances(self):
        self.store.upsert("example.com", LocatorPair("h1", ".price"))
        reopened = DomainLocatorStore(get_session_factory(self.engine))
        self.assertEqual(reopened.get("example.com"), LocatorPair("h1", ".price"))


if __name__ == "__main__":
    unittest.main()
