"""Tests for the catalog descriptor table."""

import unittest

from venuecrawl.catalogs import CATALOGS, get_descriptor, resolve_sources
from venuecrawl.errors import ConfigurationError
from venuecrawl.renderer import page_url


class TestCatalogTable(unittest.TestCase):
    """Verify that the table resolves the right descriptors."""

    def test_known_sources(self):
        self.assertEqual(get_descriptor("TagVenue").source_id, "TagVenue")
        self.assertEqual(get_descriptor("HireSpace").source_id, "HireSpace")

    def test_unknown_source_raises_configuration_error(self):
        with self.assertRaises(ConfigurationError) as ctx:
            get_descriptor("Yelp")
        self.assertIn("Yelp", str(ctx.exception))

    def test_all_expands_in_table_order(self):
        self.assertEqual([d.source_id for d in resolve_sources("All")], list(CATALOGS))

    def test_defaults(self):
        for d in CATALOGS.values():
            self.assertEqual(d.hard_page_ceiling, 300)
            self.assertEqual(d.low_item_threshold, 1)
            self.assertEqual(d.stop_streak_length, 3)
            self.assertEqual(d.short_tail_floor, 5)
            self.assertEqual(d.page_param_name, "page")

    def test_tagvenue_excludes_search_links(self):
        self.assertIn("/search/", get_descriptor("TagVenue").item_link_rule.exclude)


class TestOverrides(unittest.TestCase):
    """Verify runtime overrides produce new descriptors and leave the table alone."""

    def test_override_values(self):
        (d,) = resolve_sources("HireSpace", hard_page_ceiling=12, low_item_threshold=2, stop_streak_length=4, start_page=3)
        self.assertEqual((d.hard_page_ceiling, d.low_item_threshold, d.stop_streak_length, d.start_page), (12, 2, 4, 3))
        self.assertEqual(CATALOGS["HireSpace"].hard_page_ceiling, 300)

    def test_inline_only_drops_detail_rules(self):
        (d,) = resolve_sources("TagVenue", inline_only=True)
        self.assertIsNone(d.detail_field_rules)
        self.assertIsNotNone(CATALOGS["TagVenue"].detail_field_rules)

    def test_invalid_override_raises(self):
        with self.assertRaises(ConfigurationError):
            resolve_sources("TagVenue", hard_page_ceiling=0)
        with self.assertRaises(ConfigurationError):
            resolve_sources("TagVenue", stop_streak_length=0)


class TestPageUrl(unittest.TestCase):

    def test_appends_page_param(self):
        url = page_url(get_descriptor("TagVenue").seed_url_template, "page", 7)
        self.assertEqual(url, "https://www.tagvenue.com/uk/search/event-venue?page=7")

    def test_keeps_existing_query_and_replaces_page(self):
        url = page_url("https://hirespace.com/Search?area=United+Kingdom&page=1", "page", 4)
        self.assertEqual(url, "https://hirespace.com/Search?area=United+Kingdom&page=4")


if __name__ == "__main__":
    unittest.main()
