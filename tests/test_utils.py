import sys
import unittest
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from soundcloud_api.utils import format_date, get_tags, get_widget_url


class TestUtils(unittest.TestCase):
    def test_get_tags_handles_quoted_multi_word_tags(self):
        self.assertEqual(get_tags('"hip hop" electronic bass'), ["hip%20hop", "electronic", "bass"])

    def test_get_tags_empty(self):
        self.assertEqual(get_tags(None), [])
        self.assertEqual(get_tags(""), [])

    def test_get_tags_escapes_quotes_and_encodes(self):
        self.assertEqual(get_tags("rock'n'roll drum&bass"), ["rock\\'n\\'roll", "drum%26bass"])

    def test_widget_url(self):
        url = get_widget_url(123456)
        self.assertTrue(url.startswith("https%3A//api.soundcloud.com/tracks/123456&show_teaser=false"))
        self.assertTrue(url.endswith("&show_name=false"))

    def test_format_date_pads_fields(self):
        self.assertEqual(format_date(datetime(2024, 3, 5, 7, 8, 9)), "20240305070809")


if __name__ == "__main__":
    unittest.main(verbosity=2)
