import unittest
from decimal import Decimal

from pixshop.storage.base import PublicUrlStorage
from pixshop.utils.currency import format_price, from_minor_units, to_minor_units
from pixshop.utils.pix_card import decode_data_uri, render_pix_card_data_uri


class TestCurrency(unittest.TestCase):
    def test_format_brl(self):
        self.assertEqual(format_price(Decimal("29.90")), "R$ 29,90")
        self.assertEqual(format_price("1234.5"), "R$ 1.234,50")
        self.assertEqual(format_price(10, "USD"), "US$ 10,00")

    def test_minor_units(self):
        self.assertEqual(to_minor_units(Decimal("29.90")), 2990)
        self.assertEqual(to_minor_units(0.1 + 0.2), 30)
        self.assertEqual(from_minor_units(2990), Decimal("29.90"))


class TestPublicUrlStorage(unittest.TestCase):
    def setUp(self):
        self.storage = PublicUrlStorage("https://cdn.example.com/")

    def test_key_is_prefixed(self):
        self.assertEqual(self.storage.public_url("content/1.jpg"), "https://cdn.example.com/content/1.jpg")
        self.assertEqual(self.storage.public_url("/content/1.jpg"), "https://cdn.example.com/content/1.jpg")

    def test_urls_and_file_ids_pass_through(self):
        self.assertEqual(self.storage.public_url("https://img.example.com/a.jpg"), "https://img.example.com/a.jpg")
        self.assertEqual(self.storage.public_url("AgACAgQAAxkBAAIB"), "AgACAgQAAxkBAAIB")

    def test_no_base_url(self):
        self.assertEqual(PublicUrlStorage("").public_url("content/1.jpg"), "content/1.jpg")


class TestPixCard(unittest.TestCase):
    def test_data_uri_decodes_to_png(self):
        uri = render_pix_card_data_uri("R$ 29,90", "00020126" * 10)
        png = decode_data_uri(uri)
        self.assertTrue(png.startswith(b"\x89PNG"))

    def test_plain_url_is_not_decoded(self):
        self.assertIsNone(decode_data_uri("https://img.example.com/qr.png"))
        self.assertIsNone(decode_data_uri(""))
