"""
Unit tests for template loading and selection.

Tests cover:
- Decoding PNG templates from adverts-file entries
- Rejecting non-PNG files, bad frame layouts and out-of-bounds text boxes
- Selection policies (fixed, round_robin, random)
- Adverts file parsing
"""

import os
import shutil
import sys
import tempfile
import unittest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from PIL import Image

from conftest import make_template, write_png
from config import load_adverts
from errors import ConfigError, TemplateLoadError, TemplateNotFound
from templates import TemplateStore, load_template, validate_template


class TemplateDirTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        write_png(os.path.join(self.tmp, "singles.png"), size=(300, 120))

    def tearDown(self):
        shutil.rmtree(self.tmp)


class TestLoadTemplate(TemplateDirTestCase):
    """Tests for load_template."""

    def test_loads_png_with_text_box(self):
        template = load_template("singles", {
            "image": "singles.png",
            "text_x": 10, "text_y": 20, "text_width": 200, "text_height": 50,
            "text_size": 30, "text_color": [255, 0, 0],
            "text_align": "center", "text_prefix": "Singles in ",
        }, base_dir=self.tmp)

        self.assertEqual(template.size, (300, 120))
        self.assertEqual(template.image.mode, "RGBA")
        self.assertEqual(template.text_box.color, (255, 0, 0, 255))
        self.assertEqual(template.text_box.align, "center")
        self.assertEqual(template.text_box.min_font_size, 15)
        self.assertEqual(template.text_prefix, "Singles in ")

    def test_missing_image_key(self):
        with self.assertRaises(TemplateLoadError):
            load_template("singles", {}, base_dir=self.tmp)

    def test_missing_file(self):
        with self.assertRaises(TemplateLoadError):
            load_template("singles", {"image": "nope.png"}, base_dir=self.tmp)

    def test_non_string_image_path(self):
        """A number where a path belongs is a template error, not a crash."""
        with self.assertRaises(TemplateLoadError):
            load_template("singles", {"image": 42}, base_dir=self.tmp)

    def test_rtl_flag(self):
        template = load_template("singles", {"image": "singles.png", "text_rtl": True}, base_dir=self.tmp)
        self.assertTrue(template.rtl)
        plain = load_template("singles", {"image": "singles.png"}, base_dir=self.tmp)
        self.assertFalse(plain.rtl)

    def test_jpeg_is_rejected(self):
        """Only PNG templates are accepted."""
        Image.new("RGB", (300, 120), "blue").save(os.path.join(self.tmp, "photo.png"), format="JPEG")
        with self.assertRaises(TemplateLoadError):
            load_template("photo", {"image": "photo.png"}, base_dir=self.tmp)

    def test_out_of_bounds_text_box(self):
        with self.assertRaises(TemplateLoadError):
            load_template("singles", {
                "image": "singles.png", "text_x": 250, "text_width": 100,
            }, base_dir=self.tmp)

    def test_invalid_alignment(self):
        with self.assertRaises(TemplateLoadError):
            load_template("singles", {"image": "singles.png", "text_align": "justify"}, base_dir=self.tmp)

    def test_invalid_color(self):
        with self.assertRaises(TemplateLoadError):
            load_template("singles", {"image": "singles.png", "text_color": [300, 0, 0]}, base_dir=self.tmp)

    def test_frames_must_divide_height(self):
        with self.assertRaises(TemplateLoadError):
            load_template("singles", {"image": "singles.png", "frames": 7, "text_height": 10}, base_dir=self.tmp)

    def test_text_box_must_fit_one_frame(self):
        """With 2 frames of 60px, a box reaching y=70 is out of bounds."""
        with self.assertRaises(TemplateLoadError):
            load_template("singles", {
                "image": "singles.png", "frames": 2, "text_y": 30, "text_height": 40,
            }, base_dir=self.tmp)


class TestValidateTemplate(unittest.TestCase):
    """Tests for validate_template on in-memory templates."""

    def test_valid_template_passes(self):
        validate_template(make_template())

    def test_min_size_above_size_rejected(self):
        with self.assertRaises(TemplateLoadError):
            validate_template(make_template(font_size=10, min_font_size=20))

    def test_negative_position_rejected(self):
        with self.assertRaises(TemplateLoadError):
            validate_template(make_template(x=-1))


class TestTemplateStore(unittest.TestCase):
    """Tests for template selection."""

    def setUp(self):
        self.templates = [make_template(name) for name in ("a", "b", "c")]

    def test_fixed_returns_first(self):
        store = TemplateStore(self.templates)
        self.assertEqual([store.select().name for _ in range(3)], ["a", "a", "a"])

    def test_fixed_with_named_default(self):
        store = TemplateStore(self.templates, default="b")
        self.assertEqual(store.select().name, "b")

    def test_round_robin_cycles_in_order(self):
        store = TemplateStore(self.templates, policy="round_robin")
        self.assertEqual([store.select().name for _ in range(5)], ["a", "b", "c", "a", "b"])

    def test_random_is_deterministic_with_seed(self):
        first = TemplateStore(self.templates, policy="random", seed=42)
        second = TemplateStore(self.templates, policy="random", seed=42)
        self.assertEqual(
            [first.select().name for _ in range(10)],
            [second.select().name for _ in range(10)],
        )

    def test_get_by_name(self):
        store = TemplateStore(self.templates)
        self.assertEqual(store.get("c").name, "c")
        self.assertIn("b", store)
        self.assertEqual(store.names(), ["a", "b", "c"])
        self.assertEqual(len(store), 3)

    def test_get_unknown_raises(self):
        store = TemplateStore(self.templates)
        with self.assertRaises(TemplateNotFound):
            store.get("missing")
        with self.assertRaises(KeyError):
            store.get("missing")

    def test_unknown_policy_rejected(self):
        with self.assertRaises(ConfigError):
            TemplateStore(self.templates, policy="weighted")

    def test_empty_store_rejected(self):
        with self.assertRaises(ConfigError):
            TemplateStore([])

    def test_duplicate_names_rejected(self):
        with self.assertRaises(ConfigError):
            TemplateStore([make_template("a"), make_template("a")])

    def test_unknown_default_rejected(self):
        with self.assertRaises(ConfigError):
            TemplateStore(self.templates, default="zzz")


class TestAdvertsFile(TemplateDirTestCase):
    """Tests for reading the TOML adverts file."""

    def write_config(self, text):
        path = os.path.join(self.tmp, "config.toml")
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def test_loads_adverts_in_order(self):
        path = self.write_config(
            '[singles]\nimage = "singles.png"\ntext_size = 24\n\n'
            '[moms]\nimage = "singles.png"\ntext_case = "upper"\n'
        )
        adverts = load_adverts(path)
        self.assertEqual(list(adverts), ["singles", "moms"])

        store = TemplateStore.from_config(adverts, base_dir=self.tmp)
        self.assertEqual(store.get("moms").text_case, "upper")

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_adverts(os.path.join(self.tmp, "missing.toml"))

    def test_malformed_file(self):
        path = self.write_config("[singles\nimage = ")
        with self.assertRaises(ConfigError):
            load_adverts(path)

    def test_file_without_adverts(self):
        path = self.write_config('title = "nothing here"\n')
        with self.assertRaises(ConfigError):
            load_adverts(path)


if __name__ == "__main__":
    unittest.main()
