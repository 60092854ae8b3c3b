"""
Test configuration and shared fixtures for advert responder tests.

This module provides common test utilities and fixtures used across
all test modules.
"""

import os
import sys
from types import SimpleNamespace

# Ensure parent directory is in path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from geoip2.errors import AddressNotFoundError
from PIL import Image

from templates import Template, TextBox


# Constants for test data
TEST_COLUMBUS_IP = "93.184.216.34"
TEST_LOOPBACK_IP = "127.0.0.1"
TEST_DOCUMENTATION_IP = "203.0.113.7"  # TEST-NET-3
TEST_UNMAPPED_IP = "8.8.4.4"
TEST_IPV6 = "2001:4860:4860::8888"

TEST_BACKGROUND = (20, 30, 120, 255)


class FakeCityReader:
    """
    Stand-in for geoip2.database.Reader.

    Maps address strings to (city, country) pairs; anything else raises
    AddressNotFoundError like the real reader does.
    """

    def __init__(self, records=None):
        self.records = records or {}
        self.calls = []
        self.closed = False

    def city(self, ip):
        self.calls.append(ip)
        if ip not in self.records:
            raise AddressNotFoundError(f"The address {ip} is not in the database.")
        city, country = self.records[ip]
        return SimpleNamespace(
            city=SimpleNamespace(name=city),
            country=SimpleNamespace(name=country),
            location=SimpleNamespace(latitude=39.96, longitude=-83.0),
        )

    def close(self):
        self.closed = True


def default_records():
    return {
        TEST_COLUMBUS_IP: ("Columbus", "United States"),
        TEST_IPV6: ("Mountain View", "United States"),
        "81.2.69.160": (None, "United Kingdom"),
    }


def make_template(
    name="singles",
    size=(300, 120),
    frames=1,
    text_case="default",
    text_prefix="",
    rtl=False,
    **box_overrides,
) -> Template:
    """Create an in-memory template with a solid background."""
    box = dict(
        x=20, y=20, width=260, height=60,
        font_size=32, min_font_size=12,
        color=(255, 255, 255, 255), align="left", valign="top",
    )
    box.update(box_overrides)
    return Template(
        name=name,
        image=Image.new("RGBA", size, TEST_BACKGROUND),
        text_box=TextBox(**box),
        frames=frames,
        text_case=text_case,
        text_prefix=text_prefix,
        rtl=rtl,
    )


def write_png(path, size=(300, 120), color=TEST_BACKGROUND):
    Image.new("RGBA", size, color).save(path, format="PNG")
    return path
