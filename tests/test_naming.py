"""Tests for physical name and identifier generation."""

import hashlib
import re

import pytest

from flextable.naming import (
    chunked,
    generate_internal_name,
    generate_record_id,
    generate_schema_id,
    slugify_display_name,
)


class TestInternalName:
    """Physical collection names."""

    def test_pattern(self):
        name = generate_internal_name('myapp', 'Customer Orders', 1700000000000)
        digest = hashlib.md5(b'myapp_Customer Orders_1700000000000').hexdigest()[:8]
        assert name == f'myapp_data_{digest}_customer_orders'

    def test_deterministic(self):
        assert (generate_internal_name('ns', 'Users', 1) ==
                generate_internal_name('ns', 'Users', 1))

    def test_salted_by_instant(self):
        assert (generate_internal_name('ns', 'Users', 1) !=
                generate_internal_name('ns', 'Users', 2))

    def test_slug(self):
        assert slugify_display_name('Q3  Sales -- EMEA') == 'q3_sales_emea'
        assert len(slugify_display_name('x' * 80)) == 50


def test_identifiers():
    assert re.fullmatch(r'schema_[0-9a-f]{16}', generate_schema_id())
    assert re.fullmatch(r'rec_[0-9a-f]{16}', generate_record_id())
    assert generate_record_id() != generate_record_id()


def test_chunked():
    assert chunked(list(range(5)), 2) == [[0, 1], [2, 3], [4]]
    assert chunked([], 3) == []
    with pytest.raises(ValueError):
        chunked([1], 0)
