"""Tests for field type inference from raw CSV columns."""

from flextable.inference import infer_field_type, sample_values, suggest_fields
from flextable.types import FieldType


class TestInferFieldType:
    """Inference follows the fixed priority order."""

    def test_email(self):
        assert infer_field_type(['a@b.co', 'c@d.org']) == (FieldType.EMAIL, [])

    def test_ten_digit_strings_are_phones_not_numbers(self):
        assert infer_field_type(['9876543210', '1234567890']) == (FieldType.PHONE, [])

    def test_url(self):
        assert infer_field_type(['https://a.com', 'http://b.org/x']) == (FieldType.URL, [])

    def test_number(self):
        assert infer_field_type(['1', '2.5', '-3']) == (FieldType.NUMBER, [])

    def test_zero_one_column_is_number(self):
        assert infer_field_type(['1', '0', '1'])[0] == FieldType.NUMBER

    def test_boolean(self):
        assert infer_field_type(['true', 'No', 'YES'])[0] == FieldType.BOOLEAN

    def test_date(self):
        assert infer_field_type(['2024-01-05', '2024-02-10'])[0] == FieldType.DATE

    def test_select_when_values_repeat(self):
        values = ['Admin', 'Editor', 'Admin', 'Editor', 'Admin', 'Admin']
        assert infer_field_type(values) == (FieldType.SELECT, ['Admin', 'Editor'])

    def test_text_when_values_are_distinct(self):
        assert infer_field_type(['Alice', 'Bob', 'Carol', 'Dave']) == (FieldType.TEXT, [])

    def test_empty_column_is_text(self):
        assert infer_field_type(['', None, '']) == (FieldType.TEXT, [])

    def test_only_first_ten_values_sampled(self):
        values = ['a@b.co'] * 10 + ['not an email']
        assert infer_field_type(values)[0] == FieldType.EMAIL


def test_sample_values_skips_empty():
    assert sample_values(['', 'a', None, 'b'], size=1) == ['a']


def test_suggest_fields():
    headers = ['email', 'phone', 'role']
    rows = [
        {'email': f'user{i}@example.com', 'phone': f'98765432{i:02d}', 'role': 'Admin' if i % 2 else 'Editor'}
        for i in range(20)
    ]
    fields = suggest_fields(headers, rows)

    assert [field['type'] for field in fields] == ['email', 'phone', 'select']
    assert fields[2]['options'] == ['Editor', 'Admin']
    assert all(field['required'] is False for field in fields)
