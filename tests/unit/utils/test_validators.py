"""Tests for request validation helpers"""

from utils.validators import is_valid_email, parse_id_list, validate_metadata, validate_name


class TestValidators:

    def test_is_valid_email(self):
        assert is_valid_email('reader@example.com')
        assert not is_valid_email('reader@example')
        assert not is_valid_email(None)
        assert not is_valid_email('a' * 190 + '@example.com')

    def test_validate_name(self):
        errors = {}
        assert validate_name('  News  ', errors=errors) == 'News'
        assert errors == {}

        validate_name('', errors=errors)
        assert errors == {'name': 'This field is required'}

    def test_parse_id_list(self):
        errors = {}
        assert parse_id_list(['1', 2], 'ids', errors) == [1, 2]
        assert parse_id_list(None, 'ids', errors) == []
        assert errors == {}

        assert parse_id_list([True], 'ids', errors) == []
        assert errors == {'ids': 'Must be a list of ids'}

    def test_validate_metadata(self):
        errors = {}
        assert validate_metadata({'plan': 'pro'}, errors) == {'plan': 'pro'}
        assert validate_metadata(['x'], errors) == {}
        assert errors == {'metadata': 'Must be an object'}
