"""Tests for merge field parsing and rendering"""

import pytest

from services import merge_fields


class TestParse:

    def test_parse_valid_template(self):
        template = merge_fields.parse('Hello {{ name }}')
        assert merge_fields.render(template, {'name': 'Ada'}) == 'Hello Ada'

    def test_parse_none_is_empty(self):
        assert merge_fields.render(merge_fields.parse(None), {}) == ''

    def test_parse_unclosed_tag_raises(self):
        with pytest.raises(merge_fields.MergeFieldSyntaxError) as exc_info:
            merge_fields.parse('Hello {{ name ')
        assert exc_info.value.lineno == 1

    def test_is_valid(self):
        assert merge_fields.is_valid('{{ a }} and {{ b }}')
        assert not merge_fields.is_valid('{% if %}')


class TestRender:

    def test_missing_field_renders_empty(self):
        template = merge_fields.parse('Hi {{ first_name }}!')
        assert merge_fields.render(template, {}) == 'Hi !'

    def test_missing_nested_field_renders_empty(self):
        template = merge_fields.parse('[{{ company.address.city }}]')
        assert merge_fields.render(template, {}) == '[]'

    def test_html_part_escapes_values(self):
        template = merge_fields.parse('<p>{{ name }}</p>', html=True)
        assert merge_fields.render(template, {'name': '<b>Ada</b>'}) == '<p>&lt;b&gt;Ada&lt;/b&gt;</p>'

    def test_text_part_does_not_escape(self):
        template = merge_fields.parse('{{ name }}')
        assert merge_fields.render(template, {'name': '<b>Ada</b>'}) == '<b>Ada</b>'

    def test_sandbox_hides_internal_attributes(self):
        template = merge_fields.parse('{{ name.__class__.__mro__ }}')
        assert merge_fields.render(template, {'name': 'Ada'}) == ''

    def test_render_error_is_wrapped(self):
        template = merge_fields.parse('{{ 1 // count }}')
        with pytest.raises(merge_fields.MergeFieldRenderError):
            merge_fields.render(template, {'count': 'x'})

    def test_render_does_not_mutate_data(self):
        data = {'name': 'Ada'}
        merge_fields.render(merge_fields.parse('{% set name = "x" %}{{ name }}'), data)
        assert data == {'name': 'Ada'}
