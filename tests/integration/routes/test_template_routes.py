"""Integration tests for template endpoints backed by the in-memory bucket"""

from services.template_service import template_key
from tests.fixtures.factories import TemplateFactory

BUCKET = 'test-templates'

PAYLOAD = {
    'name': 'Welcome',
    'subject_part': 'Hello {{ name }}',
    'html_part': '<p>Hi {{ name }}</p>',
    'text_part': 'Hi {{ name }}',
}


class TestTemplateRoutes:

    def test_create_stores_html_in_bucket(self, auth_client, user, s3_client):
        response = auth_client.post('/api/templates', json=PAYLOAD)

        assert response.status_code == 201
        body = response.get_json()
        assert body['html_part'] == PAYLOAD['html_part']
        assert s3_client.objects[(BUCKET, template_key(user.id, body['id']))] == PAYLOAD['html_part'].encode('utf-8')

    def test_create_validation(self, auth_client):
        response = auth_client.post('/api/templates', json={'name': 'Welcome', 'text_part': 5})

        assert response.status_code == 400
        assert set(response.get_json()['errors']) == {'subject_part', 'html_part', 'text_part'}

    def test_create_unparseable_part(self, auth_client):
        response = auth_client.post('/api/templates', json=dict(PAYLOAD, html_part='<p>{{ name </p>'))

        assert response.status_code == 400
        assert response.get_json()['message'] == "Unable to create template, failed to parse html_part"

    def test_create_duplicate_name(self, auth_client, user):
        TemplateFactory(user_id=user.id, name='Welcome')

        response = auth_client.post('/api/templates', json=PAYLOAD)

        assert response.status_code == 422

    def test_get_reads_html_part(self, auth_client, user, s3_client):
        template = TemplateFactory(user_id=user.id)
        s3_client.objects[(BUCKET, template_key(user.id, template.id))] = b'<h1>Stored</h1>'

        body = auth_client.get(f'/api/templates/{template.id}').get_json()

        assert body['html_part'] == '<h1>Stored</h1>'

    def test_get_without_html_part(self, auth_client, user):
        template = TemplateFactory(user_id=user.id)

        response = auth_client.get(f'/api/templates/{template.id}')

        assert response.status_code == 404
        assert response.get_json()['message'] == "HTML part not found."

    def test_other_users_template_is_not_found(self, auth_client):
        theirs = TemplateFactory()

        assert auth_client.get(f'/api/templates/{theirs.id}').status_code == 404

    def test_list_omits_parts(self, auth_client, user):
        TemplateFactory(user_id=user.id, name='Welcome')
        TemplateFactory(user_id=user.id, name='Receipt')

        body = auth_client.get('/api/templates?name=Wel').get_json()

        assert body['total'] == 1
        assert 'html_part' not in body['collection'][0]

    def test_update_and_delete(self, auth_client, user, s3_client):
        template_id = auth_client.post('/api/templates', json=PAYLOAD).get_json()['id']

        response = auth_client.put(f'/api/templates/{template_id}', json=dict(PAYLOAD, html_part='<p>v2</p>'))
        assert response.status_code == 200
        assert s3_client.objects[(BUCKET, template_key(user.id, template_id))] == b'<p>v2</p>'

        assert auth_client.delete(f'/api/templates/{template_id}').status_code == 204
        assert (BUCKET, template_key(user.id, template_id)) not in s3_client.objects
        assert auth_client.get(f'/api/templates/{template_id}').status_code == 404
