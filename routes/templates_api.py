"""Template API endpoints.

Subject and text parts live in the database, the HTML part in the
templates bucket. Templates are owned by the logged in user.
"""

from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user

from services.template_service import (
    TemplateNotFoundError,
    TemplateDuplicateError,
    TemplatePartParseError,
    HTMLPartNotFoundError,
    HTMLPartInvalidStateError
)
from routes.api_utils import json_body, message, invalid_parameters, pagination_from_request
from utils.validators import validate_name, clean_str

templates_api_bp = Blueprint('templates_api', __name__, url_prefix='/api/templates')


def _template_params(data):
    errors = {}
    name = validate_name(data.get('name'), 'name', errors)
    subject_part = clean_str(data.get('subject_part'))
    if not subject_part:
        errors['subject_part'] = 'This field is required'
    html_part = data.get('html_part')
    if not isinstance(html_part, str) or not html_part.strip():
        errors['html_part'] = 'This field is required'
    text_part = data.get('text_part') or ''
    if not isinstance(text_part, str):
        errors['text_part'] = 'Must be a string'
    return errors, name, subject_part, html_part, text_part


@templates_api_bp.route('', methods=['GET'])
@login_required
def list_templates():
    """List the user's templates without their parts.

    Query parameters:
    - page, per_page
    - name: Name prefix filter
    """
    template_service = current_app.services.get('template')
    page = template_service.list_templates(
        current_user.id, pagination_from_request(), name=request.args.get('name')
    )
    return jsonify(page.to_dict(lambda t: t.to_dict(include_parts=False))), 200


@templates_api_bp.route('/<int:template_id>', methods=['GET'])
@login_required
def get_template(template_id):
    template_service = current_app.services.get('template')
    try:
        template = template_service.get_template(template_id, current_user.id)
    except TemplateNotFoundError:
        return message("Template not found.", 404)
    except HTMLPartNotFoundError:
        return message("HTML part not found.", 404)
    except HTMLPartInvalidStateError:
        return message("The state of the HTML part is invalid.", 404)
    except Exception as e:
        current_app.logger.error(f"Error getting template {template_id}: {e}", exc_info=True)
        return message("Unable to get template", 422)

    return jsonify(template.to_dict()), 200


@templates_api_bp.route('', methods=['POST'])
@login_required
def create_template():
    """Create a template.

    Expected JSON payload:
    {
        "name": "Welcome",
        "subject_part": "Hello {{ name }}",
        "html_part": "<p>Hi {{ name }}</p>",
        "text_part": "Hi {{ name }}"
    }
    """
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, name, subject_part, html_part, text_part = _template_params(data)
    if errors:
        return invalid_parameters(errors)

    template_service = current_app.services.get('template')
    try:
        template = template_service.add_template(current_user.id, name, subject_part, html_part, text_part)
    except TemplateDuplicateError:
        return message("Template with that name already exists", 422)
    except TemplatePartParseError as e:
        return message(f"Unable to create template, failed to parse {e.part}", 400)
    except Exception as e:
        current_app.logger.error(f"Error creating template: {e}", exc_info=True)
        return message("Unable to create template, please try again.", 400)

    return jsonify(template.to_dict()), 201


@templates_api_bp.route('/<int:template_id>', methods=['PUT'])
@login_required
def update_template(template_id):
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, name, subject_part, html_part, text_part = _template_params(data)
    if errors:
        return invalid_parameters(errors)

    template_service = current_app.services.get('template')
    try:
        template = template_service.update_template(
            template_id, current_user.id, name, subject_part, html_part, text_part
        )
    except TemplateNotFoundError:
        return message("Template not found", 404)
    except TemplateDuplicateError:
        return message("Template with that name already exists", 422)
    except TemplatePartParseError as e:
        return message(f"Unable to update template, failed to parse {e.part}", 400)
    except Exception as e:
        current_app.logger.error(f"Error updating template {template_id}: {e}", exc_info=True)
        return message("Unable to update template, please try again.", 400)

    return jsonify(template.to_dict()), 200


@templates_api_bp.route('/<int:template_id>', methods=['DELETE'])
@login_required
def delete_template(template_id):
    template_service = current_app.services.get('template')
    try:
        template_service.delete_template(template_id, current_user.id)
    except TemplateNotFoundError:
        return message("Template not found.", 404)
    except Exception as e:
        current_app.logger.error(f"Error deleting template {template_id}: {e}", exc_info=True)
        return message("Unable to delete template.", 422)

    return '', 204
