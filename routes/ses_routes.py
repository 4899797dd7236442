"""Amazon SES key management endpoints."""

from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user

from services.ses_service import SesKeysNotFoundError, SesKeysExistError, InvalidSesKeysError, SesError
from routes.api_utils import json_body, message, invalid_parameters
from utils.validators import clean_str

ses_bp = Blueprint('ses', __name__, url_prefix='/api/ses')


@ses_bp.route('/keys', methods=['GET'])
@login_required
def get_keys():
    try:
        keys = current_app.services.get('ses').get_keys(current_user.id)
    except SesKeysNotFoundError:
        return message("AWS Ses keys not found.", 404)
    return jsonify(keys.to_dict()), 200


@ses_bp.route('/keys', methods=['POST'])
@login_required
def create_keys():
    """Store SES keys and set up event notifications for this account.

    Expected JSON payload:
    {"access_key": "...", "secret_key": "...", "region": "eu-west-1"}
    """
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors = {}
    fields = {}
    for field in ('access_key', 'secret_key', 'region'):
        fields[field] = clean_str(data.get(field))
        if not fields[field]:
            errors[field] = 'This field is required'
    if errors:
        return invalid_parameters(errors)

    try:
        keys = current_app.services.get('ses').create_keys(current_user, **fields)
    except SesKeysExistError:
        return message("You already have existing SES keys.", 400)
    except InvalidSesKeysError:
        return message("SES keys are incorrect.", 400)
    except SesError as e:
        current_app.logger.error(f"Error setting up SES notifications: {e}", exc_info=True)
        return message("Unable to set up SES event notifications, please try again.", 500)

    return jsonify(keys.to_dict()), 201


@ses_bp.route('/keys', methods=['DELETE'])
@login_required
def delete_keys():
    try:
        current_app.services.get('ses').delete_keys(current_user.id)
    except SesKeysNotFoundError:
        return message("AWS Ses keys not found.", 404)
    except SesError as e:
        current_app.logger.error(f"Error deleting SES keys: {e}", exc_info=True)
        return message("Unable to delete SES keys, please try again.", 500)
    return '', 204


@ses_bp.route('/quota', methods=['GET'])
@login_required
def get_quota():
    try:
        quota = current_app.services.get('ses').get_quota(current_user.id)
    except SesKeysNotFoundError:
        return message("AWS Ses keys not found.", 404)
    except SesError as e:
        current_app.logger.error(f"Error fetching SES quota: {e}", exc_info=True)
        return message("Unable to fetch send quota, please try again.", 500)
    return jsonify(quota), 200
