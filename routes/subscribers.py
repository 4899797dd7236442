"""Subscriber API endpoints, including CSV import and export."""

import io

from flask import Blueprint, Response, jsonify, request, current_app
from flask_login import login_required, current_user

from services.boundaries_service import BoundaryCheckError
from services.subscriber_service import (
    SubscriberNotFoundError,
    SubscriberDuplicateError,
    SubscriberImportError
)
from routes.api_utils import json_body, message, invalid_parameters, pagination_from_request
from utils.validators import is_valid_email, clean_str, parse_id_list, validate_metadata, MAX_NAME_LENGTH

subscribers_bp = Blueprint('subscribers', __name__, url_prefix='/api/subscribers')


def _subscriber_params(data, require_email=True):
    errors = {}
    email = clean_str(data.get('email'))
    if require_email and not is_valid_email(email):
        errors['email'] = "Invalid email format"
    name = clean_str(data.get('name'))
    if len(name) > MAX_NAME_LENGTH:
        errors['name'] = f"Must be at most {MAX_NAME_LENGTH} characters long"
    metadata = validate_metadata(data.get('metadata'), errors)
    segment_ids = parse_id_list(data.get('segments'), 'segments', errors)
    return errors, email, name, metadata, segment_ids


@subscribers_bp.route('', methods=['GET'])
@login_required
def list_subscribers():
    """List subscribers. Query parameters: page, per_page, email (prefix)"""
    page = current_app.services.get('subscriber').list_subscribers(
        current_user.id, pagination_from_request(), email=request.args.get('email')
    )
    return jsonify(page.to_dict()), 200


@subscribers_bp.route('/<int:subscriber_id>', methods=['GET'])
@login_required
def get_subscriber(subscriber_id):
    try:
        subscriber = current_app.services.get('subscriber').get_subscriber(subscriber_id, current_user.id)
    except SubscriberNotFoundError:
        return message("Subscriber not found", 404)
    return jsonify(subscriber.to_dict(include_segments=True)), 200


@subscribers_bp.route('', methods=['POST'])
@login_required
def create_subscriber():
    """Create a subscriber.

    Expected JSON payload:
    {
        "email": "jane@example.com",
        "name": "Jane",
        "metadata": {"company": "Acme"},
        "segments": [1, 2]
    }
    """
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, email, name, metadata, segment_ids = _subscriber_params(data)
    if errors:
        return invalid_parameters(errors)

    try:
        exceeded, _ = current_app.services.get('boundaries').subscribers_limit_exceeded(current_user)
    except BoundaryCheckError as e:
        current_app.logger.error(f"Error checking subscribers limit: {e}", exc_info=True)
        return message("Unable to create subscriber, please try again.", 500)
    if exceeded:
        return message("You have exceeded your subscribers limit, please upgrade to a bigger plan or contact support.", 403)

    try:
        subscriber = current_app.services.get('subscriber').create_subscriber(
            current_user.id, email, name, metadata, segment_ids
        )
    except SubscriberDuplicateError:
        return message("Subscriber with that email already exists", 400)
    except Exception as e:
        current_app.logger.error(f"Error creating subscriber: {e}", exc_info=True)
        return message("Unable to create subscriber, please try again.", 500)

    return jsonify(subscriber.to_dict(include_segments=True)), 201


@subscribers_bp.route('/<int:subscriber_id>', methods=['PUT'])
@login_required
def update_subscriber(subscriber_id):
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, _, name, metadata, segment_ids = _subscriber_params(data, require_email=False)
    if errors:
        return invalid_parameters(errors)

    try:
        subscriber = current_app.services.get('subscriber').update_subscriber(
            subscriber_id, current_user.id, name, metadata, segment_ids
        )
    except SubscriberNotFoundError:
        return message("Subscriber not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error updating subscriber {subscriber_id}: {e}", exc_info=True)
        return message("Unable to update subscriber, please try again.", 500)

    return jsonify(subscriber.to_dict(include_segments=True)), 200


@subscribers_bp.route('/<int:subscriber_id>', methods=['DELETE'])
@login_required
def delete_subscriber(subscriber_id):
    try:
        current_app.services.get('subscriber').delete_subscriber(subscriber_id, current_user.id)
    except SubscriberNotFoundError:
        return message("Subscriber not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error deleting subscriber {subscriber_id}: {e}", exc_info=True)
        return message("Unable to delete subscriber, please try again.", 500)
    return '', 204


@subscribers_bp.route('/bulk-remove', methods=['POST'])
@login_required
def bulk_remove_subscribers():
    """Delete subscribers by id. Payload: {"ids": [1, 2, 3]}"""
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors = {}
    ids = parse_id_list(data.get('ids'), 'ids', errors)
    if not ids and 'ids' not in errors:
        errors['ids'] = 'At least one subscriber id is required'
    if errors:
        return invalid_parameters(errors)

    try:
        deleted = current_app.services.get('subscriber').delete_subscribers_bulk(ids, current_user.id)
    except Exception as e:
        current_app.logger.error(f"Error bulk deleting subscribers: {e}", exc_info=True)
        return message("Unable to delete subscribers, please try again.", 500)

    return jsonify({'message': "Subscribers deleted.", 'deleted': deleted}), 200


@subscribers_bp.route('/import', methods=['POST'])
@login_required
def import_subscribers():
    """Import a CSV file uploaded as multipart field 'file'.

    Form fields:
    - segments: Optional comma separated segment ids every row is added to
    """
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return invalid_parameters({'file': 'A CSV file is required'})

    errors = {}
    raw_segments = [s for s in clean_str(request.form.get('segments')).split(',') if s.strip()]
    segment_ids = parse_id_list(raw_segments, 'segments', errors)
    if errors:
        return invalid_parameters(errors)

    stream = io.TextIOWrapper(upload.stream, encoding='utf-8-sig', newline='')
    try:
        stats = current_app.services.get('subscriber').import_subscribers(current_user, stream, segment_ids)
    except SubscriberImportError as e:
        return invalid_parameters({'file': str(e)})
    except Exception as e:
        current_app.logger.error(f"Error importing subscribers: {e}", exc_info=True)
        return message("Unable to import subscribers, please try again.", 500)

    return jsonify(stats), 200


@subscribers_bp.route('/export', methods=['GET'])
@login_required
def export_subscribers():
    csv_text = current_app.services.get('subscriber').export_subscribers(current_user.id)
    return Response(
        csv_text,
        mimetype='text/csv',
        headers={'Content-Disposition': 'attachment; filename=subscribers.csv'}
    )
