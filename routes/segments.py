"""Segment API endpoints."""

from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user

from services.segment_service import SegmentNotFoundError, SegmentDuplicateError
from routes.api_utils import json_body, message, invalid_parameters, pagination_from_request
from utils.validators import validate_name, parse_id_list

segments_bp = Blueprint('segments', __name__, url_prefix='/api/segments')


def _subscriber_ids(data):
    errors = {}
    ids = parse_id_list(data.get('ids'), 'ids', errors)
    if not ids and 'ids' not in errors:
        errors['ids'] = 'At least one subscriber id is required'
    return errors, ids


@segments_bp.route('', methods=['GET'])
@login_required
def list_segments():
    page, totals = current_app.services.get('segment').list_segments(current_user.id, pagination_from_request())
    return jsonify(page.to_dict(lambda s: s.to_dict(subscribers_in_segment=totals.get(s.id, 0)))), 200


@segments_bp.route('/<int:segment_id>', methods=['GET'])
@login_required
def get_segment(segment_id):
    try:
        segment, total = current_app.services.get('segment').get_segment_with_total(segment_id, current_user.id)
    except SegmentNotFoundError:
        return message("Segment not found", 404)
    return jsonify(segment.to_dict(subscribers_in_segment=total)), 200


@segments_bp.route('', methods=['POST'])
@login_required
def create_segment():
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors = {}
    name = validate_name(data.get('name'), 'name', errors)
    if errors:
        return invalid_parameters(errors)

    try:
        segment = current_app.services.get('segment').create_segment(current_user.id, name)
    except SegmentDuplicateError:
        return message("Segment with that name already exists", 400)
    except Exception as e:
        current_app.logger.error(f"Error creating segment: {e}", exc_info=True)
        return message("Unable to create segment, please try again.", 500)

    return jsonify(segment.to_dict()), 201


@segments_bp.route('/<int:segment_id>', methods=['PUT'])
@login_required
def update_segment(segment_id):
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors = {}
    name = validate_name(data.get('name'), 'name', errors)
    if errors:
        return invalid_parameters(errors)

    try:
        segment = current_app.services.get('segment').update_segment(segment_id, current_user.id, name)
    except SegmentNotFoundError:
        return message("Segment not found", 404)
    except SegmentDuplicateError:
        return message("Segment with that name already exists", 400)
    except Exception as e:
        current_app.logger.error(f"Error updating segment {segment_id}: {e}", exc_info=True)
        return message("Unable to update segment, please try again.", 500)

    return jsonify(segment.to_dict()), 200


@segments_bp.route('/<int:segment_id>', methods=['DELETE'])
@login_required
def delete_segment(segment_id):
    try:
        current_app.services.get('segment').delete_segment(segment_id, current_user.id)
    except SegmentNotFoundError:
        return message("Segment not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error deleting segment {segment_id}: {e}", exc_info=True)
        return message("Unable to delete segment, please try again.", 500)
    return '', 204


@segments_bp.route('/<int:segment_id>/subscribers', methods=['GET'])
@login_required
def list_segment_subscribers(segment_id):
    try:
        page = current_app.services.get('segment').list_subscribers(
            segment_id, current_user.id, pagination_from_request()
        )
    except SegmentNotFoundError:
        return message("Segment not found", 404)
    return jsonify(page.to_dict()), 200


@segments_bp.route('/<int:segment_id>/subscribers', methods=['PUT'])
@login_required
def attach_subscribers(segment_id):
    """Add subscribers to a segment. Payload: {"ids": [1, 2, 3]}"""
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, ids = _subscriber_ids(data)
    if errors:
        return invalid_parameters(errors)

    try:
        current_app.services.get('segment').attach_subscribers(segment_id, current_user.id, ids)
    except SegmentNotFoundError:
        return message("Segment not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error adding subscribers to segment {segment_id}: {e}", exc_info=True)
        return message("Unable to add subscribers to segment.", 500)

    return message("Subscribers added to segment.", 200)


@segments_bp.route('/<int:segment_id>/subscribers/detach', methods=['POST'])
@login_required
def detach_subscribers(segment_id):
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, ids = _subscriber_ids(data)
    if errors:
        return invalid_parameters(errors)

    try:
        current_app.services.get('segment').detach_subscribers(segment_id, current_user.id, ids)
    except SegmentNotFoundError:
        return message("Segment not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error detaching subscribers from segment {segment_id}: {e}", exc_info=True)
        return message("Unable to detach subscribers from segment.", 500)

    return message("Subscribers detached from segment.", 200)


@segments_bp.route('/<int:segment_id>/subscribers/<int:subscriber_id>', methods=['DELETE'])
@login_required
def detach_subscriber(segment_id, subscriber_id):
    try:
        current_app.services.get('segment').detach_subscribers(segment_id, current_user.id, [subscriber_id])
    except SegmentNotFoundError:
        return message("Segment not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error detaching subscriber {subscriber_id}: {e}", exc_info=True)
        return message("Unable to detach subscriber from segment.", 500)
    return '', 204
