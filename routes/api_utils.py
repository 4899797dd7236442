"""Shared request/response helpers for the JSON API blueprints."""

from flask import jsonify, request

from repositories.base_repository import PaginationParams

INVALID_PARAMETERS = "Invalid parameters, please try again"


def json_body():
    """The request body as a dict, or None when it is missing or not an object"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def message(text, status):
    return jsonify({'message': text}), status


def invalid_parameters(errors=None):
    body = {'message': INVALID_PARAMETERS}
    if errors:
        body['errors'] = errors
    return jsonify(body), 400


def pagination_from_request() -> PaginationParams:
    return PaginationParams(
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', 20, type=int)
    )
